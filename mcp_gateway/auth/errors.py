# mcp_gateway/auth/errors.py
from enum import Enum
from fastapi import HTTPException, status


class AuthErrorKind(str, Enum):
    """Distinguishable authentication failure kinds. Clients branch on these values."""
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    CSRF_MISMATCH = "csrf_mismatch"
    STATE_NOT_FOUND = "state_not_found"
    DOMAIN_REJECTED = "domain_rejected"
    MISSING_EMAIL = "missing_email"
    UNAUTHENTICATED = "unauthenticated"


class UnauthorizedError(HTTPException):
    """
    Raised by the unified validator when a request cannot be attributed to a user.

    The detail follows the OAuth error shape so HTTP callers and MCP tools
    report the same kind and message.
    """

    def __init__(self, kind: AuthErrorKind, message: str):
        self.kind = kind
        self.message = message
        status_code = (
            status.HTTP_403_FORBIDDEN
            if kind == AuthErrorKind.DOMAIN_REJECTED
            else status.HTTP_401_UNAUTHORIZED
        )
        super().__init__(
            status_code=status_code,
            detail={"error": kind.value, "error_description": message},
            headers={"WWW-Authenticate": "Bearer"},
        )

    def __str__(self) -> str:
        return self.message
