# mcp_gateway/oauth/errors.py
from fastapi import HTTPException, status
from typing import Dict, Optional


class OAuthError(HTTPException):
    """Base class for OAuth errors, rendered as an RFC 6749 error body."""

    def __init__(
        self,
        status_code: int,
        error: str,
        error_description: str | None = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.error = error
        self.error_description = error_description

        detail = {"error": error}
        if error_description:
            detail["error_description"] = error_description

        super().__init__(
            status_code=status_code,
            detail=detail,
            headers=headers or {"WWW-Authenticate": "Bearer"}
        )


class InvalidRequestError(OAuthError):
    """Missing, repeated or malformed request parameter. (RFC 6749 - Section 5.2)"""

    def __init__(self, error_description: str | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="invalid_request",
            error_description=error_description
        )


class InvalidClientError(OAuthError):
    """Unknown client or failed client authentication. (RFC 6749 - Section 5.2)"""

    def __init__(self, error_description: str | None = "Client authentication failed."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="invalid_client",
            error_description=error_description
        )


class InvalidGrantError(OAuthError):
    """
    The authorization code is invalid, expired, already used, or was issued
    to another client or redirect URI. (RFC 6749 - Section 5.2)
    """

    def __init__(self, error_description: str | None = "Invalid authorization grant."):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="invalid_grant",
            error_description=error_description
        )


class UnsupportedGrantTypeError(OAuthError):
    """(RFC 6749 - Section 5.2)"""

    def __init__(self, error_description: str | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="unsupported_grant_type",
            error_description=error_description
        )


class InvalidTokenError(OAuthError):
    """
    The gateway access token is missing, expired or unknown.
    (RFC 6750 - Section 3.1)
    """

    def __init__(
        self,
        error_description: str | None = "The access token is invalid.",
        resource_metadata_url: str | None = None
    ):
        challenge = 'Bearer realm="mcp_gateway", error="invalid_token"'
        if resource_metadata_url:
            challenge += f', resource_metadata="{resource_metadata_url}"'
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="invalid_token",
            error_description=error_description,
            headers={"WWW-Authenticate": challenge}
        )


class CSRFMismatchError(OAuthError):
    """
    The session-binding or consent CSRF cookie is missing, tampered with,
    expired, or bound to a different value than the request carries.
    """

    def __init__(self, error_description: str | None = "CSRF validation failed. Please restart the sign-in flow."):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="csrf_mismatch",
            error_description=error_description
        )


class StateNotFoundError(OAuthError):
    """The OAuth state token is unknown, already consumed, or expired."""

    def __init__(self, error_description: str | None = "Invalid or expired state. Please restart the sign-in flow."):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="state_not_found",
            error_description=error_description
        )


class UpstreamOAuthError(OAuthError):
    """
    The identity provider rejected the code exchange or userinfo request.

    Not retried; surfaced to the caller as a bad gateway.
    """

    def __init__(self, error_description: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error="upstream_error",
            error_description=error_description
        )


class ServerError(OAuthError):
    """Unexpected authorization server condition. (RFC 6749 - Section 4.1.2.1)"""

    def __init__(self, error_description: str | None = "The authorization server encountered an internal error."):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="server_error",
            error_description=error_description
        )
