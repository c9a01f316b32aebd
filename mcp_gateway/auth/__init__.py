# mcp_gateway/auth/__init__.py
"""
Unified authentication for the gateway.

Collapses OAuth-derived and MCP-token-derived identities into a single
AuthResult consumed by tool handlers.
"""

from .models import AuthResult, OAuthAuthResult, MCPTokenAuthResult
from .errors import AuthErrorKind, UnauthorizedError
from .validator import (
    validate_authentication,
    validate_oauth_identity,
    is_email_in_domain,
    get_user_identifier,
)

__all__ = [
    "AuthResult",
    "OAuthAuthResult",
    "MCPTokenAuthResult",
    "AuthErrorKind",
    "UnauthorizedError",
    "validate_authentication",
    "validate_oauth_identity",
    "is_email_in_domain",
    "get_user_identifier",
]
