# mcp_gateway/auth/validator.py
import logging
from typing import Any, Mapping, Optional, TYPE_CHECKING

from .errors import AuthErrorKind, UnauthorizedError
from .models import AuthResult, MCPTokenAuthResult, OAuthAuthResult

if TYPE_CHECKING:
    from ..mcp_tokens.service import MCPTokenService

logger = logging.getLogger(__name__)

# Props keys as injected by the router (MCP token path) and the OAuth provider
PROP_MCP_ACCESS_TOKEN = "mcpAccessToken"
PROP_OAUTH_ACCESS_TOKEN = "access_token"
PROP_EMAIL = "email"
PROP_NAME = "name"

TOKEN_FAILURE_MESSAGES = {
    "malformed": "Invalid token format. Expected format: mcp_v1_...",
    "not_found": "Token not found. It may have been deleted.",
    "revoked": "Token has been revoked and is no longer valid.",
    "expired": "Token has expired.",
}


def is_email_in_domain(email: str, allowed_domain: str) -> bool:
    """
    Exact, case-insensitive domain match on the part after the last '@'.

    'user@evil-agile6.com' and 'user@agile6.co' do not match 'agile6.com'.
    """
    if not email or not allowed_domain or "@" not in email:
        return False
    local_part, _, domain = email.strip().rpartition("@")
    if not local_part:
        return False
    return domain.lower() == allowed_domain.strip().lstrip("@").lower()


def validate_oauth_identity(
    email: Optional[str],
    name: Optional[str],
    allowed_domain: Optional[str],
) -> OAuthAuthResult:
    """Turn OAuth identity claims into an AuthResult or raise UnauthorizedError."""
    if not email:
        logger.warning("Auth: OAuth identity without email rejected.")
        raise UnauthorizedError(
            AuthErrorKind.MISSING_EMAIL,
            "Unauthorized: OAuth authentication requires email. Please re-authenticate.",
        )
    if not allowed_domain or not is_email_in_domain(email, allowed_domain):
        logger.warning(f"Auth: OAuth identity '{email}' outside allowed domain '{allowed_domain}'.")
        raise UnauthorizedError(
            AuthErrorKind.DOMAIN_REJECTED,
            f"Unauthorized: Only @{allowed_domain} accounts are allowed. Your account: {email}",
        )
    return OAuthAuthResult(email=email, name=name)


async def validate_authentication(
    props: Optional[Mapping[str, Any]],
    token_service: "MCPTokenService",
    allowed_domain: Optional[str],
    request_ip: Optional[str] = None,
) -> AuthResult:
    """
    Resolve request props into exactly one AuthResult.

    OAuth identity takes precedence over an MCP token when both are present,
    and an OAuth identity that fails its checks is rejected outright instead
    of falling through to the token.
    """
    props = props or {}

    if props.get(PROP_OAUTH_ACCESS_TOKEN):
        return validate_oauth_identity(props.get(PROP_EMAIL), props.get(PROP_NAME), allowed_domain)

    mcp_token = props.get(PROP_MCP_ACCESS_TOKEN)
    if mcp_token:
        verification = await token_service.verify(mcp_token, request_ip)
        if verification.result is not None:
            return verification.result
        failure = verification.failure.value if verification.failure else "not_found"
        raise UnauthorizedError(AuthErrorKind(failure), TOKEN_FAILURE_MESSAGES[failure])

    raise UnauthorizedError(
        AuthErrorKind.UNAUTHENTICATED,
        "Unauthorized: Authentication required. Use OAuth (Google) or provide "
        f"x-mcp-access-token header. OAuth users must have @{allowed_domain} email addresses.",
    )


def get_user_identifier(result: AuthResult) -> str:
    """Human-readable identity for logs."""
    match result:
        case OAuthAuthResult(name=name, email=email):
            return name or email or "OAuth User"
        case MCPTokenAuthResult(token_id=token_id):
            return f"MCP Token ({token_id})"
