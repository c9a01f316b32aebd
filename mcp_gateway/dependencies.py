# mcp_gateway/dependencies.py
import logging
import secrets
from fastapi import HTTPException, status, Header, Depends
from typing import Optional, Annotated

from .settings import settings
from .storage import get_kv_store
from .mcp_tokens.service import MCPTokenService
from .mcp_tokens.admin import TokenAdminService
from .oauth.endpoints import get_oauth_provider
from .oauth.errors import InvalidTokenError

logger = logging.getLogger(__name__)

_token_service_instance: Optional[MCPTokenService] = None


async def get_admin_api_key(
    x_admin_api_key: Annotated[
        Optional[str],
        Header(description="The API Key for accessing admin routes.")
    ] = None
) -> str:
    """
    Validates admin API key authentication for protected admin endpoints.

    Returns the validated API key if authentication succeeds.
    Raises HTTPException with appropriate status codes for various failure scenarios.
    """
    if not settings.admin_api_key:
        logger.critical("ADMIN_API_KEY is not configured on the server. Admin endpoints are effectively disabled.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API service is not configured properly (API Key missing on server).",
        )

    if not x_admin_api_key:
        logger.warning("Admin API: Missing X-Admin-API-Key header.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated: X-Admin-API-Key header missing.",
            headers={"WWW-Authenticate": 'Basic realm="Admin Area"'},
        )

    # Constant-time comparison
    if not secrets.compare_digest(x_admin_api_key, settings.admin_api_key):
        logger.warning("Admin API: Invalid X-Admin-API-Key provided.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: Invalid API Key.",
            headers={"WWW-Authenticate": 'Basic realm="Admin Area"'},
        )

    return x_admin_api_key


async def get_token_service() -> MCPTokenService:
    """
    Returns the process-wide MCPTokenService bound to the key-value store.

    A single instance keeps track of the background usage-update tasks.
    """
    global _token_service_instance
    kv_store = await get_kv_store()
    if _token_service_instance is None or _token_service_instance.kv_store is not kv_store:
        _token_service_instance = MCPTokenService(
            kv_store=kv_store,
            expiry_days=settings.mcp_token_expiry_days,
        )
    return _token_service_instance


def reset_token_service() -> None:
    global _token_service_instance
    _token_service_instance = None


async def get_token_admin_service(
    token_service: Annotated[MCPTokenService, Depends(get_token_service)]
) -> TokenAdminService:
    """Factory function to create TokenAdminService with injected token service."""
    return TokenAdminService(token_service)


async def require_admin(
    x_admin_api_key: Annotated[
        Optional[str],
        Header(description="The API Key for accessing admin routes.")
    ] = None,
    authorization: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Guards the admin routes. Accepts the X-Admin-API-Key header, or a gateway
    OAuth access token whose e-mail passes TokenAdminService.validate_admin_access
    (ADMIN_EMAILS when set, otherwise the hosted domain).

    Returns "api-key" or the admin's e-mail address.
    """
    scheme, _, access_token = (authorization or "").partition(" ")
    if x_admin_api_key or scheme.lower() != "bearer" or not access_token.strip():
        await get_admin_api_key(x_admin_api_key)
        return "api-key"

    provider = await get_oauth_provider()
    props = await provider.load_access_token_props(access_token.strip())
    if not props:
        logger.warning("Admin API: Unknown or expired OAuth access token.")
        raise InvalidTokenError("The access token is invalid or expired.")

    email = props.get("email")
    if not TokenAdminService.validate_admin_access(email, settings.hosted_domain, settings.admin_emails_list):
        logger.warning(f"Admin API: '{email}' is not permitted to administer tokens.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: This account is not a token administrator.",
        )

    logger.info(f"Admin API: Access granted to '{email}' via OAuth.")
    return email
