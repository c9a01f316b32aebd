# mcp_gateway/mcp_handlers/gateway_mcp_app.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastmcp import FastMCP

from ..auth.models import MCPTokenAuthResult, OAuthAuthResult
from ..auth.validator import get_user_identifier
from ..gateway_context import GatewayContext
from ..settings import settings

logger = logging.getLogger(__name__)

GATEWAY_INSTRUCTIONS = (
    "Gateway for Tango government contracting data. Authenticate with Google OAuth "
    f"(@{settings.hosted_domain} accounts) or an x-mcp-access-token header."
)


async def health_check_tool() -> Dict[str, Any]:
    """Report gateway status. Does not require authentication."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def whoami_tool() -> Dict[str, Any]:
    """Return the identity the gateway resolved for this request."""
    auth_result = await GatewayContext().require_auth()
    identity: Dict[str, Any] = {
        "auth_method": auth_result.method,
        "user": get_user_identifier(auth_result),
    }
    match auth_result:
        case OAuthAuthResult(email=email, name=name):
            identity.update({"email": email, "name": name})
        case MCPTokenAuthResult(token_id=token_id, user_id=user_id):
            identity.update({"token_id": token_id, "user_id": user_id})
    return identity


def _create_fastmcp_instance() -> FastMCP:
    """Build the shared FastMCP server with the gateway tools registered."""
    logger.info("Creating gateway FastMCP instance.")
    gateway_mcp = FastMCP(name="tango-mcp", instructions=GATEWAY_INSTRUCTIONS)
    gateway_mcp.tool(name="health_check")(health_check_tool)
    gateway_mcp.tool(name="whoami")(whoami_tool)
    return gateway_mcp


gateway_fastmcp_server = _create_fastmcp_instance()
