# mcp_gateway/gateway_context/context.py
import logging
from typing import Any, Dict, Optional

from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request

from ..auth.errors import UnauthorizedError
from ..auth.models import AuthResult
from ..auth.validator import validate_authentication, get_user_identifier
from ..dependencies import get_token_service
from ..settings import settings

logger = logging.getLogger(__name__)


class GatewayContext:
    """
    Request-scoped view of the caller's identity for MCP tools.

    The router stores the caller's props in the request scope; this class
    turns them into a validated AuthResult.
    """

    def __init__(self):
        self._auth_result: Optional[AuthResult] = None

    @property
    def props(self) -> Dict[str, Any]:
        try:
            current_starlette_request = get_http_request()
        except RuntimeError as e_rt:
            # Expected outside an HTTP request (e.g. stdio transport)
            logger.debug(f"GatewayContext: no active HTTP request: {e_rt}")
            return {}
        scope_state = current_starlette_request.scope.get("state", {})
        if not isinstance(scope_state, dict):
            return {}
        props = scope_state.get("props")
        return props if isinstance(props, dict) else {}

    @property
    def client_ip(self) -> Optional[str]:
        try:
            request = get_http_request()
        except RuntimeError:
            return None
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else None

    async def authenticate(self) -> AuthResult:
        """Validate the caller once per context. Raises UnauthorizedError."""
        if self._auth_result is None:
            token_service = await get_token_service()
            self._auth_result = await validate_authentication(
                self.props,
                token_service,
                settings.hosted_domain,
                request_ip=self.client_ip,
            )
            if settings.enable_auth_logging:
                logger.info(f"AUDIT: Authenticated {get_user_identifier(self._auth_result)} "
                            f"via {self._auth_result.method}.")
        return self._auth_result

    async def require_auth(self) -> AuthResult:
        """Same as authenticate(), but surfaces failures as MCP tool errors."""
        try:
            return await self.authenticate()
        except UnauthorizedError as e:
            if settings.enable_auth_logging:
                logger.warning(f"AUDIT: Tool call rejected ({e.kind.value}): {e}")
            raise ToolError(str(e)) from e
