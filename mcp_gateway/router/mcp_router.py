# mcp_gateway/router/mcp_router.py
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, NamedTuple, Optional

from starlette.datastructures import Headers
from starlette.requests import Request as StarletteRequest
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from ..auth.validator import PROP_MCP_ACCESS_TOKEN
from ..oauth.errors import InvalidTokenError

logger = logging.getLogger(__name__)

PROTECTED_PATH_PREFIXES = ("/mcp", "/sse")
MCP_TOKEN_HEADER = "x-mcp-access-token"
AUTH_METHOD_PROP = "authMethod"

PropsLoader = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


class RouteKind(str, Enum):
    MCP_TOKEN = "mcp-token"
    OAUTH_PROTECTED = "oauth-protected"
    APPLICATION = "application"


class RouteDecision(NamedTuple):
    kind: RouteKind
    props: Optional[Dict[str, Any]] = None


def is_protected_path(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in PROTECTED_PATH_PREFIXES)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None and not isinstance(headers, Headers):
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def select_route(path: str, headers: Mapping[str, str], mcp_token_enabled: bool = True) -> RouteDecision:
    """
    Decide how a request is handled. Pure: no I/O and no token validation.

    A non-empty x-mcp-access-token on /mcp or /sse goes straight to the MCP
    handler with the token injected as props; the token itself is verified
    later by the tool context. Everything else takes the OAuth pass-through.
    """
    if not is_protected_path(path):
        return RouteDecision(RouteKind.APPLICATION)

    token = (_header(headers, MCP_TOKEN_HEADER) or "").strip()
    if token and mcp_token_enabled:
        return RouteDecision(
            RouteKind.MCP_TOKEN,
            {PROP_MCP_ACCESS_TOKEN: token, AUTH_METHOD_PROP: "mcp-token"},
        )
    return RouteDecision(RouteKind.OAUTH_PROTECTED)


def _bearer_token(headers: Headers) -> Optional[str]:
    auth_header = headers.get("authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1]:
        return parts[1]
    logger.warning("Malformed Authorization header on protected MCP path.")
    return None


def _with_props(scope: Scope, props: Dict[str, Any]) -> Scope:
    scope_for_mcp = dict(scope)
    state = scope.get("state")
    state = dict(state) if isinstance(state, dict) else {}
    state["props"] = props
    scope_for_mcp["state"] = state
    return scope_for_mcp


class MCPRequestRouter:
    """
    Outermost ASGI app. Splits traffic between the MCP handler and the
    FastAPI application; the request body is never read here.
    """

    def __init__(
        self,
        app: ASGIApp,
        mcp_app: ASGIApp,
        props_loader: PropsLoader,
        mcp_token_enabled: bool = True,
        public_base_url: Optional[str] = None,
    ):
        self.app = app
        self.mcp_app = mcp_app
        self.props_loader = props_loader
        self.mcp_token_enabled = mcp_token_enabled
        self.public_base_url = public_base_url

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            # Lifespan events belong to the application
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        decision = select_route(scope["path"], headers, self.mcp_token_enabled)

        if decision.kind is RouteKind.APPLICATION:
            await self.app(scope, receive, send)
            return

        if decision.kind is RouteKind.MCP_TOKEN:
            logger.debug(f"Routing {scope['path']} via MCP token header.")
            await self.mcp_app(_with_props(scope, decision.props), receive, send)
            return

        access_token = _bearer_token(headers)
        props = await self.props_loader(access_token) if access_token else None
        if not props:
            await self._unauthorized(scope, receive, send, has_token=bool(access_token))
            return

        logger.debug(f"Routing {scope['path']} via OAuth bearer token.")
        await self.mcp_app(_with_props(scope, {**props, AUTH_METHOD_PROP: "oauth"}), receive, send)

    def _resource_metadata_url(self, scope: Scope) -> str:
        base_url = self.public_base_url or str(StarletteRequest(scope).base_url)
        return f"{base_url.rstrip('/')}/.well-known/oauth-protected-resource"

    async def _unauthorized(self, scope: Scope, receive: Receive, send: Send, has_token: bool) -> None:
        if has_token:
            error = InvalidTokenError(
                "The access token is invalid or expired.",
                resource_metadata_url=self._resource_metadata_url(scope),
            )
            response = JSONResponse(error.detail, status_code=error.status_code, headers=error.headers)
            await response(scope, receive, send)
            return

        body = {
            "error": "unauthenticated",
            "error_description": (
                "Authentication required. Use OAuth (Google) or provide x-mcp-access-token header."
            ),
        }
        challenge = f'Bearer resource_metadata="{self._resource_metadata_url(scope)}"'
        response = JSONResponse(body, status_code=401, headers={"WWW-Authenticate": challenge})
        await response(scope, receive, send)
