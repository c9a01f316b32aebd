# mcp_gateway/router/__init__.py

"""Request routing in front of the MCP handler and the HTTP application."""

from .mcp_router import (
    MCPRequestRouter,
    RouteDecision,
    RouteKind,
    select_route,
    is_protected_path,
    MCP_TOKEN_HEADER,
)
from .security_headers import SecurityHeadersMiddleware, SECURITY_HEADERS

__all__ = [
    "MCPRequestRouter",
    "RouteDecision",
    "RouteKind",
    "select_route",
    "is_protected_path",
    "MCP_TOKEN_HEADER",
    "SecurityHeadersMiddleware",
    "SECURITY_HEADERS",
]
