# mcp_gateway/gateway_context/__init__.py

from .context import GatewayContext

__all__ = ["GatewayContext"]
