# mcp_gateway/mcp_handlers/__init__.py

from .gateway_mcp_app import gateway_fastmcp_server, health_check_tool, whoami_tool

__all__ = ["gateway_fastmcp_server", "health_check_tool", "whoami_tool"]
