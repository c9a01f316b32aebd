# mcp_gateway/main.py
from fastapi import FastAPI, Request
from starlette.requests import Request as StarletteRequest
from starlette.responses import JSONResponse
from starlette.types import Receive, Scope, Send
from contextlib import asynccontextmanager
import logging
from datetime import datetime, timezone
from typing import Optional, Any, Dict, Union
from dotenv import load_dotenv
load_dotenv()

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from fastmcp.server.http import set_http_request

from .settings import settings
from .environment import initialize_environment
from .auth.errors import UnauthorizedError
from .dependencies import get_token_service, reset_token_service
from .mcp_handlers.gateway_mcp_app import gateway_fastmcp_server
from .mcp_tokens.endpoints import mcp_tokens_admin_router
from .oauth.endpoints import oauth_router, get_oauth_provider, reset_props_encryptor
from .oauth.errors import OAuthError
from .router import MCPRequestRouter, SecurityHeadersMiddleware
from .storage import get_kv_store, close_kv_store

# Configure logging based on debug mode setting
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level="DEBUG" if settings.debug_mode else settings.log_level.upper(),
        format='%(asctime)s - %(name)s [%(levelname)s] - %(message)s'
    )

logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG if settings.debug_mode else settings.log_level.upper())

HEALTH_SERVICE_NAME = "tango-mcp"

# Created per lifespan; a session manager can only be run once
gateway_mcp_session_manager: Optional[StreamableHTTPSessionManager] = None


@asynccontextmanager
async def gateway_app_lifespan(app_instance: FastAPI):
    """
    Validates configuration, connects the key-value store and runs the MCP
    session manager. Any failure here stops startup.
    """
    global gateway_mcp_session_manager

    logger.info("Application startup initiated.")
    initialize_environment(settings)
    await get_kv_store()
    token_service = await get_token_service()

    gateway_mcp_session_manager = StreamableHTTPSessionManager(app=gateway_fastmcp_server._mcp_server)
    try:
        async with gateway_mcp_session_manager.run():
            logger.info("MCP session manager running.")
            yield
    finally:
        logger.info("Application shutdown initiated.")
        await token_service.drain_background_tasks()
        await close_kv_store()
        reset_token_service()
        reset_props_encryptor()
        gateway_mcp_session_manager = None
        logger.info("All components torn down.")


async def handle_mcp_request(scope: Scope, receive: Receive, send: Send) -> None:
    """ASGI entry point for authenticated /mcp and /sse traffic."""
    if gateway_mcp_session_manager is None:
        await JSONResponse({"error": "MCP handler unavailable"}, status_code=503)(scope, receive, send)
        return
    with set_http_request(StarletteRequest(scope, receive)):
        await gateway_mcp_session_manager.handle_request(scope, receive, send)


async def load_oauth_props(access_token: str) -> Optional[Dict[str, Any]]:
    provider = await get_oauth_provider()
    return await provider.load_access_token_props(access_token)


# FastAPI application setup with lifespan management
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug_mode,
    version=settings.app_version,
    lifespan=gateway_app_lifespan
)


@app.exception_handler(OAuthError)
@app.exception_handler(UnauthorizedError)
async def auth_error_handler(request: Request, exc: Union[OAuthError, UnauthorizedError]) -> JSONResponse:
    """RFC 6749 error bodies are flat objects, not wrapped in 'detail'."""
    return JSONResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)


@app.get("/health")
async def health_api():
    """Public health check including the authentication configuration."""
    status_value = "healthy"
    http_status = 200
    try:
        kv_store = await get_kv_store()
        if not await kv_store.ping():
            status_value, http_status = "degraded", 503
    except Exception as e:
        logger.error(f"Health check could not reach the key-value store: {e}")
        status_value, http_status = "degraded", 503

    return JSONResponse(
        {
            "status": status_value,
            "service": HEALTH_SERVICE_NAME,
            "version": settings.app_version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "authentication": {
                "oauth_configured": settings.oauth_configured,
                "tango_api_configured": bool(settings.tango_api_key),
                "mcp_token_system_enabled": "mcp-token" in settings.allowed_auth_methods_list,
                "require_authentication": settings.require_authentication,
                "hosted_domain": settings.hosted_domain or None,
            },
        },
        status_code=http_status,
    )


# Mount all routers
app.include_router(oauth_router, tags=["OAuth 2.1"])
app.include_router(mcp_tokens_admin_router)

# Outermost ASGI stack: security headers around the request router
gateway_app = SecurityHeadersMiddleware(
    MCPRequestRouter(
        app=app,
        mcp_app=handle_mcp_request,
        props_loader=load_oauth_props,
        mcp_token_enabled="mcp-token" in settings.allowed_auth_methods_list,
        public_base_url=settings.public_base_url,
    )
)

logger.info(f"{settings.app_name} initialized. Storage: {settings.storage_backend}. Routers mounted.")
