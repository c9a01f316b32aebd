# mcp_gateway/oauth/__init__.py
# Browser OAuth flow (Google upstream) and the gateway's own authorization server

# Core OAuth models and data structures
from .models import (
    AuthRequestInfo,
    OAuthStateRecord,
    OAuthClient,
    ClientRegistrationRequest,
    AuthCodeGrant,
    AccessTokenGrant,
    TokenResponse,
    GoogleUserInfo,
    WellKnownOAuthMetadata,
    ProtectedResourceMetadata,
)

# OAuth error types and exception handling
from .errors import (
    OAuthError,
    InvalidRequestError,
    InvalidClientError,
    InvalidGrantError,
    UnsupportedGrantTypeError,
    InvalidTokenError,
    CSRFMismatchError,
    StateNotFoundError,
    UpstreamOAuthError,
    ServerError,
)

# PKCE (Proof Key for Code Exchange) utilities
from .pkce import generate_pkce_code_verifier, generate_pkce_code_challenge, verify_pkce_s256

# CSRF state binding and consent persistence
from .state_manager import OAuthStateManager
from .approval import ConsentManager, render_approval_dialog

# Upstream identity provider and callback orchestration
from .google_client import GoogleOAuthClient
from .callback import OAuthCallbackHandler

# Authorization server for MCP clients
from .provider import GatewayOAuthProvider

# FastAPI router endpoints for OAuth flows
from .endpoints import oauth_router

__all__ = [
    # Models
    "AuthRequestInfo",
    "OAuthStateRecord",
    "OAuthClient",
    "ClientRegistrationRequest",
    "AuthCodeGrant",
    "AccessTokenGrant",
    "TokenResponse",
    "GoogleUserInfo",
    "WellKnownOAuthMetadata",
    "ProtectedResourceMetadata",

    # Errors
    "OAuthError",
    "InvalidRequestError",
    "InvalidClientError",
    "InvalidGrantError",
    "UnsupportedGrantTypeError",
    "InvalidTokenError",
    "CSRFMismatchError",
    "StateNotFoundError",
    "UpstreamOAuthError",
    "ServerError",

    # PKCE
    "generate_pkce_code_verifier",
    "generate_pkce_code_challenge",
    "verify_pkce_s256",

    # Flow components
    "OAuthStateManager",
    "ConsentManager",
    "render_approval_dialog",
    "GoogleOAuthClient",
    "OAuthCallbackHandler",
    "GatewayOAuthProvider",
    "oauth_router",
]
