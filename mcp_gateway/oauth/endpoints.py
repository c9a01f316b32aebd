# mcp_gateway/oauth/endpoints.py
from fastapi import APIRouter, Depends, Request, Form, HTTPException, Query, status
from fastapi.responses import RedirectResponse, JSONResponse
from starlette.responses import Response
from starlette.routing import NoMatchFound
from typing import Annotated, Optional
import logging
from pydantic import ValidationError as PydanticValidationError

from ..settings import settings
from ..storage import get_kv_store
from ..utils.security import FernetEncryptor, build_props_encryptor
from .approval import ConsentManager, decode_approval_state, render_approval_dialog, STATE_FORM_FIELD
from .callback import OAuthCallbackHandler
from .errors import InvalidRequestError, OAuthError, ServerError
from .google_client import GoogleOAuthClient
from .models import (
    AuthRequestInfo, ClientRegistrationRequest, OAuthClient, ProtectedResourceMetadata,
    TokenResponse, WellKnownOAuthMetadata
)
from .provider import GatewayOAuthProvider
from .state_manager import OAuthStateManager

logger = logging.getLogger(__name__)
oauth_router = APIRouter()

APPROVAL_SERVER_NAME = "Tango MCP Server"
APPROVAL_SERVER_DESCRIPTION = (
    "Access government contracting data, grants, opportunities, and vendor "
    "intelligence through the Tango API."
)

_props_encryptor: Optional[FernetEncryptor] = None

# --- Dependency Functions ---

def get_public_base_url(request: Request) -> str:
    """Externally visible origin, from settings or the incoming request."""
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def get_props_encryptor() -> FernetEncryptor:
    global _props_encryptor
    if _props_encryptor is None:
        _props_encryptor = build_props_encryptor(settings.props_encryption_key, settings.cookie_encryption_key)
    return _props_encryptor


def reset_props_encryptor() -> None:
    global _props_encryptor
    _props_encryptor = None


async def get_oauth_provider() -> GatewayOAuthProvider:
    """Create an OAuth provider bound to the shared key-value store."""
    return GatewayOAuthProvider(
        kv_store=await get_kv_store(),
        encryptor=get_props_encryptor(),
        access_token_ttl_seconds=settings.access_token_ttl_seconds,
    )


def _require_oauth_enabled() -> str:
    if "oauth" not in settings.allowed_auth_methods_list:
        logger.warning("OAuth endpoint called while OAuth is not an allowed auth method.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="OAuth authentication is disabled.")
    if not settings.cookie_encryption_key:
        logger.error("OAuth endpoint called without COOKIE_ENCRYPTION_KEY configured.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="OAuth not configured - missing COOKIE_ENCRYPTION_KEY",
        )
    return settings.cookie_encryption_key


async def get_state_manager() -> OAuthStateManager:
    secret = _require_oauth_enabled()
    return OAuthStateManager(
        kv_store=await get_kv_store(),
        secret_key=secret,
        ttl_seconds=settings.oauth_state_ttl_seconds,
    )


def get_consent_manager() -> ConsentManager:
    secret = _require_oauth_enabled()
    return ConsentManager(secret, approval_max_age=settings.session_cookie_max_age)


def get_google_client() -> GoogleOAuthClient:
    if not settings.google_client_id or not settings.google_client_secret:
        logger.error("Google OAuth credentials are not configured.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="OAuth not configured - missing required environment variables",
        )
    return GoogleOAuthClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        hosted_domain=settings.hosted_domain,
    )


async def get_callback_handler(
    state_manager: Annotated[OAuthStateManager, Depends(get_state_manager)],
    google_client: Annotated[GoogleOAuthClient, Depends(get_google_client)],
    provider: Annotated[GatewayOAuthProvider, Depends(get_oauth_provider)],
) -> OAuthCallbackHandler:
    return OAuthCallbackHandler(
        state_manager=state_manager,
        google_client=google_client,
        provider=provider,
        allowed_domain=settings.hosted_domain,
        audit_logging=settings.enable_auth_logging,
    )


# --- Internal Helpers ---

def _redirect_to_google(
    google_client: GoogleOAuthClient,
    base_url: str,
    state_token: str,
    *set_cookies: str,
) -> RedirectResponse:
    location = google_client.build_authorize_url(redirect_uri=f"{base_url}/callback", state=state_token)
    response = RedirectResponse(url=location, status_code=302)
    for cookie in set_cookies:
        response.headers.append("Set-Cookie", cookie)
    return response


# --- Authorization ---

@oauth_router.get("/authorize", name="oauth_authorize_get")
async def authorize_get(
    request: Request,
    provider: Annotated[GatewayOAuthProvider, Depends(get_oauth_provider)],
    consent: Annotated[ConsentManager, Depends(get_consent_manager)],
    state_manager: Annotated[OAuthStateManager, Depends(get_state_manager)],
    google_client: Annotated[GoogleOAuthClient, Depends(get_google_client)],
    response_type: Annotated[Optional[str], Query()] = "code",
    client_id: Annotated[Optional[str], Query()] = None,
    redirect_uri: Annotated[Optional[str], Query()] = None,
    scope: Annotated[Optional[str], Query()] = None,
    state: Annotated[Optional[str], Query()] = None,
    code_challenge: Annotated[Optional[str], Query()] = None,
    code_challenge_method: Annotated[Optional[str], Query()] = None,
) -> Response:
    """
    Start an MCP client's authorization.

    Already approved clients go straight to Google; others see the consent
    dialog first. The state binding is created in both cases.
    """
    if not client_id:
        logger.warning("Authorization request without client_id.")
        raise InvalidRequestError("Invalid request: client_id is required.")

    try:
        auth_request = AuthRequestInfo(
            response_type=response_type or "code",
            client_id=client_id,
            redirect_uri=redirect_uri or "",
            scope=scope,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )
    except PydanticValidationError as e:
        logger.warning(f"Invalid authorization request parameters: {e.errors()}")
        raise InvalidRequestError("Invalid authorization request parameters.")

    client = await provider.validate_authorization_request(auth_request)

    if consent.is_client_approved(request, client.client_id):
        logger.info(f"Client '{client.client_id}' already approved in this browser. Skipping consent.")
        state_token, binding_cookie = await state_manager.create_state(auth_request)
        return _redirect_to_google(google_client, get_public_base_url(request), state_token, binding_cookie)

    csrf_token, csrf_cookie = consent.generate_csrf_protection()
    return render_approval_dialog(
        auth_request=auth_request,
        client=client,
        csrf_token=csrf_token,
        server_name=APPROVAL_SERVER_NAME,
        server_description=APPROVAL_SERVER_DESCRIPTION,
        set_cookie=csrf_cookie,
    )


@oauth_router.post("/authorize", name="oauth_authorize_post")
async def authorize_post(
    request: Request,
    provider: Annotated[GatewayOAuthProvider, Depends(get_oauth_provider)],
    consent: Annotated[ConsentManager, Depends(get_consent_manager)],
    state_manager: Annotated[OAuthStateManager, Depends(get_state_manager)],
    google_client: Annotated[GoogleOAuthClient, Depends(get_google_client)],
) -> Response:
    """Consent form submission."""
    form = await request.form()
    clear_csrf_cookie = consent.validate_csrf_token(form, request)

    encoded_state = form.get(STATE_FORM_FIELD)
    auth_request = decode_approval_state(encoded_state if isinstance(encoded_state, str) else None)
    # The form is client-controlled, so the request is validated again
    await provider.validate_authorization_request(auth_request)

    approved_cookie = consent.add_approved_client(request, auth_request.client_id)
    state_token, binding_cookie = await state_manager.create_state(auth_request)
    return _redirect_to_google(
        google_client, get_public_base_url(request), state_token,
        approved_cookie, binding_cookie, clear_csrf_cookie,
    )


@oauth_router.get("/callback", name="oauth_callback")
async def oauth_callback(
    request: Request,
    handler: Annotated[OAuthCallbackHandler, Depends(get_callback_handler)],
) -> Response:
    return await handler.handle(request, callback_url=f"{get_public_base_url(request)}/callback")


# --- Token & Registration ---

@oauth_router.post("/token", response_model=TokenResponse, name="oauth_token")
async def token(
    grant_type: Annotated[str, Form(...)],
    provider: Annotated[GatewayOAuthProvider, Depends(get_oauth_provider)],
    code: Annotated[Optional[str], Form()] = None,
    redirect_uri: Annotated[Optional[str], Form()] = None,
    client_id: Annotated[Optional[str], Form()] = None,
    code_verifier: Annotated[Optional[str], Form()] = None,
):
    """OAuth token endpoint exchanging authorization codes for gateway access tokens."""
    try:
        token_response = await provider.handle_token_request(
            grant_type=grant_type,
            code=code,
            redirect_uri=redirect_uri,
            client_id=client_id,
            code_verifier=code_verifier,
        )
    except OAuthError as e:
        logger.error(f"Token endpoint OAuthError: {e.error} - {e.error_description}")
        raise
    return JSONResponse(
        token_response.model_dump(exclude_none=True),
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )


@oauth_router.post("/register", response_model=OAuthClient, status_code=status.HTTP_201_CREATED, name="oauth_register")
async def register_client(
    registration: ClientRegistrationRequest,
    provider: Annotated[GatewayOAuthProvider, Depends(get_oauth_provider)],
):
    return await provider.register_client(registration)


@oauth_router.get(
    "/.well-known/oauth-authorization-server",
    response_model=WellKnownOAuthMetadata,
    name="oauth_metadata"
)
async def get_oauth_metadata(request: Request):
    """OAuth discovery endpoint providing server metadata."""
    base_url = get_public_base_url(request)
    try:
        auth_endpoint_path = request.app.url_path_for("oauth_authorize_get")
        token_endpoint_path = request.app.url_path_for("oauth_token")
        register_endpoint_path = request.app.url_path_for("oauth_register")
    except NoMatchFound as e_url_path:
        logger.error(f"Error generating URL paths for .well-known metadata: {e_url_path}", exc_info=True)
        raise ServerError(error_description="Could not generate .well-known metadata URLs.")

    return WellKnownOAuthMetadata(
        issuer=base_url,
        authorization_endpoint=f"{base_url}{auth_endpoint_path}",
        token_endpoint=f"{base_url}{token_endpoint_path}",
        registration_endpoint=f"{base_url}{register_endpoint_path}",
    )


@oauth_router.get(
    "/.well-known/oauth-protected-resource",
    response_model=ProtectedResourceMetadata,
    name="oauth_protected_resource_metadata"
)
async def get_protected_resource_metadata(request: Request):
    base_url = get_public_base_url(request)
    return ProtectedResourceMetadata(resource=f"{base_url}/mcp", authorization_servers=[base_url])
