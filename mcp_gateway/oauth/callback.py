# mcp_gateway/oauth/callback.py
import logging
from typing import Optional

from fastapi.responses import JSONResponse, RedirectResponse
from starlette.requests import Request
from starlette.responses import Response

from ..auth.errors import UnauthorizedError
from ..auth.validator import validate_oauth_identity
from .errors import InvalidRequestError, OAuthError, ServerError
from .google_client import GoogleOAuthClient
from .provider import GatewayOAuthProvider
from .state_manager import OAuthStateManager

logger = logging.getLogger(__name__)


class OAuthCallbackHandler:
    """
    Completes a Google sign-in: state and binding check, code exchange,
    userinfo, domain allow-list, then an authorization code for the MCP client.

    Every response, success or failure, clears the session binding cookie.
    """

    def __init__(
        self,
        state_manager: OAuthStateManager,
        google_client: GoogleOAuthClient,
        provider: GatewayOAuthProvider,
        allowed_domain: Optional[str],
        audit_logging: bool = True,
    ):
        self.state_manager = state_manager
        self.google_client = google_client
        self.provider = provider
        self.allowed_domain = allowed_domain
        self.audit_logging = audit_logging

    async def handle(self, request: Request, callback_url: str) -> Response:
        try:
            response = await self._complete(request, callback_url)
        except (OAuthError, UnauthorizedError) as e:
            if self.audit_logging:
                logger.warning(f"AUDIT: OAuth callback failed ({e.status_code}): {e.detail}")
            response = JSONResponse(e.detail, status_code=e.status_code, headers=e.headers)
        except Exception as e:
            logger.error(f"Unexpected error in OAuth callback: {e}", exc_info=True)
            server_error = ServerError()
            response = JSONResponse(server_error.detail, status_code=server_error.status_code)
        response.headers.append("Set-Cookie", self.state_manager.clear_binding_cookie())
        return response

    async def _complete(self, request: Request, callback_url: str) -> Response:
        auth_request, _ = await self.state_manager.validate_state(request)
        if not auth_request.client_id:
            raise InvalidRequestError("Invalid OAuth request data.")

        upstream_error = request.query_params.get("error")
        if upstream_error:
            logger.info(f"Identity provider returned error '{upstream_error}' for client '{auth_request.client_id}'.")
            error_redirect = self.provider.build_error_redirect_uri(
                auth_request.redirect_uri,
                error="access_denied",
                error_description=f"Sign-in was not completed: {upstream_error}",
                state=auth_request.state,
            )
            return RedirectResponse(url=error_redirect, status_code=302)

        code = request.query_params.get("code")
        if not code:
            raise InvalidRequestError("Missing code.")

        google_access_token = await self.google_client.exchange_code(code, callback_url)
        user_info = await self.google_client.fetch_userinfo(google_access_token)

        # No authorization code is issued for an identity outside the allowed domain
        identity = validate_oauth_identity(user_info.email, user_info.name, self.allowed_domain)

        redirect_to = await self.provider.complete_authorization(
            auth_request=auth_request,
            user_id=user_info.id,
            props={
                "access_token": google_access_token,
                "email": identity.email,
                "name": identity.name,
            },
            scope=auth_request.scope,
        )
        if self.audit_logging:
            logger.info(f"AUDIT: OAuth callback succeeded for '{identity.email}' (client '{auth_request.client_id}').")
        return RedirectResponse(url=redirect_to, status_code=302)
