# mcp_gateway/oauth/approval.py
import base64
import html
import json
import logging
import secrets
from typing import List, Mapping, Optional, Tuple

from fastapi.responses import HTMLResponse
from itsdangerous import BadSignature, URLSafeTimedSerializer
from pydantic import ValidationError as PydanticValidationError
from starlette.requests import Request

from .cookies import (
    APPROVED_CLIENTS_COOKIE_NAME, CSRF_COOKIE_NAME, build_clear_cookie, build_set_cookie, read_cookie
)
from .errors import CSRFMismatchError, InvalidRequestError
from .models import AuthRequestInfo, OAuthClient

logger = logging.getLogger(__name__)

APPROVED_CLIENTS_SALT = "mcp-gateway.approved-clients"
DEFAULT_APPROVAL_MAX_AGE = 2592000  # 30 days
CSRF_COOKIE_MAX_AGE = 600
CSRF_FORM_FIELD = "csrf_token"
STATE_FORM_FIELD = "state"


class ConsentManager:
    """
    Remembers which MCP clients this browser has approved and protects the
    consent form against cross-site submission.

    Approval only skips the dialog; the state binding of the OAuth flow is
    applied regardless.
    """

    def __init__(self, secret_key: str, approval_max_age: int = DEFAULT_APPROVAL_MAX_AGE):
        if not secret_key:
            raise ValueError("ConsentManager requires a cookie signing secret.")
        self.approval_max_age = approval_max_age
        self._signer = URLSafeTimedSerializer(secret_key, salt=APPROVED_CLIENTS_SALT)

    def _approved_clients(self, request: Request) -> List[str]:
        cookie_value = read_cookie(request, APPROVED_CLIENTS_COOKIE_NAME)
        if not cookie_value:
            return []
        try:
            clients = self._signer.loads(cookie_value, max_age=self.approval_max_age)
        except BadSignature:
            # Also covers SignatureExpired
            logger.info("Ignoring approved-clients cookie with invalid or expired signature.")
            return []
        if not isinstance(clients, list):
            return []
        return [str(c) for c in clients]

    def is_client_approved(self, request: Request, client_id: str) -> bool:
        return client_id in self._approved_clients(request)

    def add_approved_client(self, request: Request, client_id: str) -> str:
        """Return a Set-Cookie header with client_id added to the approved list."""
        clients = self._approved_clients(request)
        if client_id not in clients:
            clients.append(client_id)
        signed = self._signer.dumps(clients)
        logger.info(f"Client '{client_id}' added to the approved list for this browser.")
        return build_set_cookie(APPROVED_CLIENTS_COOKIE_NAME, signed, self.approval_max_age)

    @staticmethod
    def generate_csrf_protection() -> Tuple[str, str]:
        token = secrets.token_urlsafe(32)
        return token, build_set_cookie(CSRF_COOKIE_NAME, token, CSRF_COOKIE_MAX_AGE, same_site="Strict")

    @staticmethod
    def validate_csrf_token(form: Mapping[str, str], request: Request) -> str:
        """
        Compare the form's CSRF token with the cookie set alongside the dialog.

        Returns a header clearing the CSRF cookie, since each token is single use.
        """
        form_token = form.get(CSRF_FORM_FIELD)
        cookie_token = read_cookie(request, CSRF_COOKIE_NAME)
        if not form_token or not isinstance(form_token, str):
            logger.warning("Consent form submitted without CSRF token.")
            raise CSRFMismatchError("Missing CSRF token in form data.")
        if not cookie_token:
            logger.warning("Consent form submitted without CSRF cookie.")
            raise CSRFMismatchError("Missing CSRF token cookie.")
        if not secrets.compare_digest(form_token, cookie_token):
            logger.warning("Consent form CSRF token mismatch.")
            raise CSRFMismatchError("CSRF token mismatch.")
        return build_clear_cookie(CSRF_COOKIE_NAME)


def encode_approval_state(auth_request: AuthRequestInfo) -> str:
    payload = json.dumps({"oauthReqInfo": auth_request.model_dump(exclude_none=True)})
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_approval_state(encoded_state: Optional[str]) -> AuthRequestInfo:
    """Parse the consent form's hidden state back into the original request."""
    if not encoded_state:
        raise InvalidRequestError("Missing state in form data.")
    try:
        data = json.loads(base64.b64decode(encoded_state, validate=True).decode("utf-8"))
    except ValueError:
        raise InvalidRequestError("Invalid state data.")
    if not isinstance(data, dict) or not isinstance(data.get("oauthReqInfo"), dict):
        raise InvalidRequestError("Invalid request.")
    try:
        auth_request = AuthRequestInfo.model_validate(data["oauthReqInfo"])
    except PydanticValidationError:
        raise InvalidRequestError("Invalid request.")
    if not auth_request.client_id:
        raise InvalidRequestError("Invalid request.")
    return auth_request


def render_approval_dialog(
    auth_request: AuthRequestInfo,
    client: Optional[OAuthClient],
    csrf_token: str,
    server_name: str,
    server_description: str,
    set_cookie: Optional[str] = None,
) -> HTMLResponse:
    client_name = html.escape((client.client_name if client else None) or auth_request.client_id)
    redirect_uri = html.escape(auth_request.redirect_uri)
    body = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{html.escape(server_name)} | Authorization Request</title>
</head>
<body>
  <main>
    <h1>{html.escape(server_name)}</h1>
    <p>{html.escape(server_description)}</p>
    <h2>{client_name} is requesting access</h2>
    <p>After approval you will sign in with Google and be returned to <code>{redirect_uri}</code>.</p>
    <form method="post" action="/authorize">
      <input type="hidden" name="{STATE_FORM_FIELD}" value="{html.escape(encode_approval_state(auth_request))}">
      <input type="hidden" name="{CSRF_FORM_FIELD}" value="{html.escape(csrf_token)}">
      <button type="button" onclick="window.history.back()">Cancel</button>
      <button type="submit">Approve</button>
    </form>
  </main>
</body>
</html>"""
    response = HTMLResponse(body)
    if set_cookie:
        response.headers.append("Set-Cookie", set_cookie)
    return response
