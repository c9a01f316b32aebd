# mcp_gateway/oauth/google_client.py
import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import UpstreamOAuthError
from .models import GoogleUserInfo

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://accounts.google.com/o/oauth2/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPE = "email profile"
UPSTREAM_TIMEOUT_SECONDS = 30.0


def _upstream_error_code(response: httpx.Response) -> str:
    """The OAuth `error` field of an upstream error body, never the body itself."""
    try:
        payload = response.json()
    except ValueError:
        return "unparseable body"
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return "no error code"


class GoogleOAuthClient:
    """
    Upstream identity provider calls. Nothing here is retried: a failed
    exchange or userinfo request ends the sign-in attempt.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        hosted_domain: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.hosted_domain = hosted_domain
        self._http_client = http_client

    def build_authorize_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPE,
            "state": state,
        }
        # hd only narrows the account picker; the callback still enforces the domain
        if self.hosted_domain:
            params["hd"] = self.hosted_domain
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    async def _post(self, client: httpx.AsyncClient, url: str, data: dict) -> httpx.Response:
        return await client.post(url, data=data, headers={"Accept": "application/json"})

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        """Trade the authorization code for a Google access token."""
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, GOOGLE_TOKEN_URL, form)
            else:
                async with httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT_SECONDS) as client:
                    response = await self._post(client, GOOGLE_TOKEN_URL, form)
        except httpx.HTTPError as e:
            logger.error(f"Google token exchange request failed: {e}")
            raise UpstreamOAuthError("Failed to reach the identity provider.") from e

        if response.status_code >= 400:
            logger.error(
                f"Google token exchange failed with status {response.status_code}: "
                f"{_upstream_error_code(response)}"
            )
            raise UpstreamOAuthError("Failed to exchange code for token.", upstream_status=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            logger.error(f"Google token response was not a JSON object (status {response.status_code}).")
            raise UpstreamOAuthError("Malformed token response from identity provider.", upstream_status=response.status_code)

        access_token = payload.get("access_token")
        if not access_token:
            logger.error("Google token response did not contain an access_token.")
            raise UpstreamOAuthError("Missing access token in identity provider response.", upstream_status=response.status_code)
        return access_token

    async def fetch_userinfo(self, access_token: str) -> GoogleUserInfo:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            if self._http_client is not None:
                response = await self._http_client.get(GOOGLE_USERINFO_URL, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT_SECONDS) as client:
                    response = await client.get(GOOGLE_USERINFO_URL, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Google userinfo request failed: {e}")
            raise UpstreamOAuthError("Failed to reach the identity provider.") from e

        if response.status_code >= 400:
            logger.error(
                f"Google userinfo failed with status {response.status_code}: "
                f"{_upstream_error_code(response)}"
            )
            raise UpstreamOAuthError("Failed to fetch user info.", upstream_status=response.status_code)

        try:
            return GoogleUserInfo.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.error(f"Unexpected userinfo payload from Google ({type(e).__name__}).")
            raise UpstreamOAuthError("Malformed user info from identity provider.", upstream_status=response.status_code)
