# mcp_gateway/oauth/provider.py
import hashlib
import json
import logging
import secrets
from typing import Optional, Dict, Any
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

from ..storage.kv_interfaces import AbstractKeyValueStore
from ..utils.security import FernetEncryptor
from .errors import (
    InvalidRequestError, InvalidClientError, InvalidGrantError,
    UnsupportedGrantTypeError, ServerError
)
from .models import (
    AuthRequestInfo, AuthCodeGrant, AccessTokenGrant, ClientRegistrationRequest,
    OAuthClient, TokenResponse
)
from .pkce import verify_pkce_s256

logger = logging.getLogger(__name__)

CLIENT_KEY_PREFIX = "oauth:client:"
AUTH_CODE_KEY_PREFIX = "oauth:code:"
ACCESS_TOKEN_KEY_PREFIX = "oauth:access:"

AUTH_CODE_LIFETIME_SECONDS = 600  # 10 minutes
DEFAULT_ACCESS_TOKEN_LIFETIME_SECONDS = 3600  # 1 hour


def _hash_access_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _is_acceptable_redirect_uri(uri: str) -> bool:
    parts = urlsplit(uri)
    if not parts.scheme or parts.fragment:
        return False
    if parts.scheme == "http":
        return parts.hostname in ("localhost", "127.0.0.1", "::1")
    if parts.scheme == "https":
        return bool(parts.netloc)
    # Native clients may register private-use schemes (RFC 8252)
    return "." in parts.scheme or bool(parts.netloc)


class GatewayOAuthProvider:
    """
    The gateway's own OAuth 2.1 authorization server for MCP clients.

    Google authenticates the user; this provider then issues an authorization
    code to the MCP client and exchanges it (PKCE S256 only) for an opaque
    gateway access token. Identity props travel with the code and the token,
    encrypted at rest.
    """

    def __init__(
        self,
        kv_store: AbstractKeyValueStore,
        encryptor: FernetEncryptor,
        access_token_ttl_seconds: int = DEFAULT_ACCESS_TOKEN_LIFETIME_SECONDS,
    ):
        self.kv_store = kv_store
        self.encryptor = encryptor
        self.access_token_ttl_seconds = access_token_ttl_seconds

    # --- clients ---

    async def register_client(self, registration: ClientRegistrationRequest) -> OAuthClient:
        """Dynamic client registration for public clients (RFC 7591 subset)."""
        for uri in registration.redirect_uris:
            if not _is_acceptable_redirect_uri(uri):
                logger.warning(f"Client registration rejected redirect_uri '{uri}'.")
                raise InvalidRequestError(f"Invalid redirect_uri: {uri}")

        if registration.token_endpoint_auth_method not in (None, "none"):
            raise InvalidRequestError("Only public clients (token_endpoint_auth_method 'none') are supported.")
        if registration.grant_types and "authorization_code" not in registration.grant_types:
            raise InvalidRequestError("grant_types must include 'authorization_code'.")

        client = OAuthClient(
            client_id=secrets.token_urlsafe(16),
            client_name=registration.client_name,
            redirect_uris=registration.redirect_uris,
        )
        await self.kv_store.put(f"{CLIENT_KEY_PREFIX}{client.client_id}", client.model_dump_json())
        logger.info(f"Registered OAuth client '{client.client_id}' ({client.client_name or 'unnamed'}).")
        return client

    async def lookup_client(self, client_id: str) -> Optional[OAuthClient]:
        raw = await self.kv_store.get(f"{CLIENT_KEY_PREFIX}{client_id}")
        if not raw:
            return None
        return OAuthClient.model_validate_json(raw)

    async def _validate_client(self, client_id: str, redirect_uri: Optional[str] = None) -> OAuthClient:
        """
        Validates the client_id and optionally checks that redirect_uri is
        registered for it.

        Raises:
            InvalidClientError: If client_id is unknown
            InvalidRequestError: If redirect_uri is not registered for the client
        """
        client = await self.lookup_client(client_id)
        if not client:
            logger.warning(f"Unknown client_id: {client_id}")
            raise InvalidClientError(f"Unknown client_id: {client_id}")

        if redirect_uri is not None and redirect_uri not in client.redirect_uris:
            logger.warning(
                f"Redirect URI '{redirect_uri}' not registered for client '{client_id}'. "
                f"Registered: {client.redirect_uris}"
            )
            raise InvalidRequestError("Invalid redirect_uri for the client.")
        return client

    # --- authorization ---

    async def validate_authorization_request(self, auth_request: AuthRequestInfo) -> OAuthClient:
        """Checks response type, client, redirect URI and the mandatory PKCE S256 challenge."""
        logger.info(f"Validating authorization request for client '{auth_request.client_id}'.")

        if auth_request.response_type != "code":
            logger.warning(f"Unsupported response_type: {auth_request.response_type}")
            raise InvalidRequestError("Response type must be 'code'.")

        client = await self._validate_client(auth_request.client_id, auth_request.redirect_uri)

        if not auth_request.code_challenge or not auth_request.code_challenge_method:
            logger.warning("PKCE code_challenge or code_challenge_method missing.")
            raise InvalidRequestError("PKCE code_challenge and code_challenge_method are required.")
        if auth_request.code_challenge_method != "S256":
            logger.warning(f"Unsupported PKCE method: {auth_request.code_challenge_method}.")
            raise InvalidRequestError("PKCE code_challenge_method 'S256' is required.")
        return client

    def _encrypt_props(self, props: Dict[str, Any]) -> str:
        encrypted = self.encryptor.encrypt(json.dumps(props))
        if encrypted is None:
            raise ServerError("Identity props could not be encrypted. Check PROPS_ENCRYPTION_KEY.")
        return encrypted

    def _decrypt_props(self, encrypted: str) -> Optional[Dict[str, Any]]:
        decrypted = self.encryptor.decrypt(encrypted)
        if decrypted is None:
            return None
        return json.loads(decrypted)

    async def complete_authorization(
        self,
        auth_request: AuthRequestInfo,
        user_id: str,
        props: Dict[str, Any],
        scope: Optional[str] = None,
    ) -> str:
        """
        Issue a single-use authorization code for an authenticated user.

        Returns the client redirect URI carrying the code and the client's state.
        """
        if not auth_request.code_challenge:
            raise InvalidRequestError("PKCE code_challenge is required.")

        code = secrets.token_urlsafe(32)
        grant = AuthCodeGrant(
            client_id=auth_request.client_id,
            redirect_uri=auth_request.redirect_uri,
            scope=scope,
            user_id=user_id,
            code_challenge=auth_request.code_challenge,
            code_challenge_method=auth_request.code_challenge_method or "S256",
            encrypted_props=self._encrypt_props(props),
        )
        await self.kv_store.put(
            f"{AUTH_CODE_KEY_PREFIX}{code}",
            grant.model_dump_json(),
            ttl_seconds=AUTH_CODE_LIFETIME_SECONDS,
        )
        logger.info(f"Authorization code issued for user '{user_id}', client '{auth_request.client_id}'.")

        redirect_params = {"code": code}
        if auth_request.state:
            redirect_params["state"] = auth_request.state
        return self._append_query(auth_request.redirect_uri, redirect_params)

    @staticmethod
    def _append_query(base_uri: str, params: Dict[str, str]) -> str:
        split_url = urlsplit(base_uri)
        query = parse_qsl(split_url.query, keep_blank_values=True) + list(params.items())
        return urlunsplit(split_url._replace(query=urlencode(query)))

    def build_error_redirect_uri(
        self,
        redirect_uri: str,
        error: str,
        error_description: Optional[str] = None,
        state: Optional[str] = None
    ) -> str:
        logger.warning(
            f"Building error redirect to '{redirect_uri}': "
            f"error='{error}', desc='{error_description}'"
        )
        params = {"error": error}
        if error_description:
            params["error_description"] = error_description
        if state:
            params["state"] = state
        return self._append_query(redirect_uri, params)

    # --- token endpoint ---

    async def handle_token_request(
        self,
        grant_type: str,
        code: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        client_id: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> TokenResponse:
        logger.info(f"Handling token request for grant_type '{grant_type}', client '{client_id}'.")
        if grant_type != "authorization_code":
            raise UnsupportedGrantTypeError(f"Grant type '{grant_type}' is not supported.")
        if not code or not redirect_uri or not client_id:
            raise InvalidRequestError(
                "Authorization code, redirect_uri, and client_id are required for authorization_code grant."
            )
        if not code_verifier:
            raise InvalidRequestError("code_verifier is required for PKCE.")

        await self._validate_client(client_id, redirect_uri)

        code_key = f"{AUTH_CODE_KEY_PREFIX}{code}"
        raw_grant = await self.kv_store.get(code_key)
        if not raw_grant:
            logger.warning("Invalid authorization code (not found or expired).")
            raise InvalidGrantError("Invalid authorization code.")
        # Codes are single use, whatever the outcome of this request
        await self.kv_store.delete(code_key)
        grant = AuthCodeGrant.model_validate_json(raw_grant)

        if grant.client_id != client_id:
            logger.warning(f"Client ID mismatch. Expected {grant.client_id}, got {client_id}.")
            raise InvalidGrantError("Authorization code was not issued to this client.")
        if grant.redirect_uri != redirect_uri:
            logger.warning(f"Redirect URI mismatch. Expected {grant.redirect_uri}, got {redirect_uri}.")
            raise InvalidGrantError("Redirect URI mismatch.")
        if grant.code_challenge_method != "S256" or not verify_pkce_s256(code_verifier, grant.code_challenge):
            logger.warning("PKCE verification failed for authorization code.")
            raise InvalidGrantError("PKCE verification failed: Invalid code_verifier.")

        access_token = secrets.token_urlsafe(32)
        token_grant = AccessTokenGrant(
            client_id=grant.client_id,
            user_id=grant.user_id,
            scope=grant.scope,
            encrypted_props=grant.encrypted_props,
        )
        await self.kv_store.put(
            f"{ACCESS_TOKEN_KEY_PREFIX}{_hash_access_token(access_token)}",
            token_grant.model_dump_json(),
            ttl_seconds=self.access_token_ttl_seconds,
        )
        logger.info(f"Access token issued for client '{grant.client_id}', user '{grant.user_id}'.")
        return TokenResponse(
            access_token=access_token,
            token_type="Bearer",
            expires_in=self.access_token_ttl_seconds,
            scope=grant.scope,
        )

    async def load_access_token_props(self, access_token: str) -> Optional[Dict[str, Any]]:
        """Decrypted identity props for a live gateway access token, else None."""
        if not access_token:
            return None
        raw = await self.kv_store.get(f"{ACCESS_TOKEN_KEY_PREFIX}{_hash_access_token(access_token)}")
        if not raw:
            return None
        grant = AccessTokenGrant.model_validate_json(raw)
        props = self._decrypt_props(grant.encrypted_props)
        if props is None:
            logger.error(f"Could not decrypt props for access token of user '{grant.user_id}'.")
        return props
