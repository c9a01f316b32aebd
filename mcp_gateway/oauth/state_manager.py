# mcp_gateway/oauth/state_manager.py
import hashlib
import logging
import secrets
from typing import Tuple

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from starlette.requests import Request

from ..storage.kv_interfaces import AbstractKeyValueStore
from .cookies import BINDING_COOKIE_NAME, build_clear_cookie, build_set_cookie, read_cookie
from .errors import CSRFMismatchError, InvalidRequestError, StateNotFoundError
from .models import AuthRequestInfo, OAuthStateRecord

logger = logging.getLogger(__name__)

STATE_KEY_PREFIX = "oauth:state:"
BINDING_COOKIE_SALT = "mcp-gateway.oauth-state-binding"
DEFAULT_STATE_TTL_SECONDS = 600


def _hash_state(state_token: str) -> str:
    return hashlib.sha256(state_token.encode("utf-8")).hexdigest()


class OAuthStateManager:
    """
    Binds each pending authorization to the browser that started it.

    A state token is stored server-side with a TTL and, in parallel, the
    browser receives a signed cookie holding the SHA-256 of that token. The
    callback only proceeds when both halves agree, so a state token lifted
    from another browser's flow cannot be replayed here.
    """

    def __init__(
        self,
        kv_store: AbstractKeyValueStore,
        secret_key: str,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
    ):
        if not secret_key:
            raise ValueError("OAuthStateManager requires a cookie signing secret.")
        self.kv_store = kv_store
        self.ttl_seconds = ttl_seconds
        self._signer = URLSafeTimedSerializer(secret_key, salt=BINDING_COOKIE_SALT)

    async def create_state(self, auth_request: AuthRequestInfo) -> Tuple[str, str]:
        """Persist the request under a fresh state token and return (token, Set-Cookie)."""
        state_token = secrets.token_urlsafe(32)
        record = OAuthStateRecord(auth_request=auth_request)
        await self.kv_store.put(
            f"{STATE_KEY_PREFIX}{state_token}",
            record.model_dump_json(),
            ttl_seconds=self.ttl_seconds,
        )
        binding_value = self._signer.dumps(_hash_state(state_token))
        logger.debug(f"Created OAuth state for client '{auth_request.client_id}'.")
        return state_token, build_set_cookie(BINDING_COOKIE_NAME, binding_value, self.ttl_seconds)

    async def validate_state(self, request: Request) -> Tuple[AuthRequestInfo, str]:
        """
        Check the callback's state against the store and the binding cookie.

        The state record is consumed on success. Returns the original
        authorization request and a header that clears the binding cookie.
        """
        state_token = request.query_params.get("state")
        if not state_token:
            logger.warning("OAuth callback without state parameter.")
            raise InvalidRequestError("Missing state parameter.")

        state_key = f"{STATE_KEY_PREFIX}{state_token}"
        raw_record = await self.kv_store.get(state_key)
        if not raw_record:
            logger.warning("OAuth callback with unknown or expired state.")
            raise StateNotFoundError()

        cookie_value = read_cookie(request, BINDING_COOKIE_NAME)
        if not cookie_value:
            logger.warning("OAuth callback without session binding cookie.")
            raise CSRFMismatchError("Missing session binding cookie. Please restart the sign-in flow.")

        try:
            bound_hash = self._signer.loads(cookie_value, max_age=self.ttl_seconds)
        except SignatureExpired:
            logger.warning("OAuth session binding cookie expired.")
            raise CSRFMismatchError("Session binding expired. Please restart the sign-in flow.")
        except BadSignature:
            logger.warning("OAuth session binding cookie has an invalid signature.")
            raise CSRFMismatchError()

        if not isinstance(bound_hash, str) or not secrets.compare_digest(bound_hash, _hash_state(state_token)):
            logger.warning("OAuth state does not match the session binding cookie.")
            raise CSRFMismatchError("State does not match this browser session.")

        await self.kv_store.delete(state_key)
        record = OAuthStateRecord.model_validate_json(raw_record)
        return record.auth_request, self.clear_binding_cookie()

    def clear_binding_cookie(self) -> str:
        return build_clear_cookie(BINDING_COOKIE_NAME)
