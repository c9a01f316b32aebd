# mcp_gateway/mcp_tokens/service.py
import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set, Tuple

from pydantic import ValidationError

from ..auth.models import MCPTokenAuthResult
from ..storage.kv_interfaces import AbstractKeyValueStore
from .errors import TokenNotFoundError, TokenOperationError, TokenGenerationError
from .models import (
    MCPTokenData, MCPTokenMetadata, MCPTokenUsage, TokenGenerationResult, TokenOperationResult,
    TokenVerification, VerifyFailure
)
from .token_manager import MCPTokenManagerProtocol, DefaultMCPTokenManager

logger = logging.getLogger(__name__)

TOKEN_HASH_PREFIX = "token:hash:"
TOKEN_USAGE_PREFIX = "token:usage:"
TOKEN_ID_PREFIX = "token:id:"
USER_TOKENS_PREFIX = "user:tokens:"
REVOKED_TOKENS_KEY = "revoked:tokens"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MCPTokenService:
    """
    Issues, verifies and revokes long-lived MCP tokens.

    Key layout in the key-value store:
        token:hash:{hash}     -> MCPTokenData JSON
        token:usage:{hash}    -> MCPTokenUsage JSON (written only by usage updates)
        token:id:{token_id}   -> hash
        user:tokens:{user_id} -> JSON list of token ids (kept until hard delete)
        revoked:tokens        -> JSON list of currently revoked token ids

    The store is only eventually consistent, so a revocation written on one
    node may briefly go unnoticed by another.
    """

    def __init__(
        self,
        kv_store: AbstractKeyValueStore,
        token_manager: Optional[MCPTokenManagerProtocol] = None,
        expiry_days: Optional[int] = None,
    ):
        self.kv_store = kv_store
        self.token_manager = token_manager or DefaultMCPTokenManager()
        self.expiry_days = expiry_days
        self._background_tasks: Set[asyncio.Task] = set()

    # --- storage helpers ---

    async def _read_id_list(self, key: str) -> List[str]:
        raw = await self.kv_store.get(key)
        if not raw:
            return []
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Corrupt id list under '{key}'. Treating as empty.")
            return []
        return [str(v) for v in value] if isinstance(value, list) else []

    async def _write_id_list(self, key: str, ids: List[str]) -> None:
        await self.kv_store.put(key, json.dumps(ids))

    async def _load_usage(self, token_hash: str) -> Optional[MCPTokenUsage]:
        raw = await self.kv_store.get(f"{TOKEN_USAGE_PREFIX}{token_hash}")
        if not raw:
            return None
        try:
            return MCPTokenUsage.model_validate_json(raw)
        except ValidationError:
            logger.error(f"Corrupt usage entry for hash ...{token_hash[-8:]}. Ignoring it.")
            return None

    async def _load_record(self, token_hash: str) -> Optional[MCPTokenData]:
        raw = await self.kv_store.get(f"{TOKEN_HASH_PREFIX}{token_hash}")
        if not raw:
            return None
        record = MCPTokenData.model_validate_json(raw)
        usage = await self._load_usage(token_hash)
        if usage:
            record.metadata.usage_count = usage.usage_count
            record.last_used_at = usage.last_used_at
            record.metadata.last_used_from_ip = usage.last_used_from_ip
        return record

    async def _save_record(self, record: MCPTokenData) -> None:
        await self.kv_store.put(f"{TOKEN_HASH_PREFIX}{record.token_hash}", record.model_dump_json())

    async def _resolve_token_id(self, token_id: str) -> Tuple[str, MCPTokenData]:
        token_hash = await self.kv_store.get(f"{TOKEN_ID_PREFIX}{token_id}")
        if not token_hash:
            raise TokenNotFoundError(token_id)
        record = await self._load_record(token_hash)
        if not record:
            logger.error(f"Token id '{token_id}' maps to a hash with no record.")
            raise TokenOperationError(f"Token record missing for {token_id}")
        return token_hash, record

    # --- lifecycle ---

    async def generate(
        self,
        user_id: str,
        description: str = "",
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenGenerationResult:
        """
        Create a token for user_id and persist its hash and indexes.

        The raw token is only present in the returned result.
        """
        if not user_id:
            raise TokenOperationError("user_id is required to generate a token.")

        token, token_hash = self.token_manager.generate_token_and_hash()
        token_id = self.token_manager.generate_token_id()
        now = _utc_now()
        expires_at = (
            (now + timedelta(days=self.expiry_days)).isoformat()
            if self.expiry_days is not None else None
        )

        record = MCPTokenData(
            token_id=token_id,
            user_id=user_id,
            token_hash=token_hash,
            description=description,
            created_at=now.isoformat(),
            expires_at=expires_at,
            metadata=MCPTokenMetadata(
                created_from_ip=request_ip,
                created_from_user_agent=user_agent,
            ),
        )

        try:
            await self._save_record(record)
            await self.kv_store.put(f"{TOKEN_ID_PREFIX}{token_id}", token_hash)
            user_key = f"{USER_TOKENS_PREFIX}{user_id}"
            user_token_ids = await self._read_id_list(user_key)
            if token_id not in user_token_ids:
                user_token_ids.append(token_id)
            await self._write_id_list(user_key, user_token_ids)
        except Exception as e:
            logger.error(f"Failed to persist token {token_id} for user '{user_id}': {e}", exc_info=True)
            raise TokenGenerationError() from e

        logger.info(
            f"Generated MCP token {token_id} for user '{user_id}' "
            f"(expires: {expires_at or 'never'})."
        )
        return TokenGenerationResult(
            token=token,
            token_id=token_id,
            user_id=user_id,
            description=description,
            created_at=record.created_at,
            expires_at=expires_at,
        )

    async def verify(self, token: str, request_ip: Optional[str] = None) -> TokenVerification:
        """
        Check a raw token and return the owning identity or a failure kind.

        Usage metadata is written by a background task so the caller never
        waits on the store write.
        """
        if not self.token_manager.is_valid_format(token):
            logger.warning("MCP token verification failed: malformed token.")
            return TokenVerification(failure=VerifyFailure.MALFORMED)

        token_hash = self.token_manager.hash_token(token)
        record = await self._load_record(token_hash)
        if not record:
            logger.warning(f"MCP token verification failed: no record for hash ...{token_hash[-8:]}.")
            return TokenVerification(failure=VerifyFailure.NOT_FOUND)

        if record.revoked_at:
            logger.warning(f"MCP token verification failed: {record.token_id} revoked at {record.revoked_at}.")
            return TokenVerification(failure=VerifyFailure.REVOKED)

        if record.expires_at and datetime.fromisoformat(record.expires_at) <= _utc_now():
            logger.warning(f"MCP token verification failed: {record.token_id} expired at {record.expires_at}.")
            return TokenVerification(failure=VerifyFailure.EXPIRED)

        self._schedule_usage_update(token_hash, request_ip)
        return TokenVerification(
            result=MCPTokenAuthResult(token_id=record.token_id, user_id=record.user_id)
        )

    def _schedule_usage_update(self, token_hash: str, request_ip: Optional[str]) -> None:
        task = asyncio.create_task(self._update_usage(token_hash, request_ip))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _update_usage(self, token_hash: str, request_ip: Optional[str]) -> None:
        # Only the usage key is written; concurrent verifications may lose increments.
        try:
            usage = await self._load_usage(token_hash)
            if usage is None:
                record = await self._load_record(token_hash)
                if not record:
                    return
                usage = MCPTokenUsage(
                    usage_count=record.metadata.usage_count,
                    last_used_at=record.last_used_at,
                    last_used_from_ip=record.metadata.last_used_from_ip,
                )
            usage.usage_count += 1
            usage.last_used_at = _utc_now().isoformat()
            if request_ip:
                usage.last_used_from_ip = request_ip
            await self.kv_store.put(f"{TOKEN_USAGE_PREFIX}{token_hash}", usage.model_dump_json())
        except Exception as e:
            logger.error(f"Background usage update failed for hash ...{token_hash[-8:]}: {e}", exc_info=True)

    async def drain_background_tasks(self) -> None:
        """Wait for pending usage updates. Used on shutdown and in tests."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def revoke(self, token_id: str, reason: Optional[str] = None) -> TokenOperationResult:
        """Soft-revoke a token. Revoking an already revoked token succeeds without changes."""
        token_hash, record = await self._resolve_token_id(token_id)

        revoked_ids = await self._read_id_list(REVOKED_TOKENS_KEY)
        if record.revoked_at:
            if token_id not in revoked_ids:
                revoked_ids.append(token_id)
                await self._write_id_list(REVOKED_TOKENS_KEY, revoked_ids)
            logger.info(f"Token {token_id} already revoked at {record.revoked_at}.")
            return TokenOperationResult(
                success=True, token_id=token_id, changed=False, message="Token already revoked."
            )

        record.revoked_at = _utc_now().isoformat()
        record.revocation_reason = reason
        await self._save_record(record)
        if token_id not in revoked_ids:
            revoked_ids.append(token_id)
            await self._write_id_list(REVOKED_TOKENS_KEY, revoked_ids)

        logger.info(f"Revoked token {token_id} for user '{record.user_id}'. Reason: {reason or 'n/a'}")
        return TokenOperationResult(success=True, token_id=token_id, message="Token revoked.")

    async def unrevoke(self, token_id: str) -> TokenOperationResult:
        """Restore a revoked token. Admin-only: a leaked token becomes usable again."""
        token_hash, record = await self._resolve_token_id(token_id)

        was_revoked = record.revoked_at is not None
        if was_revoked:
            record.revoked_at = None
            record.revocation_reason = None
            await self._save_record(record)

        revoked_ids = await self._read_id_list(REVOKED_TOKENS_KEY)
        if token_id in revoked_ids:
            await self._write_id_list(REVOKED_TOKENS_KEY, [i for i in revoked_ids if i != token_id])

        if not was_revoked:
            return TokenOperationResult(
                success=True, token_id=token_id, changed=False, message="Token was not revoked."
            )
        logger.warning(f"Un-revoked token {token_id} for user '{record.user_id}'.")
        return TokenOperationResult(success=True, token_id=token_id, message="Token restored.")

    async def delete(self, token_id: str) -> TokenOperationResult:
        """Irreversibly remove a token record and every index entry pointing at it."""
        token_hash = await self.kv_store.get(f"{TOKEN_ID_PREFIX}{token_id}")
        if not token_hash:
            raise TokenNotFoundError(token_id)

        record = await self._load_record(token_hash)
        await self.kv_store.delete(f"{TOKEN_HASH_PREFIX}{token_hash}")
        await self.kv_store.delete(f"{TOKEN_USAGE_PREFIX}{token_hash}")
        await self.kv_store.delete(f"{TOKEN_ID_PREFIX}{token_id}")

        if record:
            user_key = f"{USER_TOKENS_PREFIX}{record.user_id}"
            user_token_ids = await self._read_id_list(user_key)
            if token_id in user_token_ids:
                await self._write_id_list(user_key, [i for i in user_token_ids if i != token_id])

        revoked_ids = await self._read_id_list(REVOKED_TOKENS_KEY)
        if token_id in revoked_ids:
            await self._write_id_list(REVOKED_TOKENS_KEY, [i for i in revoked_ids if i != token_id])

        logger.warning(f"Hard-deleted token {token_id} (user: {record.user_id if record else 'unknown'}).")
        return TokenOperationResult(success=True, token_id=token_id, message="Token deleted.")

    async def get_token_metadata(self, token_id: str) -> Optional[MCPTokenData]:
        token_hash = await self.kv_store.get(f"{TOKEN_ID_PREFIX}{token_id}")
        if not token_hash:
            return None
        return await self._load_record(token_hash)

    async def update_description(self, token_id: str, description: str) -> MCPTokenData:
        _, record = await self._resolve_token_id(token_id)
        record.description = description
        await self._save_record(record)
        logger.info(f"Updated description of token {token_id}.")
        return record

    async def get_user_token_ids(self, user_id: str) -> List[str]:
        return await self._read_id_list(f"{USER_TOKENS_PREFIX}{user_id}")

    async def get_revoked_token_ids(self) -> List[str]:
        return await self._read_id_list(REVOKED_TOKENS_KEY)
