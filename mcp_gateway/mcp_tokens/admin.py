# mcp_gateway/mcp_tokens/admin.py
import logging
from typing import List, Optional

from .errors import MCPTokenError
from .models import BulkRevokeResult, MCPTokenData, TokenListItem, TokenStats
from .service import MCPTokenService
from .token_manager import token_prefix_for_display

logger = logging.getLogger(__name__)


class TokenAdminService:
    """
    Read and bulk-administration layer over MCPTokenService.

    Every listing hydrates records through the token id -> hash -> record
    chain, so ids whose records disappeared are skipped rather than reported.
    """

    def __init__(self, token_service: MCPTokenService):
        self.token_service = token_service

    async def _load_user_records(self, user_id: str) -> List[MCPTokenData]:
        records = []
        for token_id in await self.token_service.get_user_token_ids(user_id):
            record = await self.token_service.get_token_metadata(token_id)
            if record is None:
                logger.warning(f"Admin: token id {token_id} listed for '{user_id}' has no record. Skipping.")
                continue
            records.append(record)
        return records

    async def list_user_tokens(self, user_id: str) -> List[TokenListItem]:
        logger.info(f"Admin: Listing tokens for user '{user_id}'")
        return [
            TokenListItem(
                token_id=record.token_id,
                description=record.description,
                created_at=record.created_at,
                last_used_at=record.last_used_at,
                revoked_at=record.revoked_at,
                revocation_reason=record.revocation_reason,
                expires_at=record.expires_at,
                is_revoked=record.is_revoked,
                usage_count=record.metadata.usage_count,
                token_prefix=token_prefix_for_display(record.token_hash),
            )
            for record in await self._load_user_records(user_id)
        ]

    async def get_user_token_stats(self, user_id: str) -> TokenStats:
        records = await self._load_user_records(user_id)
        revoked = sum(1 for r in records if r.is_revoked)
        last_used = [r.last_used_at for r in records if r.last_used_at]
        return TokenStats(
            user_id=user_id,
            total_tokens=len(records),
            active_tokens=len(records) - revoked,
            revoked_tokens=revoked,
            total_usage=sum(r.metadata.usage_count for r in records),
            # ISO-8601 UTC strings sort chronologically
            most_recently_used=max(last_used) if last_used else None,
        )

    async def revoke_all_user_tokens(self, user_id: str, reason: Optional[str] = None) -> BulkRevokeResult:
        """
        Revoke every token owned by user_id, typically when off-boarding.

        Already revoked tokens are neither counted nor reported as errors;
        other failures are collected and do not stop the batch.
        """
        logger.info(f"Admin: Revoking all tokens for user '{user_id}'")
        revoked_count = 0
        errors: List[str] = []
        for token_id in await self.token_service.get_user_token_ids(user_id):
            try:
                result = await self.token_service.revoke(token_id, reason)
                if result.success and result.changed:
                    revoked_count += 1
            except MCPTokenError as e:
                errors.append(f"{token_id}: {e.detail}")
            except Exception as e:
                logger.error(f"Admin: Unexpected error revoking {token_id}: {e}", exc_info=True)
                errors.append(f"{token_id}: {e}")
        return BulkRevokeResult(success=not errors, revoked_count=revoked_count, errors=errors)

    async def update_token_description(self, token_id: str, description: str) -> MCPTokenData:
        return await self.token_service.update_description(token_id, description)

    @staticmethod
    def validate_admin_access(
        email: Optional[str],
        allowed_domain: Optional[str],
        admin_emails: Optional[List[str]] = None,
    ) -> bool:
        """
        Decide whether an authenticated user may administer tokens.

        With an explicit admin list only listed addresses qualify; otherwise any
        address in the allowed domain does.
        """
        if not email:
            return False
        normalized = email.strip().lower()
        if admin_emails:
            return normalized in {e.strip().lower() for e in admin_emails}
        if not allowed_domain:
            return False
        return normalized.endswith("@" + allowed_domain.strip().lower())
