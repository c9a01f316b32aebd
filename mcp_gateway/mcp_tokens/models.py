# mcp_gateway/mcp_tokens/models.py
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List

from ..auth.models import MCPTokenAuthResult

TOKEN_SAVE_WARNING = "Save this token now. For security reasons, it will never be shown again."


class MCPTokenMetadata(BaseModel):
    """Request provenance and usage counters attached to a token record."""
    usage_count: int = Field(default=0, ge=0)
    last_used_from_ip: Optional[str] = None
    created_from_ip: Optional[str] = None
    created_from_user_agent: Optional[str] = None


class MCPTokenUsage(BaseModel):
    """Usage counters for one token, kept under their own key apart from the record."""
    usage_count: int = Field(default=0, ge=0)
    last_used_at: Optional[str] = None
    last_used_from_ip: Optional[str] = None


class MCPTokenData(BaseModel):
    """Stored record for one issued MCP token. Indexed by the hash, never the raw token."""
    token_id: str
    user_id: str
    token_hash: str
    description: str = ""
    created_at: str  # ISO format datetime string
    last_used_at: Optional[str] = None
    revoked_at: Optional[str] = None
    revocation_reason: Optional[str] = None
    # None means the token never expires
    expires_at: Optional[str] = None
    metadata: MCPTokenMetadata = Field(default_factory=MCPTokenMetadata)

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None


class TokenGenerationResult(BaseModel):
    """Returned once from generate(); the raw token is not retrievable afterwards."""
    token: str = Field(description="The raw MCP token. Shown exactly once.")
    token_id: str
    user_id: str
    description: str
    created_at: str
    expires_at: Optional[str] = None
    warning: str = TOKEN_SAVE_WARNING


class VerifyFailure(str, Enum):
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"


class TokenVerification(BaseModel):
    """Outcome of verify(): exactly one of result or failure is set."""
    result: Optional[MCPTokenAuthResult] = None
    failure: Optional[VerifyFailure] = None

    @property
    def valid(self) -> bool:
        return self.result is not None


class TokenOperationResult(BaseModel):
    success: bool
    token_id: str
    # False when the call was a no-op, e.g. revoking an already revoked token
    changed: bool = True
    message: Optional[str] = None


class TokenGenerateRequest(BaseModel):
    """Admin request body for issuing a token on behalf of a user."""
    user_id: str = Field(description="Email address of the user who will own the token.")
    description: str = Field(default="", max_length=200, description="Human-readable label.")


class TokenRevokeRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class TokenDescriptionUpdate(BaseModel):
    description: str = Field(max_length=200)


class TokenListItem(BaseModel):
    """Admin view of a token. Never carries the raw token or full hash."""
    token_id: str
    description: str
    created_at: str
    last_used_at: Optional[str] = None
    revoked_at: Optional[str] = None
    revocation_reason: Optional[str] = None
    expires_at: Optional[str] = None
    is_revoked: bool
    usage_count: int
    token_prefix: str


class TokenStats(BaseModel):
    user_id: str
    total_tokens: int
    active_tokens: int
    revoked_tokens: int
    total_usage: int
    most_recently_used: Optional[str] = None


class BulkRevokeResult(BaseModel):
    success: bool
    revoked_count: int
    errors: List[str] = Field(default_factory=list)
