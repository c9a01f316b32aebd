# mcp_gateway/mcp_tokens/__init__.py
"""
MCP token module initialization.

Long-lived opaque tokens for clients that cannot run the OAuth flow:
generation, verification, revocation and the admin API over them.
"""

# Data models for token records and admin responses
from .models import (
    MCPTokenData,
    MCPTokenMetadata,
    TokenGenerationResult,
    TokenVerification,
    VerifyFailure,
    TokenOperationResult,
    TokenListItem,
    TokenStats,
    BulkRevokeResult,
)

# Token-specific error classes
from .errors import (
    MCPTokenError,
    TokenNotFoundError,
    TokenOperationError,
    TokenGenerationError,
)

# Token material generation and hashing
from .token_manager import (
    MCPTokenManagerProtocol,
    DefaultMCPTokenManager,
)

# Lifecycle and administration services
from .service import MCPTokenService
from .admin import TokenAdminService

__all__ = [
    # Data models
    "MCPTokenData",
    "MCPTokenMetadata",
    "TokenGenerationResult",
    "TokenVerification",
    "VerifyFailure",
    "TokenOperationResult",
    "TokenListItem",
    "TokenStats",
    "BulkRevokeResult",

    # Exception classes
    "MCPTokenError",
    "TokenNotFoundError",
    "TokenOperationError",
    "TokenGenerationError",

    # Token management
    "MCPTokenManagerProtocol",
    "DefaultMCPTokenManager",

    # Services
    "MCPTokenService",
    "TokenAdminService",
]
