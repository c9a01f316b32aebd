# mcp_gateway/mcp_tokens/errors.py
from fastapi import HTTPException, status


class MCPTokenError(HTTPException):
    """Base exception class for MCP token administration errors.

    Inherits from FastAPI's HTTPException so admin endpoints can raise
    these directly.
    """

    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)


class TokenNotFoundError(MCPTokenError):
    """Raised when a token id has no mapping in the store."""

    def __init__(self, token_id: str):
        self.token_id = token_id
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Token not found: {token_id}")


class TokenOperationError(MCPTokenError):
    """Raised when an admin operation cannot be applied to an existing token."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class TokenGenerationError(MCPTokenError):
    """Raised when a token could not be generated or persisted."""

    def __init__(self, detail: str = "Failed to generate MCP token."):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
