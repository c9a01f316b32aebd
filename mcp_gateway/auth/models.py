# mcp_gateway/auth/models.py
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field


class OAuthAuthResult(BaseModel):
    """Identity established through the Google OAuth flow."""
    method: Literal["oauth"] = "oauth"
    email: str
    name: Optional[str] = None


class MCPTokenAuthResult(BaseModel):
    """Identity established by presenting a valid MCP token."""
    method: Literal["mcp-token"] = "mcp-token"
    token_id: str
    user_id: str


AuthResult = Annotated[
    Union[OAuthAuthResult, MCPTokenAuthResult],
    Field(discriminator="method")
]
