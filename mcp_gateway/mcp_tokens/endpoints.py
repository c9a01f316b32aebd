# mcp_gateway/mcp_tokens/endpoints.py
import logging
from fastapi import APIRouter, Depends, HTTPException, Path, Request, status
from typing import List, Annotated, Optional

from .admin import TokenAdminService
from .models import (
    BulkRevokeResult, MCPTokenData, TokenDescriptionUpdate, TokenGenerateRequest,
    TokenGenerationResult, TokenListItem, TokenOperationResult, TokenRevokeRequest, TokenStats
)
from .service import MCPTokenService
from ..dependencies import require_admin, get_token_service, get_token_admin_service

logger = logging.getLogger(__name__)

# Admin router for MCP token management - requires the admin API key or an admin OAuth identity
mcp_tokens_admin_router = APIRouter(
    prefix="/admin/tokens",
    tags=["Admin - MCP Tokens"],
    dependencies=[Depends(require_admin)]
)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@mcp_tokens_admin_router.post("", response_model=TokenGenerationResult, status_code=status.HTTP_201_CREATED)
async def generate_token_endpoint(
    request: Request,
    body: TokenGenerateRequest,
    service: Annotated[MCPTokenService, Depends(get_token_service)]
):
    """Issue a token for a user. The raw token is returned only in this response."""
    logger.info(f"API: Received request to generate a token for user '{body.user_id}'")
    return await service.generate(
        user_id=body.user_id,
        description=body.description,
        request_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@mcp_tokens_admin_router.get("/users/{user_id}", response_model=List[TokenListItem])
async def list_user_tokens_endpoint(
    user_id: Annotated[str, Path(description="Email address of the token owner")],
    admin: Annotated[TokenAdminService, Depends(get_token_admin_service)]
):
    return await admin.list_user_tokens(user_id)


@mcp_tokens_admin_router.get("/users/{user_id}/stats", response_model=TokenStats)
async def user_token_stats_endpoint(
    user_id: Annotated[str, Path(description="Email address of the token owner")],
    admin: Annotated[TokenAdminService, Depends(get_token_admin_service)]
):
    return await admin.get_user_token_stats(user_id)


@mcp_tokens_admin_router.post("/users/{user_id}/revoke-all", response_model=BulkRevokeResult)
async def revoke_all_user_tokens_endpoint(
    user_id: Annotated[str, Path(description="Email address of the token owner")],
    admin: Annotated[TokenAdminService, Depends(get_token_admin_service)],
    body: Optional[TokenRevokeRequest] = None
):
    """Revoke every token belonging to a user (off-boarding)."""
    reason = body.reason if body else None
    result = await admin.revoke_all_user_tokens(user_id, reason or "Bulk revocation")
    if result.errors:
        logger.warning(f"API: Bulk revoke for '{user_id}' finished with errors: {result.errors}")
    return result


@mcp_tokens_admin_router.get("/{token_id}", response_model=MCPTokenData)
async def get_token_metadata_endpoint(
    token_id: Annotated[str, Path(description="Public token identifier (tok_...)")],
    service: Annotated[MCPTokenService, Depends(get_token_service)]
):
    record = await service.get_token_metadata(token_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")
    return record


@mcp_tokens_admin_router.patch("/{token_id}", response_model=MCPTokenData)
async def update_token_description_endpoint(
    token_id: Annotated[str, Path(description="Public token identifier (tok_...)")],
    body: TokenDescriptionUpdate,
    admin: Annotated[TokenAdminService, Depends(get_token_admin_service)]
):
    return await admin.update_token_description(token_id, body.description)


@mcp_tokens_admin_router.post("/{token_id}/revoke", response_model=TokenOperationResult)
async def revoke_token_endpoint(
    token_id: Annotated[str, Path(description="Public token identifier (tok_...)")],
    service: Annotated[MCPTokenService, Depends(get_token_service)],
    body: Optional[TokenRevokeRequest] = None
):
    """Soft-revoke a token. Calling this twice is not an error."""
    return await service.revoke(token_id, body.reason if body else None)


@mcp_tokens_admin_router.post("/{token_id}/unrevoke", response_model=TokenOperationResult)
async def unrevoke_token_endpoint(
    token_id: Annotated[str, Path(description="Public token identifier (tok_...)")],
    service: Annotated[MCPTokenService, Depends(get_token_service)]
):
    logger.warning(f"API: Un-revoke requested for token {token_id}")
    return await service.unrevoke(token_id)


@mcp_tokens_admin_router.delete("/{token_id}", response_model=TokenOperationResult)
async def delete_token_endpoint(
    token_id: Annotated[str, Path(description="Public token identifier (tok_...)")],
    service: Annotated[MCPTokenService, Depends(get_token_service)]
):
    """Hard delete. The token and its index entries are removed permanently."""
    return await service.delete(token_id)
