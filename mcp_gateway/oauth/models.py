# mcp_gateway/oauth/models.py
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuthRequestInfo(BaseModel):
    """An MCP client's authorization request, carried through the Google round trip."""
    response_type: str = Field(default="code", description="Must be 'code'.")
    client_id: str = Field(description="The client identifier.")
    redirect_uri: str = Field(description="The URI to redirect the user agent back to.")
    scope: Optional[str] = Field(
        default=None,
        description="Space-separated list of requested scopes."
    )
    state: Optional[str] = Field(
        default=None,
        description="The client's own opaque state, echoed back on the final redirect."
    )
    code_challenge: Optional[str] = Field(
        default=None,
        description="PKCE code challenge."
    )
    code_challenge_method: Optional[str] = Field(
        default=None,
        description="PKCE code challenge method. Only 'S256' is accepted."
    )


class OAuthStateRecord(BaseModel):
    """Pending authorization stored under oauth:state:{state_token}."""
    auth_request: AuthRequestInfo
    created_at: str = Field(default_factory=_utc_now_iso)


class OAuthClient(BaseModel):
    """A dynamically registered public client (RFC 7591 subset)."""
    client_id: str
    client_name: Optional[str] = None
    redirect_uris: List[str]
    grant_types: List[str] = Field(default=["authorization_code"])
    response_types: List[str] = Field(default=["code"])
    token_endpoint_auth_method: str = "none"
    created_at: str = Field(default_factory=_utc_now_iso)


class ClientRegistrationRequest(BaseModel):
    client_name: Optional[str] = None
    redirect_uris: List[str] = Field(min_length=1)
    grant_types: Optional[List[str]] = None
    response_types: Optional[List[str]] = None
    token_endpoint_auth_method: Optional[str] = None


class AuthCodeGrant(BaseModel):
    """Internal representation of a single-use authorization code."""
    client_id: str
    redirect_uri: str
    scope: Optional[str] = None
    user_id: str
    code_challenge: str
    code_challenge_method: str = "S256"
    encrypted_props: str
    issued_at: str = Field(default_factory=_utc_now_iso)


class AccessTokenGrant(BaseModel):
    """Internal representation of an issued gateway access token."""
    client_id: str
    user_id: str
    scope: Optional[str] = None
    encrypted_props: str
    issued_at: str = Field(default_factory=_utc_now_iso)


class TokenResponse(BaseModel):
    """OAuth token response structure as per RFC 6749."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class GoogleUserInfo(BaseModel):
    """Subset of the Google userinfo response the gateway relies on."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    verified_email: Optional[bool] = None
    hd: Optional[str] = None


class WellKnownOAuthMetadata(BaseModel):
    """OAuth 2.0 server metadata as defined in RFC 8414 for discovery endpoint."""
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    scopes_supported: Optional[List[str]] = None
    response_types_supported: List[str] = ["code"]
    grant_types_supported: List[str] = ["authorization_code"]
    token_endpoint_auth_methods_supported: List[str] = ["none"]
    code_challenge_methods_supported: List[str] = ["S256"]


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 protected resource metadata (RFC 9728)."""
    resource: str
    authorization_servers: List[str]
    bearer_methods_supported: List[str] = ["header"]
