# tests/test_auth_validator.py
import pytest

from mcp_gateway.auth.errors import AuthErrorKind, UnauthorizedError
from mcp_gateway.auth.models import MCPTokenAuthResult, OAuthAuthResult
from mcp_gateway.auth.validator import (
    PROP_MCP_ACCESS_TOKEN, get_user_identifier, is_email_in_domain,
    validate_authentication, validate_oauth_identity
)

DOMAIN = "agile6.com"


class TestDomainMatch:
    @pytest.mark.parametrize("email", ["user@agile6.com", "User@AGILE6.COM", " user@agile6.com "])
    def test_accepts_exact_domain(self, email):
        assert is_email_in_domain(email, DOMAIN)

    @pytest.mark.parametrize("email", [
        "user@evil-agile6.com",
        "user@agile6.com.evil.org",
        "user@sub.agile6.com",
        "user@agile6.co",
        "agile6.com",
        "@agile6.com",
        "",
    ])
    def test_rejects_everything_else(self, email):
        assert not is_email_in_domain(email, DOMAIN)


class TestOAuthIdentity:
    def test_valid_identity(self):
        result = validate_oauth_identity("dana@agile6.com", "Dana", DOMAIN)
        assert result == OAuthAuthResult(email="dana@agile6.com", name="Dana")

    def test_missing_email(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            validate_oauth_identity(None, "Dana", DOMAIN)
        assert exc_info.value.kind is AuthErrorKind.MISSING_EMAIL
        assert exc_info.value.status_code == 401

    def test_wrong_domain_message_names_account(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            validate_oauth_identity("eve@evil-agile6.com", "Eve", DOMAIN)
        error = exc_info.value
        assert error.kind is AuthErrorKind.DOMAIN_REJECTED
        assert error.status_code == 403
        assert str(error) == "Unauthorized: Only @agile6.com accounts are allowed. Your account: eve@evil-agile6.com"
        assert error.detail["error"] == "domain_rejected"


class TestValidateAuthentication:
    @pytest.mark.asyncio
    async def test_oauth_props(self, token_service):
        props = {"access_token": "upstream", "email": "dana@agile6.com", "name": "Dana"}
        result = await validate_authentication(props, token_service, DOMAIN)
        assert isinstance(result, OAuthAuthResult)

    @pytest.mark.asyncio
    async def test_mcp_token_props(self, token_service):
        generated = await token_service.generate("dana@agile6.com")
        result = await validate_authentication({PROP_MCP_ACCESS_TOKEN: generated.token}, token_service, DOMAIN)
        assert result == MCPTokenAuthResult(token_id=generated.token_id, user_id="dana@agile6.com")

    @pytest.mark.asyncio
    async def test_oauth_takes_precedence(self, token_service):
        generated = await token_service.generate("token-owner@agile6.com")
        props = {
            "access_token": "upstream",
            "email": "dana@agile6.com",
            "name": "Dana",
            PROP_MCP_ACCESS_TOKEN: generated.token,
        }
        result = await validate_authentication(props, token_service, DOMAIN)
        assert result.method == "oauth"
        assert result.email == "dana@agile6.com"

    @pytest.mark.asyncio
    async def test_rejected_oauth_does_not_fall_back_to_token(self, token_service):
        generated = await token_service.generate("token-owner@agile6.com")
        props = {"access_token": "upstream", "email": "eve@gmail.com", PROP_MCP_ACCESS_TOKEN: generated.token}
        with pytest.raises(UnauthorizedError) as exc_info:
            await validate_authentication(props, token_service, DOMAIN)
        assert exc_info.value.kind is AuthErrorKind.DOMAIN_REJECTED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token, kind, message", [
        ("garbage", AuthErrorKind.MALFORMED, "Invalid token format. Expected format: mcp_v1_..."),
        ("mcp_v1_" + "A" * 44, AuthErrorKind.NOT_FOUND, "Token not found. It may have been deleted."),
    ])
    async def test_token_failures(self, token_service, token, kind, message):
        with pytest.raises(UnauthorizedError) as exc_info:
            await validate_authentication({PROP_MCP_ACCESS_TOKEN: token}, token_service, DOMAIN)
        assert exc_info.value.kind is kind
        assert exc_info.value.message == message

    @pytest.mark.asyncio
    async def test_revoked_token(self, token_service):
        generated = await token_service.generate("dana@agile6.com")
        await token_service.revoke(generated.token_id)
        with pytest.raises(UnauthorizedError) as exc_info:
            await validate_authentication({PROP_MCP_ACCESS_TOKEN: generated.token}, token_service, DOMAIN)
        assert exc_info.value.kind is AuthErrorKind.REVOKED
        assert exc_info.value.message == "Token has been revoked and is no longer valid."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("props", [None, {}, {"email": "dana@agile6.com"}])
    async def test_no_credentials(self, token_service, props):
        with pytest.raises(UnauthorizedError) as exc_info:
            await validate_authentication(props, token_service, DOMAIN)
        assert exc_info.value.kind is AuthErrorKind.UNAUTHENTICATED
        assert "x-mcp-access-token" in exc_info.value.message
        assert "@agile6.com" in exc_info.value.message


class TestIdentifier:
    def test_oauth_prefers_name(self):
        assert get_user_identifier(OAuthAuthResult(email="dana@agile6.com", name="Dana")) == "Dana"
        assert get_user_identifier(OAuthAuthResult(email="dana@agile6.com")) == "dana@agile6.com"

    def test_token_identifier(self):
        assert get_user_identifier(MCPTokenAuthResult(token_id="tok_1", user_id="u")) == "MCP Token (tok_1)"
