# tests/test_oauth_provider.py
import pytest

from mcp_gateway.oauth.errors import (
    InvalidClientError, InvalidGrantError, InvalidRequestError, ServerError, UnsupportedGrantTypeError
)
from mcp_gateway.oauth.models import AuthRequestInfo, ClientRegistrationRequest
from mcp_gateway.oauth.pkce import (
    generate_pkce_code_challenge, generate_pkce_code_verifier, validate_pkce_code_verifier_format,
    verify_pkce_s256
)
from mcp_gateway.oauth.provider import AUTH_CODE_KEY_PREFIX, GatewayOAuthProvider
from mcp_gateway.utils.security import FernetEncryptor

REDIRECT_URI = "https://client.example/cb"
PROPS = {"access_token": "google-token", "email": "dana@agile6.com", "name": "Dana"}


@pytest.fixture
def provider(kv_store, encryptor):
    return GatewayOAuthProvider(kv_store, encryptor, access_token_ttl_seconds=900)


async def _register(provider, redirect_uris=None):
    return await provider.register_client(
        ClientRegistrationRequest(client_name="Test Client", redirect_uris=redirect_uris or [REDIRECT_URI])
    )


def _auth_request(client_id, verifier, **overrides):
    values = dict(
        client_id=client_id,
        redirect_uri=REDIRECT_URI,
        state="client-state",
        code_challenge=generate_pkce_code_challenge(verifier),
        code_challenge_method="S256",
    )
    values.update(overrides)
    return AuthRequestInfo(**values)


class TestPKCE:
    def test_known_vector(self):
        # RFC 7636 Appendix B
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert generate_pkce_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        assert verify_pkce_s256(verifier, "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM")

    def test_generated_verifier_is_well_formed(self):
        verifier = generate_pkce_code_verifier()
        assert len(verifier) == 64
        assert validate_pkce_code_verifier_format(verifier)

    def test_rejects_short_verifier(self):
        assert not verify_pkce_s256("short", generate_pkce_code_challenge("short"))
        with pytest.raises(ValueError):
            generate_pkce_code_verifier(10)


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_and_lookup(self, provider):
        client = await _register(provider)
        assert client.token_endpoint_auth_method == "none"
        assert await provider.lookup_client(client.client_id) == client

    @pytest.mark.asyncio
    @pytest.mark.parametrize("uri", ["http://client.example/cb", "https://client.example/cb#frag", "not a uri"])
    async def test_rejects_unsafe_redirect_uris(self, provider, uri):
        with pytest.raises(InvalidRequestError):
            await _register(provider, [uri])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("uri", ["http://localhost:3334/callback", "http://127.0.0.1/cb", "com.example.app:/oauth"])
    async def test_accepts_loopback_and_private_schemes(self, provider, uri):
        client = await _register(provider, [uri])
        assert client.redirect_uris == [uri]

    @pytest.mark.asyncio
    async def test_rejects_confidential_clients(self, provider):
        with pytest.raises(InvalidRequestError):
            await provider.register_client(ClientRegistrationRequest(
                redirect_uris=[REDIRECT_URI], token_endpoint_auth_method="client_secret_basic"
            ))


class TestAuthorizationRequest:
    @pytest.mark.asyncio
    async def test_valid_request(self, provider):
        client = await _register(provider)
        verifier = generate_pkce_code_verifier()
        assert await provider.validate_authorization_request(_auth_request(client.client_id, verifier)) == client

    @pytest.mark.asyncio
    async def test_unknown_client(self, provider):
        with pytest.raises(InvalidClientError):
            await provider.validate_authorization_request(_auth_request("nope", generate_pkce_code_verifier()))

    @pytest.mark.asyncio
    async def test_unregistered_redirect(self, provider):
        client = await _register(provider)
        request = _auth_request(client.client_id, generate_pkce_code_verifier(), redirect_uri="https://evil.example/cb")
        with pytest.raises(InvalidRequestError):
            await provider.validate_authorization_request(request)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"code_challenge": None},
        {"code_challenge_method": "plain"},
        {"response_type": "token"},
    ])
    async def test_requires_code_flow_with_s256(self, provider, overrides):
        client = await _register(provider)
        request = _auth_request(client.client_id, generate_pkce_code_verifier(), **overrides)
        with pytest.raises(InvalidRequestError):
            await provider.validate_authorization_request(request)


class TestTokenExchange:
    async def _issue_code(self, provider, verifier):
        client = await _register(provider)
        redirect = await provider.complete_authorization(
            _auth_request(client.client_id, verifier), user_id="google-123", props=PROPS, scope="mcp"
        )
        assert redirect.startswith(f"{REDIRECT_URI}?code=")
        assert "state=client-state" in redirect
        code = redirect.split("code=", 1)[1].split("&", 1)[0]
        return client, code

    @pytest.mark.asyncio
    async def test_code_exchange_issues_access_token(self, provider):
        verifier = generate_pkce_code_verifier()
        client, code = await self._issue_code(provider, verifier)

        response = await provider.handle_token_request(
            "authorization_code", code=code, redirect_uri=REDIRECT_URI,
            client_id=client.client_id, code_verifier=verifier,
        )

        assert response.token_type == "Bearer"
        assert response.expires_in == 900
        assert response.scope == "mcp"
        assert await provider.load_access_token_props(response.access_token) == PROPS

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, provider):
        verifier = generate_pkce_code_verifier()
        client, code = await self._issue_code(provider, verifier)
        kwargs = dict(code=code, redirect_uri=REDIRECT_URI, client_id=client.client_id, code_verifier=verifier)

        await provider.handle_token_request("authorization_code", **kwargs)
        with pytest.raises(InvalidGrantError):
            await provider.handle_token_request("authorization_code", **kwargs)

    @pytest.mark.asyncio
    async def test_wrong_verifier_burns_code(self, kv_store, provider):
        verifier = generate_pkce_code_verifier()
        client, code = await self._issue_code(provider, verifier)

        with pytest.raises(InvalidGrantError):
            await provider.handle_token_request(
                "authorization_code", code=code, redirect_uri=REDIRECT_URI,
                client_id=client.client_id, code_verifier=generate_pkce_code_verifier(),
            )
        assert await kv_store.get(f"{AUTH_CODE_KEY_PREFIX}{code}") is None

    @pytest.mark.asyncio
    async def test_code_bound_to_client(self, provider):
        verifier = generate_pkce_code_verifier()
        _, code = await self._issue_code(provider, verifier)
        other = await _register(provider)
        with pytest.raises(InvalidGrantError):
            await provider.handle_token_request(
                "authorization_code", code=code, redirect_uri=REDIRECT_URI,
                client_id=other.client_id, code_verifier=verifier,
            )

    @pytest.mark.asyncio
    async def test_unsupported_grant(self, provider):
        with pytest.raises(UnsupportedGrantTypeError):
            await provider.handle_token_request("client_credentials")

    @pytest.mark.asyncio
    async def test_missing_verifier(self, provider):
        with pytest.raises(InvalidRequestError):
            await provider.handle_token_request(
                "authorization_code", code="c", redirect_uri=REDIRECT_URI, client_id="x"
            )

    @pytest.mark.asyncio
    async def test_unknown_access_token(self, provider):
        assert await provider.load_access_token_props("never-issued") is None
        assert await provider.load_access_token_props("") is None

    @pytest.mark.asyncio
    async def test_unusable_encryption_key(self, kv_store):
        provider = GatewayOAuthProvider(kv_store, FernetEncryptor(None))
        client = await _register(provider)
        with pytest.raises(ServerError):
            await provider.complete_authorization(
                _auth_request(client.client_id, generate_pkce_code_verifier()), user_id="u", props=PROPS
            )


class TestErrorRedirect:
    def test_preserves_existing_query(self, provider):
        uri = provider.build_error_redirect_uri(
            "https://client.example/cb?x=1", "access_denied", "User cancelled", state="s"
        )
        assert uri == "https://client.example/cb?x=1&error=access_denied&error_description=User+cancelled&state=s"
