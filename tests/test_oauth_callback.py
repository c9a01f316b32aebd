# tests/test_oauth_callback.py
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from conftest import TEST_COOKIE_SECRET, cookie_value
from mcp_gateway.oauth.callback import OAuthCallbackHandler
from mcp_gateway.oauth.cookies import BINDING_COOKIE_NAME
from mcp_gateway.oauth.errors import UpstreamOAuthError
from mcp_gateway.oauth.google_client import GOOGLE_TOKEN_URL, GOOGLE_USERINFO_URL, GoogleOAuthClient
from mcp_gateway.oauth.models import AuthRequestInfo, ClientRegistrationRequest, GoogleUserInfo
from mcp_gateway.oauth.pkce import generate_pkce_code_challenge, generate_pkce_code_verifier
from mcp_gateway.oauth.provider import AUTH_CODE_KEY_PREFIX, GatewayOAuthProvider
from mcp_gateway.oauth.state_manager import OAuthStateManager

REDIRECT_URI = "https://client.example/cb"
CALLBACK_URL = "https://gateway.test/callback"


@pytest.fixture
def provider(kv_store, encryptor):
    return GatewayOAuthProvider(kv_store, encryptor)


@pytest.fixture
def state_manager(kv_store):
    return OAuthStateManager(kv_store, TEST_COOKIE_SECRET)


@pytest.fixture
def google_client():
    client = MagicMock(spec=GoogleOAuthClient)
    client.exchange_code = AsyncMock(return_value="google-access-token")
    client.fetch_userinfo = AsyncMock(
        return_value=GoogleUserInfo(id="google-123", email="dana@agile6.com", name="Dana", verified_email=True)
    )
    return client


@pytest.fixture
def handler(state_manager, google_client, provider):
    return OAuthCallbackHandler(state_manager, google_client, provider, allowed_domain="agile6.com")


async def _start_flow(provider, state_manager):
    client = await provider.register_client(ClientRegistrationRequest(redirect_uris=[REDIRECT_URI]))
    verifier = generate_pkce_code_verifier()
    auth_request = AuthRequestInfo(
        client_id=client.client_id,
        redirect_uri=REDIRECT_URI,
        state="client-state",
        code_challenge=generate_pkce_code_challenge(verifier),
        code_challenge_method="S256",
    )
    token, set_cookie = await state_manager.create_state(auth_request)
    return client, verifier, token, cookie_value(set_cookie)


def _clears_binding_cookie(response) -> bool:
    return any(
        value.startswith(f"{BINDING_COOKIE_NAME}=;") and "Max-Age=0" in value
        for value in response.headers.getlist("set-cookie")
    )


class TestCallbackSuccess:
    @pytest.mark.asyncio
    async def test_issues_code_to_client(self, kv_store, handler, provider, state_manager, google_client, make_request):
        client, verifier, state, binding = await _start_flow(provider, state_manager)
        request = make_request(f"code=google-code&state={state}", {BINDING_COOKIE_NAME: binding})

        response = await handler.handle(request, CALLBACK_URL)

        assert response.status_code == 302
        location = urlsplit(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == REDIRECT_URI
        query = parse_qs(location.query)
        assert query["state"] == ["client-state"]
        assert _clears_binding_cookie(response)
        google_client.exchange_code.assert_awaited_once_with("google-code", CALLBACK_URL)
        google_client.fetch_userinfo.assert_awaited_once_with("google-access-token")

        token_response = await provider.handle_token_request(
            "authorization_code", code=query["code"][0], redirect_uri=REDIRECT_URI,
            client_id=client.client_id, code_verifier=verifier,
        )
        props = await provider.load_access_token_props(token_response.access_token)
        assert props == {"access_token": "google-access-token", "email": "dana@agile6.com", "name": "Dana"}


class TestCallbackFailures:
    @pytest.mark.asyncio
    async def test_domain_rejected_issues_no_code(
        self, kv_store, handler, provider, state_manager, google_client, make_request
    ):
        google_client.fetch_userinfo.return_value = GoogleUserInfo(id="g-9", email="eve@evil-agile6.com")
        _, _, state, binding = await _start_flow(provider, state_manager)

        response = await handler.handle(
            make_request(f"code=google-code&state={state}", {BINDING_COOKIE_NAME: binding}), CALLBACK_URL
        )

        assert response.status_code == 403
        assert b"domain_rejected" in response.body
        assert b"eve@evil-agile6.com" in response.body
        assert _clears_binding_cookie(response)
        assert await kv_store.list_by_prefix(AUTH_CODE_KEY_PREFIX) == []

    @pytest.mark.asyncio
    async def test_missing_email(self, handler, provider, state_manager, google_client, make_request):
        google_client.fetch_userinfo.return_value = GoogleUserInfo(id="g-9")
        _, _, state, binding = await _start_flow(provider, state_manager)

        response = await handler.handle(
            make_request(f"code=google-code&state={state}", {BINDING_COOKIE_NAME: binding}), CALLBACK_URL
        )
        assert response.status_code == 401
        assert b"missing_email" in response.body

    @pytest.mark.asyncio
    async def test_missing_binding_cookie(self, handler, provider, state_manager, google_client, make_request):
        _, _, state, _ = await _start_flow(provider, state_manager)

        response = await handler.handle(make_request(f"code=google-code&state={state}"), CALLBACK_URL)

        assert response.status_code == 403
        assert b"csrf_mismatch" in response.body
        assert _clears_binding_cookie(response)
        google_client.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_state(self, handler, make_request):
        response = await handler.handle(make_request("code=google-code&state=bogus"), CALLBACK_URL)
        assert response.status_code == 400
        assert b"state_not_found" in response.body

    @pytest.mark.asyncio
    async def test_missing_code(self, handler, provider, state_manager, make_request):
        _, _, state, binding = await _start_flow(provider, state_manager)
        response = await handler.handle(make_request(f"state={state}", {BINDING_COOKIE_NAME: binding}), CALLBACK_URL)
        assert response.status_code == 400
        assert b"invalid_request" in response.body

    @pytest.mark.asyncio
    async def test_user_cancelled_at_google(self, handler, provider, state_manager, google_client, make_request):
        _, _, state, binding = await _start_flow(provider, state_manager)

        response = await handler.handle(
            make_request(f"error=access_denied&state={state}", {BINDING_COOKIE_NAME: binding}), CALLBACK_URL
        )

        assert response.status_code == 302
        query = parse_qs(urlsplit(response.headers["location"]).query)
        assert query["error"] == ["access_denied"]
        assert query["state"] == ["client-state"]
        google_client.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_failure(self, handler, provider, state_manager, google_client, make_request):
        google_client.exchange_code.side_effect = UpstreamOAuthError("Failed to exchange code for token.", 400)
        _, _, state, binding = await _start_flow(provider, state_manager)

        response = await handler.handle(
            make_request(f"code=google-code&state={state}", {BINDING_COOKIE_NAME: binding}), CALLBACK_URL
        )
        assert response.status_code == 502
        assert b"upstream_error" in response.body


class TestGoogleClient:
    def test_authorize_url_carries_hosted_domain(self):
        client = GoogleOAuthClient("cid", "secret", hosted_domain="agile6.com")
        query = parse_qs(urlsplit(client.build_authorize_url(CALLBACK_URL, "st")).query)
        assert query["hd"] == ["agile6.com"]
        assert query["scope"] == ["email profile"]
        assert query["state"] == ["st"]
        assert query["redirect_uri"] == [CALLBACK_URL]

    @pytest.mark.asyncio
    async def test_exchange_and_userinfo(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == GOOGLE_TOKEN_URL:
                assert b"code=abc" in request.content
                return httpx.Response(200, json={"access_token": "g-token"})
            if str(request.url) == GOOGLE_USERINFO_URL:
                assert request.headers["authorization"] == "Bearer g-token"
                return httpx.Response(200, json={"id": "1", "email": "dana@agile6.com", "name": "Dana"})
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleOAuthClient("cid", "secret", http_client=http_client)
            token = await client.exchange_code("abc", CALLBACK_URL)
            user = await client.fetch_userinfo(token)
        assert token == "g-token"
        assert user.email == "dana@agile6.com"

    @pytest.mark.asyncio
    async def test_exchange_error_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": "invalid_grant"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleOAuthClient("cid", "secret", http_client=http_client)
            with pytest.raises(UpstreamOAuthError) as exc_info:
                await client.exchange_code("abc", CALLBACK_URL)
        assert exc_info.value.upstream_status == 400
        assert exc_info.value.status_code == 502
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_token_response_that_is_not_an_object(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["unexpected"])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleOAuthClient("cid", "secret", http_client=http_client)
            with pytest.raises(UpstreamOAuthError) as exc_info:
                await client.exchange_code("abc", CALLBACK_URL)
        assert exc_info.value.status_code == 502
        assert exc_info.value.upstream_status == 200

    @pytest.mark.asyncio
    async def test_error_logs_carry_error_code_not_body(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == GOOGLE_TOKEN_URL:
                return httpx.Response(
                    400, json={"error": "invalid_grant", "error_description": "Code abc-123 was already redeemed"}
                )
            return httpx.Response(401, text="token ya29.secret-value is expired")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleOAuthClient("cid", "secret", http_client=http_client)
            with caplog.at_level("ERROR", logger="mcp_gateway.oauth.google_client"):
                with pytest.raises(UpstreamOAuthError):
                    await client.exchange_code("abc-123", CALLBACK_URL)
                with pytest.raises(UpstreamOAuthError) as exc_info:
                    await client.fetch_userinfo("ya29.secret-value")

        assert "invalid_grant" in caplog.text
        assert "already redeemed" not in caplog.text
        assert "ya29.secret-value" not in caplog.text
        assert "ya29.secret-value" not in str(exc_info.value.detail)


class TestCallbackUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_malformed_token_response_clears_binding_cookie(
        self, kv_store, state_manager, provider, make_request
    ):
        def upstream(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["unexpected"])

        _, _, state, binding = await _start_flow(provider, state_manager)
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http_client:
            google_client = GoogleOAuthClient("cid", "secret", hosted_domain="agile6.com", http_client=http_client)
            handler = OAuthCallbackHandler(state_manager, google_client, provider, allowed_domain="agile6.com")
            response = await handler.handle(
                make_request(f"code=google-code&state={state}", {BINDING_COOKIE_NAME: binding}), CALLBACK_URL
            )

        assert response.status_code == 502
        assert b"upstream_error" in response.body
        assert _clears_binding_cookie(response)
        assert await kv_store.list_by_prefix(AUTH_CODE_KEY_PREFIX) == []

    @pytest.mark.asyncio
    async def test_store_failure_returns_server_error_and_clears_cookie(
        self, handler, provider, state_manager, make_request
    ):
        _, _, state, binding = await _start_flow(provider, state_manager)
        provider.complete_authorization = AsyncMock(side_effect=RuntimeError("store unavailable"))

        response = await handler.handle(
            make_request(f"code=google-code&state={state}", {BINDING_COOKIE_NAME: binding}), CALLBACK_URL
        )

        assert response.status_code == 500
        assert b"server_error" in response.body
        assert b"store unavailable" not in response.body
        assert _clears_binding_cookie(response)
