# tests/test_consent.py
import base64
import json

import pytest

from conftest import TEST_COOKIE_SECRET, cookie_value
from mcp_gateway.oauth.approval import (
    CSRF_FORM_FIELD, ConsentManager, decode_approval_state, encode_approval_state, render_approval_dialog
)
from mcp_gateway.oauth.cookies import APPROVED_CLIENTS_COOKIE_NAME, CSRF_COOKIE_NAME
from mcp_gateway.oauth.errors import CSRFMismatchError, InvalidRequestError
from mcp_gateway.oauth.models import AuthRequestInfo, OAuthClient


@pytest.fixture
def consent():
    return ConsentManager(TEST_COOKIE_SECRET, approval_max_age=3600)


@pytest.fixture
def auth_request():
    return AuthRequestInfo(
        client_id="client-1",
        redirect_uri="https://client.example/cb",
        scope="mcp",
        state="s1",
        code_challenge="challenge",
        code_challenge_method="S256",
    )


class TestApprovedClients:
    def test_no_cookie_means_not_approved(self, consent, make_request):
        assert not consent.is_client_approved(make_request(), "client-1")

    def test_approval_persists_in_cookie(self, consent, make_request):
        set_cookie = consent.add_approved_client(make_request(), "client-1")
        assert set_cookie.startswith(f"{APPROVED_CLIENTS_COOKIE_NAME}=")
        assert "Max-Age=3600" in set_cookie

        request = make_request(cookies={APPROVED_CLIENTS_COOKIE_NAME: cookie_value(set_cookie)})
        assert consent.is_client_approved(request, "client-1")
        assert not consent.is_client_approved(request, "client-2")

    def test_approvals_accumulate(self, consent, make_request):
        first = consent.add_approved_client(make_request(), "client-1")
        request = make_request(cookies={APPROVED_CLIENTS_COOKIE_NAME: cookie_value(first)})
        second = consent.add_approved_client(request, "client-2")

        request = make_request(cookies={APPROVED_CLIENTS_COOKIE_NAME: cookie_value(second)})
        assert consent.is_client_approved(request, "client-1")
        assert consent.is_client_approved(request, "client-2")

    def test_cookie_signed_with_other_secret_is_ignored(self, make_request):
        other = ConsentManager("a-completely-different-secret-value!!")
        set_cookie = other.add_approved_client(make_request(), "client-1")
        request = make_request(cookies={APPROVED_CLIENTS_COOKIE_NAME: cookie_value(set_cookie)})
        assert not ConsentManager(TEST_COOKIE_SECRET).is_client_approved(request, "client-1")

    def test_garbage_cookie_is_ignored(self, consent, make_request):
        request = make_request(cookies={APPROVED_CLIENTS_COOKIE_NAME: "garbage"})
        assert not consent.is_client_approved(request, "client-1")


class TestCSRF:
    def test_generated_cookie_is_strict(self):
        token, set_cookie = ConsentManager.generate_csrf_protection()
        assert set_cookie.startswith(f"{CSRF_COOKIE_NAME}={token};")
        assert "SameSite=Strict" in set_cookie

    def test_matching_token_clears_cookie(self, make_request):
        token, _ = ConsentManager.generate_csrf_protection()
        request = make_request(cookies={CSRF_COOKIE_NAME: token})
        clear = ConsentManager.validate_csrf_token({CSRF_FORM_FIELD: token}, request)
        assert clear.startswith(f"{CSRF_COOKIE_NAME}=;")
        assert "Max-Age=0" in clear

    @pytest.mark.parametrize("form, cookies", [
        ({}, {CSRF_COOKIE_NAME: "abc"}),
        ({CSRF_FORM_FIELD: "abc"}, {}),
        ({CSRF_FORM_FIELD: "abc"}, {CSRF_COOKIE_NAME: "abd"}),
    ])
    def test_mismatch(self, make_request, form, cookies):
        with pytest.raises(CSRFMismatchError) as exc_info:
            ConsentManager.validate_csrf_token(form, make_request(cookies=cookies))
        assert exc_info.value.status_code == 403


class TestApprovalState:
    def test_encoded_state_round_trips(self, auth_request):
        assert decode_approval_state(encode_approval_state(auth_request)) == auth_request

    def test_encoded_state_wraps_request(self, auth_request):
        payload = json.loads(base64.b64decode(encode_approval_state(auth_request)))
        assert payload["oauthReqInfo"]["client_id"] == "client-1"

    @pytest.mark.parametrize("encoded", [
        None,
        "",
        "!!!not-base64!!!",
        base64.b64encode(b"not json").decode(),
        base64.b64encode(json.dumps({"other": {}}).encode()).decode(),
        base64.b64encode(json.dumps({"oauthReqInfo": {"client_id": ""}}).encode()).decode(),
    ])
    def test_invalid_state(self, encoded):
        with pytest.raises(InvalidRequestError):
            decode_approval_state(encoded)


class TestDialog:
    def test_dialog_escapes_client_values(self, auth_request):
        client = OAuthClient(
            client_id="client-1",
            client_name="<script>alert(1)</script>",
            redirect_uris=["https://client.example/cb"],
        )
        response = render_approval_dialog(
            auth_request, client, "csrf-123", "Tango MCP Server", "Data access", set_cookie="c=1"
        )
        body = response.body.decode()
        assert "<script>alert(1)</script>" not in body
        assert "&lt;script&gt;" in body
        assert 'action="/authorize"' in body
        assert 'value="csrf-123"' in body
        assert response.headers["set-cookie"] == "c=1"
