# tests/conftest.py
import os

# Settings are read once at import time, so the environment is fixed first
os.environ["TANGO_API_KEY"] = "test-tango-key"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["GOOGLE_CLIENT_ID"] = "test-google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-google-client-secret"
os.environ["HOSTED_DOMAIN"] = "agile6.com"
os.environ["COOKIE_ENCRYPTION_KEY"] = "test-cookie-secret-0123456789-abcdefghijklmnop"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["ALLOWED_AUTH_METHODS"] = "oauth,mcp-token"
os.environ["PUBLIC_BASE_URL"] = "https://gateway.test"
os.environ.pop("PROPS_ENCRYPTION_KEY", None)
os.environ.pop("MCP_TOKEN_EXPIRY_DAYS", None)

from typing import Dict, Optional

import pytest
from starlette.requests import Request

from mcp_gateway.dependencies import reset_token_service
from mcp_gateway.mcp_tokens.service import MCPTokenService
from mcp_gateway.oauth.endpoints import reset_props_encryptor
from mcp_gateway.storage import InMemoryKeyValueStore, set_kv_store
from mcp_gateway.utils.security import FernetEncryptor, generate_fernet_key

TEST_COOKIE_SECRET = os.environ["COOKIE_ENCRYPTION_KEY"]


@pytest.fixture
def kv_store():
    """A fresh in-memory store bound as the process-wide store."""
    store = InMemoryKeyValueStore()
    set_kv_store(store)
    reset_token_service()
    reset_props_encryptor()
    yield store
    set_kv_store(None)
    reset_token_service()
    reset_props_encryptor()


@pytest.fixture
def token_service(kv_store):
    return MCPTokenService(kv_store=kv_store)


@pytest.fixture
def encryptor():
    return FernetEncryptor(generate_fernet_key())


@pytest.fixture
def make_request():
    """Build a bare Starlette request carrying query parameters and cookies."""

    def _make(
        query_string: str = "",
        cookies: Optional[Dict[str, str]] = None,
        path: str = "/callback",
        method: str = "GET",
    ) -> Request:
        headers = []
        if cookies:
            cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
            headers.append((b"cookie", cookie_header.encode("latin-1")))
        scope = {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query_string.encode("latin-1"),
            "headers": headers,
            "client": ("203.0.113.7", 50000),
            "server": ("gateway.test", 443),
            "scheme": "https",
        }
        return Request(scope)

    return _make


def cookie_value(set_cookie_header: str) -> str:
    """Value part of a Set-Cookie header."""
    return set_cookie_header.split(";", 1)[0].split("=", 1)[1]
