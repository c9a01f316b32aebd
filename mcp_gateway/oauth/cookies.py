# mcp_gateway/oauth/cookies.py
from typing import Optional
from starlette.requests import Request

# __Host- cookies must be Secure, Path=/ and carry no Domain attribute
BINDING_COOKIE_NAME = "__Host-CONSENTED_STATE"
CSRF_COOKIE_NAME = "__Host-CSRF_TOKEN"
APPROVED_CLIENTS_COOKIE_NAME = "__Host-MCP_APPROVED_CLIENTS"


def build_set_cookie(name: str, value: str, max_age: int, same_site: str = "Lax") -> str:
    return f"{name}={value}; HttpOnly; Secure; SameSite={same_site}; Path=/; Max-Age={max_age}"


def build_clear_cookie(name: str) -> str:
    return build_set_cookie(name, "", 0)


def read_cookie(request: Request, name: str) -> Optional[str]:
    value = request.cookies.get(name)
    return value or None
