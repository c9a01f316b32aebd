# mcp_gateway/oauth/pkce.py
import base64
import hashlib
import re
import secrets

# RFC 7636 bounds the verifier to 43..128 characters
CODE_VERIFIER_LENGTH = 64
_VERIFIER_PATTERN = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


def generate_pkce_code_verifier(length: int = CODE_VERIFIER_LENGTH) -> str:
    """
    Generates a random PKCE code verifier. (RFC 7636 - Section 4.1)

    Used by the CLI and tests acting as an MCP client.
    """
    if not (43 <= length <= 128):
        raise ValueError("PKCE code verifier length must be between 43 and 128 characters.")
    return secrets.token_urlsafe(length)[:length]


def generate_pkce_code_challenge(code_verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding. (RFC 7636 - Section 4.2)"""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def validate_pkce_code_verifier_format(code_verifier: str) -> bool:
    return bool(_VERIFIER_PATTERN.match(code_verifier or ""))


def verify_pkce_s256(code_verifier: str, code_challenge: str) -> bool:
    if not validate_pkce_code_verifier_format(code_verifier):
        return False
    return secrets.compare_digest(generate_pkce_code_challenge(code_verifier), code_challenge)
