# mcp_gateway/mcp_tokens/token_manager.py
import re
import secrets
import hashlib
from abc import ABC, abstractmethod
from typing import Tuple

TOKEN_PREFIX = "mcp_v1_"
TOKEN_ID_PREFIX = "tok_"
TOKEN_SECRET_BYTES = 32
TOKEN_ID_BYTES = 16

# Bitcoin alphabet: no 0, O, I or l
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

# 32 random bytes encode to 43-44 Base58 chars; allow some slack
TOKEN_PATTERN = re.compile(r"^mcp_v1_[1-9A-HJ-NP-Za-km-z]{32,50}$")


def base58_encode(data: bytes) -> str:
    """Encode bytes with the Bitcoin Base58 alphabet, keeping leading zero bytes as '1'."""
    number = int.from_bytes(data, "big")
    encoded = []
    while number > 0:
        number, remainder = divmod(number, 58)
        encoded.append(BASE58_ALPHABET[remainder])
    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return "1" * leading_zeros + "".join(reversed(encoded))


class MCPTokenManagerProtocol(ABC):
    """Protocol defining token material generation and hashing."""

    @abstractmethod
    def generate_token_and_hash(self) -> Tuple[str, str]:
        """Generate a new raw token and return it together with its hash."""
        pass

    @abstractmethod
    def generate_token_id(self) -> str:
        """Generate a public token identifier."""
        pass

    @abstractmethod
    def hash_token(self, token: str) -> str:
        """Create a secure hash of the provided token."""
        pass

    @abstractmethod
    def is_valid_format(self, token: str) -> bool:
        """Check the token's structure without touching storage."""
        pass


class DefaultMCPTokenManager(MCPTokenManagerProtocol):
    """Generates `mcp_v1_` tokens from secure random bytes and hashes them with SHA-256."""

    def generate_token_and_hash(self) -> Tuple[str, str]:
        """
        Generate a cryptographically secure token and its corresponding hash.

        Returns:
            Tuple containing the raw token (for client use) and its hash (for storage).
        """
        token = TOKEN_PREFIX + base58_encode(secrets.token_bytes(TOKEN_SECRET_BYTES))
        return token, self.hash_token(token)

    def generate_token_id(self) -> str:
        return TOKEN_ID_PREFIX + base58_encode(secrets.token_bytes(TOKEN_ID_BYTES))

    def hash_token(self, token: str) -> str:
        """
        Create SHA-256 hash of token for secure storage.

        Raw tokens are never stored; only their hashes are persisted.
        """
        return hashlib.sha256(token.encode('utf-8')).hexdigest()

    def is_valid_format(self, token: str) -> bool:
        return bool(token) and TOKEN_PATTERN.match(token) is not None


def token_prefix_for_display(token_hash: str) -> str:
    """Masked display form used in admin listings."""
    return f"{TOKEN_PREFIX}...{token_hash[-8:]}"
