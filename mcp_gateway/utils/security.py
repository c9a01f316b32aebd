# mcp_gateway/utils/security.py
import hashlib
import logging
import secrets
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from base64 import urlsafe_b64decode, urlsafe_b64encode

logger = logging.getLogger(__name__)


def generate_fernet_key() -> str:
    """Generates a new Fernet key and returns it as a string."""
    key_bytes = Fernet.generate_key()
    return key_bytes.decode('utf-8')


def generate_cookie_secret(length: int = 48) -> str:
    """Random secret suitable for COOKIE_ENCRYPTION_KEY."""
    return secrets.token_urlsafe(length)


def derive_fernet_key(secret: str) -> str:
    """Deterministic Fernet key from an arbitrary secret (SHA-256, base64url)."""
    return urlsafe_b64encode(hashlib.sha256(secret.encode('utf-8')).digest()).decode('utf-8')


class FernetEncryptor:
    """Encrypts identity props persisted alongside OAuth codes and access tokens."""

    def __init__(self, encryption_key: Optional[str]):
        """
        Args:
            encryption_key: Base64-encoded Fernet key string, or None
        """
        self.fernet_instance: Optional[Fernet] = None
        self.key_valid = False
        if not encryption_key:
            logger.critical(
                "CRITICAL: No props encryption key available. "
                "OAuth grants cannot be issued or read."
            )
            return
        try:
            key_bytes = encryption_key.encode('utf-8')
            decoded_key_bytes = urlsafe_b64decode(key_bytes)
            if len(decoded_key_bytes) != 32:
                logger.error(
                    f"Invalid props encryption key length after base64 decoding. "
                    f"Expected 32 bytes, got {len(decoded_key_bytes)}."
                )
                return
            self.fernet_instance = Fernet(key_bytes)
            self.key_valid = True
            logger.info("FernetEncryptor initialized successfully with a valid key.")
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to initialize FernetEncryptor with provided key. Error: {e}")

    def encrypt(self, data: str) -> Optional[str]:
        if not self.fernet_instance or not self.key_valid:
            logger.error("Cannot encrypt: Fernet instance not available or key is invalid.")
            return None
        return self.fernet_instance.encrypt(data.encode('utf-8')).decode('utf-8')

    def decrypt(self, encrypted_data: str) -> Optional[str]:
        """Returns None when the key is unusable or the ciphertext does not verify."""
        if not self.fernet_instance or not self.key_valid:
            logger.error("Cannot decrypt: Fernet instance not available or key is invalid.")
            return None
        try:
            return self.fernet_instance.decrypt(encrypted_data.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            logger.error(
                "Decryption failed: Invalid token. "
                "This may be due to an incorrect key or corrupted data."
            )
            return None


def build_props_encryptor(props_encryption_key: Optional[str], cookie_encryption_key: Optional[str]) -> FernetEncryptor:
    """
    Prefer the dedicated Fernet key; fall back to one derived from the cookie secret.
    """
    if props_encryption_key:
        return FernetEncryptor(props_encryption_key)
    if cookie_encryption_key:
        logger.warning("PROPS_ENCRYPTION_KEY not set. Deriving the props key from COOKIE_ENCRYPTION_KEY.")
        return FernetEncryptor(derive_fernet_key(cookie_encryption_key))
    return FernetEncryptor(None)
