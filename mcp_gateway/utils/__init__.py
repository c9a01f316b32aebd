# mcp_gateway/utils/__init__.py

"""
Utility module initialization file.

Encryption helpers for identity props and key generation used by the CLI.
"""

from .security import (
    FernetEncryptor,
    build_props_encryptor,
    derive_fernet_key,
    generate_cookie_secret,
    generate_fernet_key,
)

__all__ = [
    "FernetEncryptor",
    "build_props_encryptor",
    "derive_fernet_key",
    "generate_cookie_secret",
    "generate_fernet_key",
]
