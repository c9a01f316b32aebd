# tests/test_security_utils.py
from cryptography.fernet import Fernet

from mcp_gateway.utils.security import (
    FernetEncryptor, build_props_encryptor, derive_fernet_key, generate_cookie_secret, generate_fernet_key
)


class TestFernetEncryptor:
    def test_round_trip(self):
        encryptor = FernetEncryptor(generate_fernet_key())
        ciphertext = encryptor.encrypt('{"email": "dana@agile6.com"}')
        assert ciphertext and "dana" not in ciphertext
        assert encryptor.decrypt(ciphertext) == '{"email": "dana@agile6.com"}'

    def test_wrong_key_returns_none(self):
        ciphertext = FernetEncryptor(generate_fernet_key()).encrypt("secret")
        assert FernetEncryptor(generate_fernet_key()).decrypt(ciphertext) is None

    def test_unusable_key(self):
        for key in (None, "", "not-base64-at-all", "c2hvcnQ="):
            encryptor = FernetEncryptor(key)
            assert not encryptor.key_valid
            assert encryptor.encrypt("x") is None
            assert encryptor.decrypt("x") is None


class TestKeyHelpers:
    def test_derived_key_is_valid_fernet_key(self):
        key = derive_fernet_key("a cookie secret of some length")
        Fernet(key)
        assert key == derive_fernet_key("a cookie secret of some length")

    def test_cookie_secret_length(self):
        assert len(generate_cookie_secret()) >= 32

    def test_props_encryptor_prefers_dedicated_key(self):
        dedicated = generate_fernet_key()
        ciphertext = build_props_encryptor(dedicated, "cookie-secret").encrypt("v")
        assert FernetEncryptor(dedicated).decrypt(ciphertext) == "v"

    def test_props_encryptor_falls_back_to_cookie_secret(self):
        ciphertext = build_props_encryptor(None, "cookie-secret").encrypt("v")
        assert FernetEncryptor(derive_fernet_key("cookie-secret")).decrypt(ciphertext) == "v"
        assert not build_props_encryptor(None, None).key_valid
