import pytest
from cryptography.hazmat.primitives import serialization

from circle_chat.common import crypto
from circle_chat.common.errors import DecryptionError, EncryptionError, SigningError

from conftest import private_pem


class TestSignatures:

    def test_sign_and_verify(self, sender_key):
        sig = crypto.sign(sender_key, b"payload")
        assert crypto.verify(sender_key.public_key(), b"payload", sig)

    def test_signing_is_deterministic(self, sender_key):
        assert crypto.sign(sender_key, b"payload") == crypto.sign(sender_key, b"payload")

    def test_wrong_key(self, sender_key, other_key):
        sig = crypto.sign(sender_key, b"payload")
        assert not crypto.verify(other_key.public_key(), b"payload", sig)

    def test_tampered_data(self, sender_key):
        sig = crypto.sign(sender_key, b"payload")
        assert not crypto.verify(sender_key.public_key(), b"paylaod", sig)

    @pytest.mark.parametrize("mangle", [
        lambda s: s[:-1],
        lambda s: b"",
        lambda s: bytes([s[0] ^ 1]) + s[1:],
        lambda s: s + b"\x00",
        lambda s: "not bytes",
        lambda s: None,
    ])
    def test_malformed_signature_is_false(self, sender_key, mangle):
        sig = crypto.sign(sender_key, b"payload")
        assert crypto.verify(sender_key.public_key(), b"payload", mangle(sig)) is False

    def test_non_rsa_public_key_is_false(self, sender_key, ed_key):
        sig = crypto.sign(sender_key, b"payload")
        assert crypto.verify(ed_key.public_key(), b"payload", sig) is False
        assert crypto.verify(None, b"payload", sig) is False

    def test_non_rsa_private_key_raises(self, ed_key):
        with pytest.raises(SigningError):
            crypto.sign(ed_key, b"payload")


class TestFieldEncryption:

    def test_round_trip(self, recipient_key):
        ct = crypto.encrypt_field(recipient_key.public_key(), b"secret", "body")
        assert crypto.decrypt_field(recipient_key, ct, "body") == b"secret"

    def test_randomized(self, recipient_key):
        pub = recipient_key.public_key()
        assert crypto.encrypt_field(pub, b"secret") != crypto.encrypt_field(pub, b"secret")

    def test_wrong_private_key(self, recipient_key, other_key):
        ct = crypto.encrypt_field(recipient_key.public_key(), b"secret", "body")
        with pytest.raises(DecryptionError) as exc:
            crypto.decrypt_field(other_key, ct, "body")
        assert exc.value.field == "body"

    def test_size_limit(self, recipient_key):
        pub = recipient_key.public_key()
        limit = crypto.max_field_size(pub)
        assert limit == 190
        crypto.encrypt_field(pub, b"a" * limit)
        with pytest.raises(EncryptionError) as exc:
            crypto.encrypt_field(pub, b"a" * (limit + 1), "attachments[0]")
        assert exc.value.field == "attachments[0]"

    def test_non_rsa_key(self, ed_key):
        with pytest.raises(EncryptionError):
            crypto.encrypt_field(ed_key.public_key(), b"secret", "body")


class TestPem:

    def test_public_round_trip(self, sender_key):
        pem = crypto.public_pem(sender_key)
        assert pem.startswith("-----BEGIN PUBLIC KEY-----")
        loaded = crypto.load_public_pem(pem)
        assert loaded.public_numbers() == sender_key.public_key().public_numbers()

    def test_private_round_trip(self, sender_key):
        loaded = crypto.load_private_pem(private_pem(sender_key))
        assert loaded.private_numbers() == sender_key.private_numbers()

    def test_rejects_non_rsa_public_key(self, ed_key):
        pem = ed_key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo)
        with pytest.raises(ValueError):
            crypto.load_public_pem(pem)
