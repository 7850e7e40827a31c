"""Tests for the provider-keyed credential cipher."""

import pytest
from cryptography.fernet import Fernet

from siop.crypto.cipher import Crypto, DecryptError, ProviderCrypto, derive_cipher_key
from siop.crypto.keys import generate_keypair
from siop.crypto.types import KeyAlgorithm

DID = "did:example:provider"


@pytest.fixture
def private_pem() -> str:
    return generate_keypair(KeyAlgorithm.ES256K, DID, "key1").private_key_pem


class TestProviderCrypto:
    """Tests for ProviderCrypto encrypt/decrypt."""

    def test_roundtrip(self, private_pem: str) -> None:
        cipher = ProviderCrypto(private_pem)
        token = cipher.encrypt({"iat": 1, "exp": 2, "request": "abc"})
        assert "abc" not in token
        assert cipher.decrypt(token) == {"iat": 1, "exp": 2, "request": "abc"}

    def test_satisfies_protocol(self, private_pem: str) -> None:
        assert isinstance(ProviderCrypto(private_pem), Crypto)

    def test_same_key_decrypts_across_instances(self, private_pem: str) -> None:
        token = ProviderCrypto(private_pem).encrypt({"a": 1})
        assert ProviderCrypto(private_pem).decrypt(token) == {"a": 1}

    def test_other_provider_cannot_decrypt(self, private_pem: str) -> None:
        token = ProviderCrypto(private_pem).encrypt({"a": 1})
        other = generate_keypair(KeyAlgorithm.ES256K, DID, "key2").private_key_pem
        with pytest.raises(DecryptError):
            ProviderCrypto(other).decrypt(token)

    def test_garbage_rejected(self, private_pem: str) -> None:
        with pytest.raises(DecryptError):
            ProviderCrypto(private_pem).decrypt("not-a-credential")

    def test_non_object_payload_rejected(self, private_pem: str) -> None:
        raw = Fernet(derive_cipher_key(private_pem)).encrypt(b"[1, 2]").decode()
        with pytest.raises(DecryptError):
            ProviderCrypto(private_pem).decrypt(raw)


class TestDeriveCipherKey:
    """Tests for cipher key derivation."""

    def test_deterministic(self, private_pem: str) -> None:
        assert derive_cipher_key(private_pem) == derive_cipher_key(private_pem)

    def test_is_valid_fernet_key(self, private_pem: str) -> None:
        Fernet(derive_cipher_key(private_pem))
