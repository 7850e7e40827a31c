"""Provider-keyed encryption for authorization codes and refresh tokens."""

import base64
import json
from typing import Any, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from siop.crypto.keys import private_key_der

CIPHER_KEY_INFO = b"siop-provider-credential-cipher"


class DecryptError(Exception):
    """Raised when a credential cannot be decrypted or is not a JSON object."""


@runtime_checkable
class Crypto(Protocol):
    """Encrypts payloads so that only the provider can read them back."""

    def encrypt(self, payload: dict[str, Any]) -> str: ...

    def decrypt(self, token: str) -> dict[str, Any]: ...


def derive_cipher_key(private_key_pem: str) -> bytes:
    """Derive a Fernet key from the provider's private key."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=CIPHER_KEY_INFO,
    )
    return base64.urlsafe_b64encode(hkdf.derive(private_key_der(private_key_pem)))


class ProviderCrypto:
    """Fernet cipher keyed by material derived from the provider's private key."""

    def __init__(self, private_key_pem: str) -> None:
        self._fernet = Fernet(derive_cipher_key(private_key_pem))

    def encrypt(self, payload: dict[str, Any]) -> str:
        """Serialize and encrypt ``payload`` into an opaque string."""
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return self._fernet.encrypt(raw.encode()).decode()

    def decrypt(self, token: str) -> dict[str, Any]:
        """Decrypt a string produced by :meth:`encrypt`."""
        try:
            raw = self._fernet.decrypt(token.encode())
            payload = json.loads(raw)
        except (InvalidToken, ValueError) as exc:
            raise DecryptError("credential could not be decrypted") from exc
        if not isinstance(payload, dict):
            raise DecryptError("credential payload is not an object")
        return payload
