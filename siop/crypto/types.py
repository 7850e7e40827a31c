"""Type definitions for signing keys, JWKs and decoded JWTs."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


class KeyAlgorithm(StrEnum):
    """JWS algorithms a provider key can sign with."""

    ES256K = "ES256K"
    ES256 = "ES256"
    RS256 = "RS256"
    EDDSA = "EdDSA"


class SigningKeyData(BaseModel):
    """A generated keypair bound to a DID key identifier."""

    kid: str
    alg: KeyAlgorithm
    private_key_pem: str
    public_key_pem: str

    def signing_info(self) -> "SigningInfo":
        return SigningInfo(kid=self.kid, alg=self.alg, key=self.private_key_pem)


class SigningInfo(BaseModel):
    """Private key material and algorithm used to sign a response."""

    model_config = ConfigDict(frozen=True)

    kid: str
    alg: KeyAlgorithm
    key: str


class JWKEntry(BaseModel):
    """Public key in JWK form, embedded in responses as ``sub_jwk``."""

    kty: str
    use: str = "sig"
    alg: str
    kid: str
    crv: str | None = None
    x: str | None = None
    y: str | None = None
    n: str | None = None
    e: str | None = None


class JWTObject(BaseModel):
    """A decoded compact JWS.

    ``signing_input`` keeps the original ``header.payload`` segments so the
    signature can be checked against the exact bytes that were signed.
    """

    model_config = ConfigDict(frozen=True)

    header: dict[str, Any]
    payload: dict[str, Any]
    signature: str
    signing_input: str
