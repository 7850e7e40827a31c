"""Provider identities and key lookup by DID key identifier."""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from siop.crypto.keys import pem_to_jwk_entry
from siop.crypto.types import JWKEntry, KeyAlgorithm, SigningKeyData


class KeyResolutionError(Exception):
    """Raised by resolvers that cannot reach the DID's key material."""


def qualify_kid(kid: str, did: str) -> str:
    """Expand a fragment-only kid (``#key1``) against ``did``."""
    if kid.startswith("#"):
        return f"{did}{kid}"
    return kid


class IdentityKey(BaseModel):
    """A public key published under a DID."""

    kid: str
    alg: KeyAlgorithm
    public_key_pem: str

    def to_jwk(self) -> JWKEntry:
        return pem_to_jwk_entry(self.public_key_pem, self.kid, self.alg)


class Identity(BaseModel):
    """A DID and its key set, indexed by key identifier."""

    did: str
    keys: list[IdentityKey] = Field(default_factory=list)

    @classmethod
    def from_keypairs(cls, did: str, *keypairs: SigningKeyData) -> "Identity":
        return cls(
            did=did,
            keys=[
                IdentityKey(kid=kp.kid, alg=kp.alg, public_key_pem=kp.public_key_pem)
                for kp in keypairs
            ],
        )

    def get_key(self, kid: str) -> IdentityKey | None:
        """Return the key registered under ``kid``, if any."""
        wanted = qualify_kid(kid, self.did)
        for key in self.keys:
            if qualify_kid(key.kid, self.did) == wanted:
                return key
        return None


@runtime_checkable
class KeyResolver(Protocol):
    """Finds the public key a DID published under a key identifier."""

    async def resolve(self, kid: str, did: str) -> IdentityKey | None: ...


class IdentityRegistry:
    """KeyResolver over a fixed set of known identities."""

    def __init__(self, *identities: Identity) -> None:
        self._identities: dict[str, Identity] = {}
        for identity in identities:
            self.register(identity)

    def register(self, identity: Identity) -> None:
        self._identities[identity.did] = identity

    async def resolve(self, kid: str, did: str) -> IdentityKey | None:
        identity = self._identities.get(did)
        if identity is None:
            return None
        qualified = qualify_kid(kid, did)
        if not qualified.startswith(f"{did}#"):
            return None
        return identity.get_key(qualified)
