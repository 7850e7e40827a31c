"""Provider assembly from settings: identity, signing key, cipher and store."""

from typing import Any

from cryptography.fernet import InvalidToken

from siop.core.logging import configure_logging
from siop.core.settings import SiopSettings
from siop.crypto.cipher import ProviderCrypto
from siop.crypto.keys import decrypt_private_key, public_pem_from_private
from siop.crypto.types import KeyAlgorithm, SigningInfo
from siop.identity.resolver import Identity, IdentityKey, qualify_kid
from siop.response.engine import generate_response
from siop.response.errors import SIOPErrorResponse
from siop.response.types import ResponseParams, SIOPResponse
from siop.storage.replay_store import ReplayStore


class ProviderConfigError(Exception):
    """Raised when settings do not describe a usable provider key."""


class Provider:
    """A configured self-issued provider ready to answer requests."""

    def __init__(
        self,
        identity: Identity,
        signing_info: SigningInfo,
        crypto: ProviderCrypto,
        store: ReplayStore,
        settings: SiopSettings,
    ) -> None:
        self.identity = identity
        self.signing_info = signing_info
        self.crypto = crypto
        self.store = store
        self._settings = settings

    def response_params(
        self, decoded_request: dict[str, Any], request: str = ""
    ) -> ResponseParams:
        """Bundle a request with this provider's keys, TTLs and policy."""
        return ResponseParams(
            decoded_request=decoded_request,
            signing_info=self.signing_info,
            identity=self.identity,
            crypto=self.crypto,
            store=self.store,
            request=request,
            expires_in=self._settings.response_expires_in,
            auth_code_ttl=self._settings.auth_code_ttl,
            refresh_ttl=self._settings.refresh_token_ttl,
            issue_refresh_token=self._settings.issue_refresh_token,
        )

    async def respond(
        self, decoded_request: dict[str, Any], request: str = ""
    ) -> SIOPResponse | SIOPErrorResponse:
        return await generate_response(self.response_params(decoded_request, request))


def load_provider(settings: SiopSettings, store: ReplayStore) -> Provider:
    """Decrypt the configured private key and build the provider around it."""
    missing = [
        name
        for name in ("did", "signing_kid", "encrypted_private_key", "key_encryption_key")
        if not getattr(settings, name)
    ]
    if missing:
        raise ProviderConfigError(f"missing settings: {', '.join(missing)}")
    try:
        algorithm = KeyAlgorithm(settings.signing_alg)
    except ValueError as exc:
        raise ProviderConfigError(f"unsupported alg {settings.signing_alg}") from exc

    configure_logging(settings.log_level, settings.log_json)

    try:
        private_pem = decrypt_private_key(
            settings.encrypted_private_key, settings.key_encryption_key
        )
    except (InvalidToken, ValueError) as exc:
        raise ProviderConfigError(
            "encrypted_private_key cannot be decrypted"
        ) from exc
    kid = qualify_kid(settings.signing_kid, settings.did)
    identity = Identity(
        did=settings.did,
        keys=[
            IdentityKey(
                kid=kid, alg=algorithm, public_key_pem=public_pem_from_private(private_pem)
            )
        ],
    )
    return Provider(
        identity=identity,
        signing_info=SigningInfo(kid=kid, alg=algorithm, key=private_pem),
        crypto=ProviderCrypto(private_pem),
        store=store,
        settings=settings,
    )
