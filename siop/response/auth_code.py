"""Encrypted authorization codes bound to the request they were issued for."""

import hashlib
import json
import secrets
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError

from siop.core.logging import short_hash
from siop.core.settings import AUTH_CODE_TTL_DEFAULT
from siop.crypto.cipher import Crypto, DecryptError
from siop.crypto.token_codec import TokenCodec
from siop.response.errors import ErrorCode, SIOPError, SIOPErrorResponse
from siop.response.types import AuthorizationCodeClaims
from siop.storage.replay_store import ReplayStore, ReplayStoreError

logger = structlog.get_logger(__name__)

AUTH_CODE_TTL_SECONDS = AUTH_CODE_TTL_DEFAULT

# Fields that differ between the issuing request and the redemption request.
BINDING_EXCLUDED_FIELDS = frozenset(
    {
        "code",
        "grant_type",
        "response_type",
        "refresh_token",
        "id_token",
        "state",
        "iat",
        "exp",
        "jti",
    }
)


def _now() -> int:
    return int(datetime.now(UTC).timestamp())


def hash_request(request_payload: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON of the request's binding fields."""
    binding = {
        k: v for k, v in request_payload.items() if k not in BINDING_EXCLUDED_FIELDS
    }
    canonical = json.dumps(binding, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


def code_identifier(code: str) -> str:
    """Replay-store key for a code."""
    return hashlib.sha256(code.encode()).hexdigest()


async def generate_authorization_code(
    request_payload: dict[str, Any],
    crypto: Crypto,
    ttl_seconds: int = AUTH_CODE_TTL_SECONDS,
) -> str:
    """Encrypt ``{iat, exp, request-hash}`` into an opaque code."""
    now = _now()
    claims = AuthorizationCodeClaims(
        iat=now, exp=now + ttl_seconds, request=hash_request(request_payload)
    )
    code = crypto.encrypt(claims.model_dump())
    logger.info(
        "auth_code.issued",
        code_id=short_hash(code_identifier(code)),
        exp=claims.exp,
    )
    return code


def _decrypt_code(code: str, crypto: Crypto) -> AuthorizationCodeClaims:
    try:
        return AuthorizationCodeClaims.model_validate(crypto.decrypt(code))
    except (DecryptError, ValidationError) as exc:
        raise SIOPError(
            ErrorCode.INVALID_CODE, "authorization code is not readable"
        ) from exc


async def _redeem(
    request_payload: dict[str, Any], crypto: Crypto, store: ReplayStore
) -> str:
    """Run the redemption checks in order; returns the code identifier."""
    code = request_payload.get("code")
    if not isinstance(code, str) or not code:
        raise SIOPError(ErrorCode.INVALID_REQUEST, "request carries no code")

    claims = _decrypt_code(code, crypto)
    if _now() > claims.exp:
        raise SIOPError(ErrorCode.EXPIRED_CODE, "authorization code has expired")
    if not secrets.compare_digest(hash_request(request_payload), claims.request):
        raise SIOPError(
            ErrorCode.REQUEST_MISMATCH,
            "request does not match the one the code was issued for",
        )

    code_id = code_identifier(code)
    try:
        already_used = await store.check_and_mark(
            code_id, datetime.fromtimestamp(claims.exp, UTC)
        )
    except ReplayStoreError as exc:
        raise SIOPError(
            ErrorCode.INVALID_CODE, "code redemption could not be recorded"
        ) from exc
    if already_used:
        raise SIOPError(
            ErrorCode.CODE_ALREADY_USED, "authorization code was already redeemed"
        )
    return code_id


async def validate_authorization_code(
    request: str,
    request_payload: dict[str, Any] | None,
    crypto: Crypto,
    store: ReplayStore,
) -> SIOPErrorResponse | None:
    """Redeem the code in an ``authorization_code`` grant request.

    Returns an error response if the code cannot be redeemed, else None.
    ``request_payload`` is decoded from ``request`` when not supplied.
    """
    if request_payload is None:
        decoded = TokenCodec().decode(request)
        if isinstance(decoded, SIOPErrorResponse):
            return SIOPErrorResponse(
                error=ErrorCode.INVALID_REQUEST,
                error_description="request could not be decoded",
            )
        request_payload = decoded.payload

    state = request_payload.get("state")
    try:
        code_id = await _redeem(request_payload, crypto, store)
    except SIOPError as err:
        logger.warning("auth_code.rejected", error=err.code.value)
        return err.to_response(state=state if isinstance(state, str) else None)

    logger.info("auth_code.redeemed", code_id=short_hash(code_id))
    return None
