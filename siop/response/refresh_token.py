"""Refresh tokens bound to the identity token they were issued with.

Refresh tokens are time-bounded but not single-use; no replay store is
consulted when they are validated.
"""

import hashlib
import secrets
from datetime import UTC, datetime

import structlog
from pydantic import ValidationError

from siop.core.settings import REFRESH_TOKEN_TTL_DEFAULT
from siop.crypto.cipher import Crypto, DecryptError
from siop.response.errors import ErrorCode, SIOPError, SIOPErrorResponse
from siop.response.types import RefreshTokenClaims

logger = structlog.get_logger(__name__)

REFRESH_TOKEN_TTL_SECONDS = REFRESH_TOKEN_TTL_DEFAULT


def hash_token(token: str) -> str:
    """SHA-256 hash of an identity token."""
    return hashlib.sha256(token.encode()).hexdigest()


async def generate_refresh_token(
    id_token: str,
    crypto: Crypto,
    ttl_seconds: int = REFRESH_TOKEN_TTL_SECONDS,
) -> str:
    """Encrypt ``{token-hash, iat, exp}`` for ``id_token``."""
    now = int(datetime.now(UTC).timestamp())
    claims = RefreshTokenClaims(
        iat=now, exp=now + ttl_seconds, token_hash=hash_token(id_token)
    )
    refresh = crypto.encrypt(claims.model_dump())
    logger.info("refresh_token.issued", exp=claims.exp)
    return refresh


def _check_refresh_token(
    id_token: str, refresh_token: str, crypto: Crypto
) -> RefreshTokenClaims:
    try:
        claims = RefreshTokenClaims.model_validate(crypto.decrypt(refresh_token))
    except (DecryptError, ValidationError) as exc:
        raise SIOPError(
            ErrorCode.INVALID_REFRESH_TOKEN, "refresh token is not readable"
        ) from exc
    now = int(datetime.now(UTC).timestamp())
    if now > claims.exp:
        raise SIOPError(ErrorCode.EXPIRED_REFRESH_TOKEN, "refresh token has expired")
    if not secrets.compare_digest(hash_token(id_token), claims.token_hash):
        raise SIOPError(
            ErrorCode.TOKEN_MISMATCH,
            "refresh token was not issued for this identity token",
        )
    return claims


async def validate_refresh_token(
    id_token: str, refresh_token: str, crypto: Crypto
) -> SIOPErrorResponse | None:
    """Return an error response if the pair does not validate, else None."""
    try:
        _check_refresh_token(id_token, refresh_token, crypto)
    except SIOPError as err:
        logger.warning("refresh_token.rejected", error=err.code.value)
        return err.to_response()
    return None
