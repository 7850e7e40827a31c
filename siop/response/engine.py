"""SIOP response generation and validation."""

from datetime import UTC, datetime
from typing import Any

import structlog

from siop.crypto.keys import key_matches_algorithm, private_key_matches
from siop.crypto.token_codec import TokenCodec
from siop.crypto.types import JWTObject, KeyAlgorithm
from siop.identity.resolver import IdentityKey, KeyResolutionError, KeyResolver
from siop.response.auth_code import (
    generate_authorization_code,
    validate_authorization_code,
)
from siop.response.errors import ErrorCode, SIOPError, SIOPErrorResponse
from siop.response.refresh_token import generate_refresh_token, validate_refresh_token
from siop.response.types import CheckParams, ResponseParams, SIOPResponse

logger = structlog.get_logger(__name__)

DEFAULT_SIGNING_ALG = KeyAlgorithm.ES256K
GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"
RESPONSE_TYPE_CODE = "code"
RESPONSE_TYPE_ID_TOKEN = "id_token"
SUPPORTED_RESPONSE_TYPES = frozenset({RESPONSE_TYPE_CODE, RESPONSE_TYPE_ID_TOKEN})
REQUIRED_HEADER_FIELDS = ("alg", "kid", "typ")
REQUIRED_PAYLOAD_FIELDS = ("iss", "sub", "aud", "iat", "exp")

_codec = TokenCodec()


def _now() -> int:
    return int(datetime.now(UTC).timestamp())


def _optional_str(payload: dict[str, Any], field: str) -> str | None:
    value = payload.get(field)
    return value if isinstance(value, str) else None


def _required_alg(request: dict[str, Any]) -> str:
    registration = request.get("registration")
    if not isinstance(registration, dict):
        return DEFAULT_SIGNING_ALG
    return registration.get("id_token_signed_response_alg") or DEFAULT_SIGNING_ALG


def _check_signing_key(params: ResponseParams) -> IdentityKey:
    """Match the signing key against the RP's algorithm and the key set."""
    info = params.signing_info
    required = _required_alg(params.decoded_request)
    if info.alg != required:
        raise SIOPError(
            ErrorCode.ALGORITHM_MISMATCH,
            f"relying party requires {required}, signing key uses {info.alg}",
        )
    key = params.identity.get_key(info.kid)
    if key is None:
        raise SIOPError(ErrorCode.KEY_NOT_FOUND, f"no key {info.kid} in identity")
    if key.alg != info.alg or not key_matches_algorithm(key.public_key_pem, info.alg):
        raise SIOPError(
            ErrorCode.ALGORITHM_MISMATCH,
            f"key {info.kid} is not a {info.alg} key",
        )
    if not private_key_matches(info.key, key.public_key_pem):
        raise SIOPError(
            ErrorCode.KEY_NOT_FOUND,
            f"signing key is not the key published as {info.kid}",
        )
    return key


def _response_types(request: dict[str, Any]) -> frozenset[str]:
    raw = request.get("response_type") or RESPONSE_TYPE_ID_TOKEN
    if not isinstance(raw, str):
        raise SIOPError(ErrorCode.INVALID_REQUEST, "response_type must be a string")
    types = frozenset(raw.split())
    if not types or not types <= SUPPORTED_RESPONSE_TYPES:
        raise SIOPError(ErrorCode.UNSUPPORTED_RESPONSE_TYPE, raw)
    return types


def _sign_id_token(params: ResponseParams, key: IdentityKey) -> str:
    request = params.decoded_request
    did = params.identity.did
    now = _now()
    payload: dict[str, Any] = {
        "iss": did,
        "sub": did,
        "aud": request["redirect_uri"],
        "iat": now,
        "exp": now + params.expires_in,
        "sub_jwk": key.to_jwk().model_dump(exclude_none=True),
    }
    if request.get("nonce") is not None:
        payload["nonce"] = request["nonce"]
    return _codec.encode({}, payload, params.signing_info)


async def _redeem_grant(
    grant_type: str, params: ResponseParams
) -> SIOPErrorResponse | None:
    request = params.decoded_request
    if grant_type == GRANT_AUTHORIZATION_CODE:
        return await validate_authorization_code(
            params.request, request, params.crypto, params.store
        )
    if grant_type == GRANT_REFRESH_TOKEN:
        id_token = _optional_str(request, "id_token")
        refresh_token = _optional_str(request, "refresh_token")
        if not id_token or not refresh_token:
            raise SIOPError(
                ErrorCode.INVALID_REQUEST,
                "refresh grant needs id_token and refresh_token",
            )
        return await validate_refresh_token(id_token, refresh_token, params.crypto)
    raise SIOPError(ErrorCode.UNSUPPORTED_RESPONSE_TYPE, f"grant_type {grant_type}")


async def _respond(params: ResponseParams) -> SIOPResponse | SIOPErrorResponse:
    request = params.decoded_request
    state = _optional_str(request, "state")
    grant_type = request.get("grant_type")

    if grant_type is not None:
        error = await _redeem_grant(str(grant_type), params)
        if error is not None:
            return error
        response_types = frozenset({RESPONSE_TYPE_ID_TOKEN})
    else:
        response_types = _response_types(request)

    if not _optional_str(request, "redirect_uri"):
        raise SIOPError(ErrorCode.INVALID_REQUEST, "request has no redirect_uri")
    key = _check_signing_key(params)

    if grant_type is None and RESPONSE_TYPE_CODE in response_types:
        code = await generate_authorization_code(
            request, params.crypto, params.auth_code_ttl
        )
        if RESPONSE_TYPE_ID_TOKEN not in response_types:
            return SIOPResponse(response_type=RESPONSE_TYPE_CODE, code=code, state=state)
        return SIOPResponse(
            response_type="code id_token",
            code=code,
            id_token=_sign_id_token(params, key),
            state=state,
        )

    id_token = _sign_id_token(params, key)
    refresh_token = None
    if grant_type is not None and params.issue_refresh_token:
        refresh_token = await generate_refresh_token(
            id_token, params.crypto, params.refresh_ttl
        )
    return SIOPResponse(
        response_type=RESPONSE_TYPE_ID_TOKEN,
        id_token=id_token,
        refresh_token=refresh_token,
        state=state,
    )


async def generate_response(
    params: ResponseParams,
) -> SIOPResponse | SIOPErrorResponse:
    """Build the provider's response to a decoded relying-party request.

    Grant requests (``authorization_code``, ``refresh_token``) are redeemed
    first and their error is returned unchanged on failure. Otherwise the
    request's ``response_type`` selects a code, an id_token, or both. The
    signing key must match ``registration.id_token_signed_response_alg`` and
    be present in the provider identity before anything is issued.
    """
    request = params.decoded_request
    try:
        response = await _respond(params)
    except SIOPError as err:
        logger.warning(
            "response.rejected",
            error=err.code.value,
            client_id=_optional_str(request, "client_id"),
        )
        return err.to_response(state=_optional_str(request, "state"))

    if isinstance(response, SIOPErrorResponse):
        logger.warning("response.rejected", error=response.error)
        return response
    logger.info(
        "response.issued",
        response_type=response.response_type,
        client_id=_optional_str(request, "client_id"),
        refresh=response.refresh_token is not None,
    )
    return response


def _check_required_fields(token: JWTObject) -> None:
    for field in REQUIRED_HEADER_FIELDS:
        if not isinstance(token.header.get(field), str):
            raise SIOPError(ErrorCode.MALFORMED_TOKEN, f"header lacks {field}")
    for field in REQUIRED_PAYLOAD_FIELDS:
        if token.payload.get(field) is None:
            raise SIOPError(ErrorCode.MALFORMED_TOKEN, f"payload lacks {field}")
    if not isinstance(token.payload["sub"], str):
        raise SIOPError(ErrorCode.MALFORMED_TOKEN, "sub must be a DID string")
    for field in ("iat", "exp"):
        value = token.payload[field]
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise SIOPError(ErrorCode.MALFORMED_TOKEN, f"{field} must be numeric")


def _check_against_params(payload: dict[str, Any], check: CheckParams) -> None:
    aud = payload["aud"]
    audiences = aud if isinstance(aud, list) else [aud]
    if check.redirect_uri not in audiences:
        raise SIOPError(
            ErrorCode.REDIRECT_URI_MISMATCH, "audience does not match redirect_uri"
        )
    if check.nonce is not None and payload.get("nonce") != check.nonce:
        raise SIOPError(ErrorCode.NONCE_MISMATCH, "nonce does not match")
    if check.is_expirable:
        now = _now()
        if now >= payload["exp"]:
            raise SIOPError(ErrorCode.TOKEN_EXPIRED, "id_token has expired")
        if check.valid_before is not None and now >= check.valid_before:
            raise SIOPError(ErrorCode.TOKEN_EXPIRED, "validity bound has passed")


async def _resolve_key(token: JWTObject, resolver: KeyResolver) -> IdentityKey:
    kid = token.header["kid"]
    did = token.payload["sub"]
    try:
        key = await resolver.resolve(kid, did)
    except KeyResolutionError as exc:
        raise SIOPError(
            ErrorCode.KEY_RESOLUTION_FAILED, f"could not resolve {kid}"
        ) from exc
    if key is None:
        raise SIOPError(ErrorCode.KEY_RESOLUTION_FAILED, f"{did} has no key {kid}")
    return key


async def validate_response(
    response: str, check_params: CheckParams, resolver: KeyResolver
) -> JWTObject | SIOPErrorResponse:
    """Decode and verify a SIOP response.

    An error-shaped response is returned as-is. Otherwise the header and
    payload fields are checked for presence, the payload is checked against
    ``check_params``, and the signature is verified with the key that the
    subject DID publishes under the header's ``kid``.
    """
    decoded = _codec.decode(response)
    if isinstance(decoded, SIOPErrorResponse):
        return decoded

    try:
        _check_required_fields(decoded)
        _check_against_params(decoded.payload, check_params)
        key = await _resolve_key(decoded, resolver)
        if key.alg != decoded.header["alg"] or not _codec.verify_signature(
            decoded, key.public_key_pem
        ):
            raise SIOPError(ErrorCode.INVALID_SIGNATURE, "signature does not verify")
    except SIOPError as err:
        logger.warning("response.rejected", error=err.code.value)
        return err.to_response()
    return decoded
