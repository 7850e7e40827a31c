"""Compact JWS encoding, decoding and signature verification."""

import json
from typing import Any

import jwt
from jwt.algorithms import get_default_algorithms
from jwt.exceptions import PyJWTError
from jwt.utils import base64url_decode

from siop.crypto.types import JWTObject, SigningInfo
from siop.response.errors import ErrorCode, SIOPErrorResponse

TOKEN_TYPE = "JWT"


def _error_shape(obj: Any) -> SIOPErrorResponse | None:
    """Return an error response if ``obj`` is an error-shaped payload."""
    if isinstance(obj, dict) and isinstance(obj.get("error"), str):
        return SIOPErrorResponse(
            error=obj["error"],
            error_description=obj.get("error_description"),
            state=obj.get("state"),
        )
    return None


def _malformed(description: str) -> SIOPErrorResponse:
    return SIOPErrorResponse(
        error=ErrorCode.MALFORMED_TOKEN, error_description=description
    )


def _decode_segment(segment: str) -> Any:
    return json.loads(base64url_decode(segment))


class TokenCodec:
    """Signs and parses ``header.payload.signature`` tokens via PyJWT."""

    def encode(
        self,
        header: dict[str, Any],
        payload: dict[str, Any],
        signing_info: SigningInfo,
    ) -> str:
        """Sign ``payload`` with the private key in ``signing_info``."""
        headers = {"typ": TOKEN_TYPE, **header, "kid": signing_info.kid}
        return jwt.encode(
            payload,
            signing_info.key,
            algorithm=signing_info.alg.value,
            headers=headers,
        )

    def decode(self, token: str) -> JWTObject | SIOPErrorResponse:
        """Split and parse a token without verifying it.

        A response that is an error object (either bare JSON or the payload
        of a JWS) comes back as :class:`SIOPErrorResponse`.
        """
        segments = token.split(".")
        if len(segments) != 3:
            try:
                bare = json.loads(token)
            except ValueError:
                return _malformed("response is neither a JWS nor a JSON object")
            return _error_shape(bare) or _malformed("response is not a JWS")

        try:
            header = _decode_segment(segments[0])
            payload = _decode_segment(segments[1])
        except ValueError:
            return _malformed("token segments are not base64url JSON")
        if not isinstance(header, dict) or not isinstance(payload, dict):
            return _malformed("token header and payload must be objects")

        error = _error_shape(payload)
        if error is not None:
            return error
        return JWTObject(
            header=header,
            payload=payload,
            signature=segments[2],
            signing_input=f"{segments[0]}.{segments[1]}",
        )

    def verify_signature(self, token: JWTObject, public_key_pem: str) -> bool:
        """Check the JWS signature of ``token`` against a PEM public key."""
        alg = token.header.get("alg")
        algorithms = get_default_algorithms()
        if not isinstance(alg, str) or alg == "none" or alg not in algorithms:
            return False
        algorithm = algorithms[alg]
        try:
            key = algorithm.prepare_key(public_key_pem)
            signature = base64url_decode(token.signature)
            return algorithm.verify(token.signing_input.encode(), key, signature)
        except (PyJWTError, ValueError, TypeError):
            return False
