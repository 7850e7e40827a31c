"""Error taxonomy for response generation and validation."""

from enum import StrEnum

from pydantic import BaseModel


class ErrorCode(StrEnum):
    """Protocol-level failure cases."""

    ALGORITHM_MISMATCH = "algorithm_mismatch"
    KEY_NOT_FOUND = "key_not_found"
    KEY_RESOLUTION_FAILED = "key_resolution_failed"
    MALFORMED_TOKEN = "malformed_token"
    REDIRECT_URI_MISMATCH = "redirect_uri_mismatch"
    NONCE_MISMATCH = "nonce_mismatch"
    TOKEN_EXPIRED = "token_expired"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_CODE = "invalid_code"
    EXPIRED_CODE = "expired_code"
    REQUEST_MISMATCH = "request_mismatch"
    CODE_ALREADY_USED = "code_already_used"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    EXPIRED_REFRESH_TOKEN = "expired_refresh_token"
    TOKEN_MISMATCH = "token_mismatch"
    INVALID_REQUEST = "invalid_request"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"


class SIOPErrorResponse(BaseModel):
    """Error response returned in place of a token.

    ``error`` is an :class:`ErrorCode` for failures raised here, or whatever
    code a relying party sent when a decoded response is error-shaped.
    """

    error: str
    error_description: str | None = None
    state: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class SIOPError(Exception):
    """Internal signal for a protocol failure; converted at the API boundary."""

    def __init__(self, code: ErrorCode, description: str | None = None) -> None:
        super().__init__(description or code.value)
        self.code = code
        self.description = description

    def to_response(self, state: str | None = None) -> SIOPErrorResponse:
        return SIOPErrorResponse(
            error=self.code, error_description=self.description, state=state
        )
