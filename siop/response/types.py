"""Type definitions for SIOP response generation and validation."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from siop.core.settings import (
    AUTH_CODE_TTL_DEFAULT,
    REFRESH_TOKEN_TTL_DEFAULT,
    RESPONSE_EXPIRES_IN_DEFAULT,
)
from siop.crypto.cipher import Crypto
from siop.crypto.types import SigningInfo
from siop.identity.resolver import Identity
from siop.storage.replay_store import ReplayStore


class CheckParams(BaseModel):
    """Expectations a relying party checks a response against."""

    redirect_uri: str
    nonce: str | None = None
    valid_before: int | None = None
    is_expirable: bool = True


class SIOPResponse(BaseModel):
    """Successful response; the fields present depend on ``response_type``."""

    response_type: str
    code: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    state: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class AuthorizationCodeClaims(BaseModel):
    """Decrypted content of an authorization code."""

    kind: Literal["authorization_code"] = "authorization_code"
    iat: int
    exp: int
    request: str


class RefreshTokenClaims(BaseModel):
    """Decrypted content of a refresh token."""

    kind: Literal["refresh_token"] = "refresh_token"
    iat: int
    exp: int
    token_hash: str


class ResponseParams(BaseModel):
    """Bundled inputs for generating a response to one request."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    decoded_request: dict[str, Any]
    signing_info: SigningInfo
    identity: Identity
    crypto: Crypto
    store: ReplayStore
    request: str = ""
    expires_in: int = RESPONSE_EXPIRES_IN_DEFAULT
    auth_code_ttl: int = AUTH_CODE_TTL_DEFAULT
    refresh_ttl: int = REFRESH_TOKEN_TTL_DEFAULT
    issue_refresh_token: bool = True
