"""Shared test fixtures for the SIOP responder."""

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from siop.crypto.cipher import ProviderCrypto
from siop.crypto.keys import generate_keypair
from siop.crypto.types import KeyAlgorithm, SigningKeyData
from siop.db.base import BaseEntity
from siop.db.engine import create_schema
from siop.identity.resolver import Identity, IdentityRegistry
from siop.response.types import ResponseParams
from siop.storage.replay_store import InMemoryReplayStore

PROVIDER_DID = "did:example:provider"
REDIRECT_URI = "https://rp.example/cb"


@pytest.fixture
def keypair() -> SigningKeyData:
    """ES256K provider key published as did:example:provider#key1."""
    return generate_keypair(KeyAlgorithm.ES256K, PROVIDER_DID, "key1")


@pytest.fixture
def identity(keypair: SigningKeyData) -> Identity:
    return Identity.from_keypairs(PROVIDER_DID, keypair)


@pytest.fixture
def resolver(identity: Identity) -> IdentityRegistry:
    return IdentityRegistry(identity)


@pytest.fixture
def crypto(keypair: SigningKeyData) -> ProviderCrypto:
    return ProviderCrypto(keypair.private_key_pem)


@pytest.fixture
def replay_store() -> InMemoryReplayStore:
    return InMemoryReplayStore()


@pytest.fixture
def siop_request() -> dict[str, Any]:
    """A decoded id_token request from the relying party."""
    return {
        "response_type": "id_token",
        "client_id": REDIRECT_URI,
        "redirect_uri": REDIRECT_URI,
        "nonce": "abc123",
        "state": "state-1",
        "registration": {"id_token_signed_response_alg": "ES256K"},
    }


@pytest.fixture
def make_params(
    keypair: SigningKeyData,
    identity: Identity,
    crypto: ProviderCrypto,
    replay_store: InMemoryReplayStore,
) -> Callable[..., ResponseParams]:
    """Factory for ResponseParams with the provider fixtures filled in."""

    def _make(decoded_request: dict[str, Any], **overrides: Any) -> ResponseParams:
        values: dict[str, Any] = {
            "decoded_request": decoded_request,
            "signing_info": keypair.signing_info(),
            "identity": identity,
            "crypto": crypto,
            "store": replay_store,
        }
        values.update(overrides)
        return ResponseParams(**values)

    return _make


@pytest.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    """Create an in-memory SQLite async session for repository tests."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """File-backed SQLite so concurrent sessions use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'replay.db'}")
    await create_schema(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
