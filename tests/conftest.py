"""Test configuration and fixtures.

Every source of nondeterminism (clock, random bytes, identifiers) is replaced
by a controllable fake and injected through the composition root.
"""

import hashlib
from collections.abc import AsyncGenerator
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio

from keyward.core.auth.gate import AdminPrincipal
from keyward.core.config import Settings, clear_settings_cache
from keyward.core.storage import MemoryKeyStore, StoreClient
from keyward.dependencies import KeywardServices, build_services
from keyward.models.api_key import IssuedApiKey

START_MS = 1_700_000_000_000  # 2023-11-14T22:13:20Z
MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class SequenceRandom:
    """Deterministic byte source: a new digest-derived block per call."""

    def __init__(self, seed: str = "keyward-tests") -> None:
        self._seed = seed
        self.calls = 0

    def __call__(self, num_bytes: int) -> bytes:
        self.calls += 1
        out = b""
        block = 0
        while len(out) < num_bytes:
            material = f"{self._seed}:{self.calls}:{block}".encode()
            out += hashlib.sha256(material).digest()
            block += 1
        return out[:num_bytes]


class SequentialIds:
    """UUID factory counting up from 1; ids sort in creation order."""

    def __init__(self) -> None:
        self.counter = 0

    def __call__(self) -> str:
        self.counter += 1
        return str(UUID(int=self.counter))


class FlakyStore(MemoryKeyStore):
    """Memory store whose writes can be made to fail by key substring."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_put_matching: str | None = None

    async def put(self, key: str, value: Any) -> None:
        if self.fail_put_matching is not None and self.fail_put_matching in key:
            raise ConnectionError(f"write refused for {key}")
        await super().put(key, value)


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> None:
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Test settings with production-like defaults."""
    return Settings(app_env="test", log_level="DEBUG")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def random_source() -> SequenceRandom:
    return SequenceRandom()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def memory_store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def store_client(memory_store: FlakyStore) -> StoreClient:
    return StoreClient(memory_store, default_timeout=1.0)


@pytest_asyncio.fixture
async def services(
    settings: Settings,
    memory_store: FlakyStore,
    clock: FakeClock,
    random_source: SequenceRandom,
    ids: SequentialIds,
) -> AsyncGenerator[KeywardServices, None]:
    """Fully wired services over an in-memory store."""
    built = build_services(
        settings,
        store=memory_store,
        clock=clock,
        random_source=random_source,
        id_factory=ids,
    )
    yield built
    await built.close()


@pytest.fixture
def key_data() -> dict[str, Any]:
    """Valid key creation payload."""
    return {
        "name": "Billing integration",
        "owner": "billing-team",
        "email": "billing@example.com",
        "scopes": ["read:invoices", "write:invoices"],
    }


@pytest_asyncio.fixture
async def super_admin(services: KeywardServices) -> IssuedApiKey:
    """A SUPER_ADMIN key created directly through the lifecycle manager."""
    return await services.lifecycle.create_admin_key(
        "Root admin", "root@example.com", role="SUPER_ADMIN"
    )


@pytest_asyncio.fixture
async def super_principal(
    services: KeywardServices, super_admin: IssuedApiKey
) -> AdminPrincipal:
    """Authenticated principal for the SUPER_ADMIN key."""
    return await services.gate.authenticate(super_admin.secret)
