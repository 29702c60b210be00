# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Object graph wiring.

:func:`build_services` assembles every component from :class:`Settings`.
The store, clock, random source and id factory can be injected so tests and
embedding applications control every source of nondeterminism.
"""

import logging
import secrets

from attrs import field, frozen
from beartype import beartype

from .core.auth.api_keys import KeyLifecycleManager
from .core.auth.gate import AuthorizationGate
from .core.auth.rotation import RotationManager
from .core.config import Settings, get_settings
from .core.logging_utils import configure_logging, get_logger
from .core.security import (
    Clock,
    IdFactory,
    RandomSource,
    SecretGenerator,
    new_key_id,
    system_clock,
)
from .core.storage import KeyStore, MemoryKeyStore, RedisKeyStore, StoreClient
from .services.audit_trail import AuditTrail
from .services.key_operations import KeyOperationService

logger = logging.getLogger(__name__)


@frozen
class KeywardServices:
    """Every component, sharing one store client."""

    settings: Settings = field()
    store: StoreClient = field()
    lifecycle: KeyLifecycleManager = field()
    rotation: RotationManager = field()
    audit: AuditTrail = field()
    gate: AuthorizationGate = field()
    operations: KeyOperationService = field()

    async def close(self) -> None:
        """Flush pending background writes and release the backend."""
        await self.lifecycle.drain_pending_updates()
        backend = self.store.store
        if isinstance(backend, RedisKeyStore):
            await backend.close()


@beartype
def build_store(settings: Settings) -> KeyStore:
    """Create the backend selected by ``settings.store_backend``."""
    if settings.store_backend == "redis":
        logger.info("Using Redis key store (namespace %s)", settings.redis_namespace)
        return RedisKeyStore.from_url(settings.redis_url, namespace=settings.redis_namespace)
    if settings.is_production:
        logger.warning("In-memory key store selected in production; keys will not persist")
    return MemoryKeyStore()


def build_services(
    settings: Settings | None = None,
    *,
    store: KeyStore | None = None,
    clock: Clock = system_clock,
    random_source: RandomSource = secrets.token_bytes,
    id_factory: IdFactory = new_key_id,
) -> KeywardServices:
    """Assemble the component graph.

    Args:
        settings: Settings to use, defaults to :func:`get_settings`
        store: Backend to use instead of the configured one
        clock: Millisecond wall clock
        random_source: Byte source for secrets
        id_factory: Source of key and audit entry identifiers
    """
    settings = settings or get_settings()
    configure_logging(level=settings.log_level)

    client = StoreClient(
        store if store is not None else build_store(settings),
        default_timeout=settings.store_timeout_seconds,
    )
    lifecycle = KeyLifecycleManager(
        client,
        settings,
        clock=clock,
        secret_generator=SecretGenerator(
            prefix=settings.key_prefix,
            num_bytes=settings.secret_bytes,
            random_source=random_source,
        ),
        id_factory=id_factory,
    )
    rotation = RotationManager(lifecycle, settings, clock=clock)
    audit = AuditTrail(client, settings, clock=clock, id_factory=id_factory)
    gate = AuthorizationGate(lifecycle, settings)
    get_logger(__name__).info(
        "Keyward services ready (%s store, %s)", settings.store_backend, settings.app_env
    )

    return KeywardServices(
        settings=settings,
        store=client,
        lifecycle=lifecycle,
        rotation=rotation,
        audit=audit,
        gate=gate,
        operations=KeyOperationService(lifecycle, rotation, audit, gate),
    )
