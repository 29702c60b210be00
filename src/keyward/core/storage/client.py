"""Store access wrapper shared by every component of the core.

:class:`StoreClient` is the only place that talks to a :class:`KeyStore`. It

* propagates the caller's deadline (see :func:`store_deadline`) into each
  pending store call,
* converts backend faults into :class:`StorageUnavailableError`,
* offers ``put_many``, which uses a transaction when the backend has one
  and otherwise falls back to sequential best-effort writes.
"""

import asyncio
import builtins
import contextlib
import contextvars
import logging
from collections.abc import Awaitable, Iterator, Mapping
from typing import Any, TypeVar

from beartype import beartype

from ..errors import DeadlineExceededError, KeywardError, StorageUnavailableError
from .base import KeyStore, ListResult, TransactionalKeyStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_deadline: contextvars.ContextVar[float | None] = contextvars.ContextVar(
    "keyward_store_deadline", default=None
)


@contextlib.contextmanager
def store_deadline(seconds: float) -> Iterator[float]:
    """Bound every store call made inside the block by a shared deadline.

    Nested deadlines never extend an outer one. The absolute deadline (event
    loop time) is yielded.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + seconds
    outer = _deadline.get()
    if outer is not None:
        deadline = min(deadline, outer)
    token = _deadline.set(deadline)
    try:
        yield deadline
    finally:
        _deadline.reset(token)


class StoreClient:
    """Deadline-aware, fault-wrapping facade over a :class:`KeyStore`."""

    def __init__(self, store: KeyStore, default_timeout: float | None = None) -> None:
        """Initialize the client.

        Args:
            store: Backend implementing the key-value contract
            default_timeout: Per-call timeout in seconds used when the caller
                has not set a deadline
        """
        self._store = store
        self._default_timeout = default_timeout

    @property
    def store(self) -> KeyStore:
        """The wrapped backend."""
        return self._store

    def _timeout(self, operation: str, key: str | None) -> float | None:
        deadline = _deadline.get()
        if deadline is None:
            return self._default_timeout
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise DeadlineExceededError(operation, key)
        if self._default_timeout is not None:
            return min(remaining, self._default_timeout)
        return remaining

    async def _call(self, operation: str, key: str | None, call: Awaitable[T]) -> T:
        try:
            timeout = self._timeout(operation, key)
        except DeadlineExceededError:
            if asyncio.iscoroutine(call):
                call.close()
            raise
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise DeadlineExceededError(operation, key) from exc
        except KeywardError:
            raise
        except Exception as exc:
            logger.warning("Store %s failed for %s: %s", operation, key, exc)
            raise StorageUnavailableError(operation, key, reason=str(exc)) from exc

    @beartype
    async def get(self, key: str) -> Any | None:
        """Get a value."""
        return await self._call("get", key, self._store.get(key))

    @beartype
    async def put(self, key: str, value: Any) -> None:
        """Put a value."""
        await self._call("put", key, self._store.put(key, value))

    @beartype
    async def delete(self, key: str) -> bool:
        """Delete a key."""
        return await self._call("delete", key, self._store.delete(key))

    @beartype
    async def list(
        self,
        prefix: str = "",
        cursor: str | None = None,
        limit: int | None = None,
    ) -> ListResult:
        """List key names under ``prefix``."""
        return await self._call(
            "list", prefix, self._store.list(prefix=prefix, cursor=cursor, limit=limit)
        )

    @beartype
    async def put_many(self, items: Mapping[str, Any]) -> bool:
        """Write several keys, atomically when the backend allows it.

        Returns ``True`` when a transaction was used. Without one the writes
        are issued in order and a failure part-way leaves the earlier writes
        in place.
        """
        if isinstance(self._store, TransactionalKeyStore):
            transaction = self._store.transaction()
            for key, value in items.items():
                transaction.put(key, value)
            await self._call("commit", None, transaction.commit())
            return True

        for key, value in items.items():
            await self.put(key, value)
        return False

    async def collect_keys(self, prefix: str, page_size: int = 100) -> builtins.list[str]:
        """Collect every key name under ``prefix`` page by page."""
        keys: builtins.list[str] = []
        cursor: str | None = None
        while True:
            page = await self.list(prefix=prefix, cursor=cursor, limit=page_size)
            keys.extend(page.keys)
            if not page.has_more:
                return keys
            cursor = page.cursor
