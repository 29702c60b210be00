"""In-process key-value store used for tests and single-node deployments."""

import bisect
import copy
from typing import Any

from beartype import beartype

from .base import ListResult


class MemoryTransaction:
    """Buffered writes applied to a :class:`MemoryKeyStore` in one step."""

    def __init__(self, store: "MemoryKeyStore") -> None:
        """Bind the transaction to its store."""
        self._store = store
        self._operations: list[tuple[str, str, Any]] = []
        self._committed = False

    @beartype
    def put(self, key: str, value: Any) -> None:
        """Queue a write."""
        self._operations.append(("put", key, value))

    @beartype
    def delete(self, key: str) -> None:
        """Queue a delete."""
        self._operations.append(("delete", key, None))

    @beartype
    async def commit(self) -> None:
        """Apply every queued operation without yielding to the event loop."""
        if self._committed:
            raise RuntimeError("Transaction already committed")
        self._committed = True
        for operation, key, value in self._operations:
            if operation == "put":
                self._store._write(key, value)
            else:
                self._store._remove(key)


class MemoryKeyStore:
    """Dictionary-backed store with a sorted key index for prefix listing.

    Values are deep-copied on the way in and out so callers can never mutate
    stored state through a shared reference.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._data: dict[str, Any] = {}
        self._sorted_keys: list[str] = []

    def _write(self, key: str, value: Any) -> None:
        if key not in self._data:
            bisect.insort(self._sorted_keys, key)
        self._data[key] = copy.deepcopy(value)

    def _remove(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        index = bisect.bisect_left(self._sorted_keys, key)
        del self._sorted_keys[index]
        return True

    @beartype
    async def get(self, key: str) -> Any | None:
        """Get a value, or ``None`` when absent."""
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    @beartype
    async def put(self, key: str, value: Any) -> None:
        """Store a value."""
        self._write(key, value)

    @beartype
    async def delete(self, key: str) -> bool:
        """Delete a key, returning whether it existed."""
        return self._remove(key)

    @beartype
    async def list(
        self,
        prefix: str = "",
        cursor: str | None = None,
        limit: int | None = None,
    ) -> ListResult:
        """List key names under ``prefix`` strictly after ``cursor``."""
        if cursor is not None and cursor >= prefix:
            start = bisect.bisect_right(self._sorted_keys, cursor)
        else:
            start = bisect.bisect_left(self._sorted_keys, prefix)

        keys: list[str] = []
        index = start
        while index < len(self._sorted_keys):
            key = self._sorted_keys[index]
            if not key.startswith(prefix):
                break
            if limit is not None and len(keys) == limit:
                return ListResult(keys=keys, cursor=keys[-1] if keys else None)
            keys.append(key)
            index += 1

        return ListResult(keys=keys, cursor=None)

    @beartype
    def transaction(self) -> MemoryTransaction:
        """Start a buffered transaction."""
        return MemoryTransaction(self)

    def __len__(self) -> int:
        return len(self._data)
