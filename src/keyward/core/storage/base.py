"""Key-value store contract consumed by the lifecycle core.

The backend is a single logical key-value space with lexicographic
prefix-listing. Transactions are optional; stores that support them also
satisfy :class:`TransactionalKeyStore`.
"""

from typing import Any, Protocol, runtime_checkable

from attrs import field, frozen


@frozen
class ListResult:
    """One page of key names returned by :meth:`KeyStore.list`.

    ``cursor`` is the last key name in ``keys`` when more keys remain under
    the prefix, otherwise ``None``.
    """

    keys: list[str] = field(factory=list)
    cursor: str | None = field(default=None)

    @property
    def has_more(self) -> bool:
        """Whether another page is available."""
        return self.cursor is not None


class StoreTransaction(Protocol):
    """Buffered multi-write committed atomically."""

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    async def commit(self) -> None: ...


@runtime_checkable
class KeyStore(Protocol):
    """Minimal async key-value backend."""

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def list(
        self,
        prefix: str = "",
        cursor: str | None = None,
        limit: int | None = None,
    ) -> ListResult: ...


@runtime_checkable
class TransactionalKeyStore(KeyStore, Protocol):
    """Key-value backend that can commit several writes atomically."""

    def transaction(self) -> StoreTransaction: ...


__all__ = ["ListResult", "StoreTransaction", "KeyStore", "TransactionalKeyStore"]
