"""Redis-backed key-value store with lexicographic prefix listing.

Values are JSON documents stored under ``<namespace>:<key>``. A sorted set
with every member at score 0 mirrors the key space so ``ZRANGEBYLEX`` can
serve ordered, cursor-based prefix listings. Writes touch both structures in
one ``MULTI``/``EXEC`` block.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from beartype import beartype

from .base import ListResult

if TYPE_CHECKING:
    from redis.asyncio import Redis as RedisType
else:
    RedisType = redis.Redis

_INDEX_SUFFIX = "__index__"


def _decode(member: str | bytes) -> str:
    return member.decode("utf-8") if isinstance(member, bytes) else member


class RedisTransaction:
    """Buffered writes committed through a transactional pipeline."""

    def __init__(self, store: RedisKeyStore) -> None:
        """Bind the transaction to its store."""
        self._store = store
        self._operations: list[tuple[str, str, Any]] = []

    def put(self, key: str, value: Any) -> None:
        """Queue a write."""
        self._operations.append(("put", key, value))

    def delete(self, key: str) -> None:
        """Queue a delete."""
        self._operations.append(("delete", key, None))

    async def commit(self) -> None:
        """Execute every queued operation inside ``MULTI``/``EXEC``."""
        async with self._store.client.pipeline(transaction=True) as pipe:
            for operation, key, value in self._operations:
                if operation == "put":
                    self._store._queue_put(pipe, key, value)
                else:
                    self._store._queue_delete(pipe, key)
            await pipe.execute()


class RedisKeyStore:
    """Key-value store on top of ``redis.asyncio``."""

    def __init__(self, redis_client: RedisType, namespace: str = "keyward") -> None:
        """Wrap an existing Redis client.

        Args:
            redis_client: Connected ``redis.asyncio.Redis`` instance
            namespace: Prefix applied to every Redis key this store writes
        """
        self._redis = redis_client
        self._namespace = namespace
        self._index_key = f"{namespace}:{_INDEX_SUFFIX}"

    @classmethod
    def from_url(cls, url: str, namespace: str = "keyward") -> RedisKeyStore:
        """Create a store with its own connection pool."""
        return cls(redis.from_url(url, decode_responses=True), namespace=namespace)

    @property
    def client(self) -> RedisType:
        """Underlying Redis client."""
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _queue_put(self, pipe: Any, key: str, value: Any) -> None:
        pipe.set(self._key(key), json.dumps(value, default=str))
        pipe.zadd(self._index_key, {key: 0})

    def _queue_delete(self, pipe: Any, key: str) -> None:
        pipe.delete(self._key(key))
        pipe.zrem(self._index_key, key)

    @beartype
    async def get(self, key: str) -> Any | None:
        """Get a JSON value, or ``None`` when absent."""
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    @beartype
    async def put(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value."""
        async with self._redis.pipeline(transaction=True) as pipe:
            self._queue_put(pipe, key, value)
            await pipe.execute()

    @beartype
    async def delete(self, key: str) -> bool:
        """Delete a key, returning whether it existed."""
        async with self._redis.pipeline(transaction=True) as pipe:
            self._queue_delete(pipe, key)
            deleted, _ = await pipe.execute()
        return bool(deleted)

    @beartype
    async def list(
        self,
        prefix: str = "",
        cursor: str | None = None,
        limit: int | None = None,
    ) -> ListResult:
        """List key names under ``prefix`` strictly after ``cursor``."""
        prefix_bytes = prefix.encode("utf-8")
        if cursor is not None and cursor >= prefix:
            lower: str | bytes = b"(" + cursor.encode("utf-8")
        elif prefix:
            lower = b"[" + prefix_bytes
        else:
            lower = "-"
        # UTF-8 never produces 0xff, so this bounds every key under the prefix.
        upper: str | bytes = b"[" + prefix_bytes + b"\xff" if prefix else "+"

        if limit is None:
            members = await self._redis.zrangebylex(self._index_key, lower, upper)
        else:
            members = await self._redis.zrangebylex(
                self._index_key, lower, upper, start=0, num=limit + 1
            )

        keys = [_decode(member) for member in members]
        if limit is not None and len(keys) > limit:
            keys = keys[:limit]
            return ListResult(keys=keys, cursor=keys[-1] if keys else None)
        return ListResult(keys=keys, cursor=None)

    def transaction(self) -> RedisTransaction:
        """Start a buffered transaction."""
        return RedisTransaction(self)

    async def close(self) -> None:
        """Close the Redis connection."""
        await self._redis.aclose()
