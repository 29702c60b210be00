"""Key-value storage contract, backends and the shared store client."""

from .base import KeyStore, ListResult, StoreTransaction, TransactionalKeyStore
from .client import StoreClient, store_deadline
from .memory import MemoryKeyStore
from .redis_store import RedisKeyStore

__all__ = [
    "KeyStore",
    "TransactionalKeyStore",
    "StoreTransaction",
    "ListResult",
    "StoreClient",
    "store_deadline",
    "MemoryKeyStore",
    "RedisKeyStore",
]
