# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Credential material, identifiers and the wall clock.

Every source of nondeterminism the core depends on lives here so it can be
injected through constructors: the clock, the random byte source and the id
factory.
"""

import hashlib
import secrets
import time
from collections.abc import Callable
from uuid import UUID, uuid4

from attrs import field, frozen
from beartype import beartype

Clock = Callable[[], int]
RandomSource = Callable[[int], bytes]
IdFactory = Callable[[], str]


@beartype
def system_clock() -> int:
    """Current wall-clock time in milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


@beartype
def new_key_id() -> str:
    """Generate a random UUID4 identifier."""
    return str(uuid4())


@beartype
def is_valid_key_id(value: str) -> bool:
    """Check that ``value`` is a canonical UUID string."""
    try:
        return str(UUID(value)) == value.lower()
    except ValueError:
        return False


@beartype
def hash_secret(secret: str) -> str:
    """Digest used as the ``lookup:`` key so secrets are never stored."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


@frozen
class SecretGenerator:
    """Generates prefixed, hex-encoded bearer secrets."""

    prefix: str = field(default="km_")
    num_bytes: int = field(default=32)
    random_source: RandomSource = field(default=secrets.token_bytes)

    @beartype
    def generate(self) -> str:
        """Return a new secret such as ``km_<64 hex chars>``."""
        return f"{self.prefix}{self.random_source(self.num_bytes).hex()}"

    @beartype
    def looks_valid(self, secret: str) -> bool:
        """Cheap format check performed before any store lookup."""
        body = secret[len(self.prefix) :]
        if not secret.startswith(self.prefix) or len(body) != self.num_bytes * 2:
            return False
        return all(c in "0123456789abcdef" for c in body)


__all__ = [
    "Clock",
    "RandomSource",
    "IdFactory",
    "SecretGenerator",
    "system_clock",
    "new_key_id",
    "is_valid_key_id",
    "hash_secret",
]
