"""Hierarchical permission scopes and the canonical wildcard matcher.

A scope is a colon-delimited, case-insensitive string such as
``admin:keys:read``. Granted scopes are parsed once into a
:class:`ScopePattern`; the colon string is only the wire form.

A granted pattern satisfies a required scope when any of these hold:

1. the two are equal;
2. the pattern ends in ``:*`` and the required scope starts with the pattern
   minus its ``*`` (a trailing wildcard absorbs any remaining depth);
3. both have the same number of segments and every granted segment is either
   equal to the required one or ``*``.

An empty required scope is never granted.
"""

from collections.abc import Iterable
from functools import lru_cache

from attrs import field, frozen
from beartype import beartype

SEPARATOR = ":"


class _Wildcard:
    """Marker for a ``*`` segment in a parsed pattern."""

    _instance: "_Wildcard | None" = None

    def __new__(cls) -> "_Wildcard":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "WILDCARD"


WILDCARD = _Wildcard()

Segment = str | _Wildcard


@frozen
class ScopePattern:
    """A granted scope parsed into segments."""

    raw: str = field()
    segments: tuple[Segment, ...] = field()

    @property
    def trailing_wildcard(self) -> bool:
        """Whether the last segment is ``*`` after at least one other segment."""
        return len(self.segments) > 1 and self.segments[-1] is WILDCARD

    @property
    def absorbed_prefix(self) -> str:
        """Prefix every scope under a trailing wildcard starts with."""
        return self.raw[:-1] if self.trailing_wildcard else self.raw

    def satisfies(self, required: str) -> bool:
        """Check this pattern against an already normalized required scope."""
        if not required:
            return False
        if self.raw == required:
            return True
        if self.trailing_wildcard and required.startswith(self.absorbed_prefix):
            return True
        required_segments = required.split(SEPARATOR)
        if len(required_segments) != len(self.segments):
            return False
        return all(
            granted is WILDCARD or granted == wanted
            for granted, wanted in zip(self.segments, required_segments)
        )


@beartype
def normalize_scope(scope: str) -> str:
    """Canonical comparison form of a scope string."""
    return scope.strip().lower()


@lru_cache(maxsize=4096)
def parse_scope(scope: str) -> ScopePattern:
    """Parse a granted scope string into a :class:`ScopePattern`."""
    raw = normalize_scope(scope)
    segments: tuple[Segment, ...] = tuple(
        WILDCARD if part == "*" else part for part in raw.split(SEPARATOR)
    )
    return ScopePattern(raw=raw, segments=segments)


@beartype
def is_well_formed(scope: str) -> bool:
    """Check that every segment is non-empty and ``*`` only fills whole segments."""
    raw = normalize_scope(scope)
    if not raw:
        return False
    for part in raw.split(SEPARATOR):
        if not part or ("*" in part and part != "*"):
            return False
    return True


class GrantedScopes:
    """An ordered set of granted scopes, parsed once."""

    def __init__(self, scopes: Iterable[str]) -> None:
        """Parse every granted scope."""
        self._scopes = list(scopes)
        self._patterns = tuple(parse_scope(scope) for scope in self._scopes)

    @property
    def scopes(self) -> list[str]:
        """Wire form of the granted scopes, in grant order."""
        return list(self._scopes)

    @beartype
    def grants(self, required: str) -> bool:
        """Whether any granted pattern satisfies ``required``."""
        wanted = normalize_scope(required)
        return any(pattern.satisfies(wanted) for pattern in self._patterns)

    @beartype
    def missing(self, required: Iterable[str]) -> list[str]:
        """Every required scope that is not granted, in request order."""
        return [scope for scope in required if not self.grants(scope)]

    def __iter__(self):
        return iter(self._scopes)

    def __len__(self) -> int:
        return len(self._scopes)


@beartype
def grants(scopes: Iterable[str] | GrantedScopes, required: str) -> bool:
    """Decide whether ``scopes`` satisfy ``required``.

    Total and side-effect free for any inputs.

    Examples:
        >>> grants(["a:b:*"], "a:b:c")
        True
        >>> grants(["a:b:*"], "a:x:c")
        False
    """
    granted = scopes if isinstance(scopes, GrantedScopes) else GrantedScopes(scopes)
    return granted.grants(required)


__all__ = [
    "WILDCARD",
    "ScopePattern",
    "GrantedScopes",
    "grants",
    "parse_scope",
    "normalize_scope",
    "is_well_formed",
]
