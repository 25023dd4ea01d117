"""
Name resolution — map a user-supplied name onto exactly one index entry.

Full names ("apps/foo/db") always win. A bare short name ("db") is accepted as
a convenience only while it is unique in the vault; when it is not, every
candidate is reported so the caller can retry with a full name. There is no
tie-break between colliding entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from sopsvault.errors import SecretCollisionError, SecretNotFoundError
from sopsvault.store.models import SecretEntry, SecretIndex


class MatchKind(StrEnum):
    EXACT = "exact"
    SHORT_NAME = "short_name"
    COLLISION = "collision"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Resolution:
    query: str
    kind: MatchKind
    entries: tuple[SecretEntry, ...] = ()

    @property
    def found(self) -> bool:
        return self.kind in (MatchKind.EXACT, MatchKind.SHORT_NAME)

    @property
    def entry(self) -> SecretEntry | None:
        """The single matched entry, or None for collisions and misses."""
        return self.entries[0] if self.found else None


def resolve(query: str, index: SecretIndex) -> Resolution:
    exact = index.by_name(query)
    if exact is not None:
        return Resolution(query, MatchKind.EXACT, (exact,))

    matches = tuple(e for e in index if e.short_name == query)
    if not matches:
        return Resolution(query, MatchKind.NOT_FOUND)
    if len(matches) == 1:
        return Resolution(query, MatchKind.SHORT_NAME, matches)
    return Resolution(query, MatchKind.COLLISION, matches)


def require_entry(query: str, index: SecretIndex, *, vault: str | None = None) -> SecretEntry:
    """Resolve or raise SecretNotFoundError / SecretCollisionError."""
    resolution = resolve(query, index)
    if resolution.kind == MatchKind.COLLISION:
        raise SecretCollisionError(query, resolution.entries)
    if resolution.entry is None:
        raise SecretNotFoundError(query, vault)
    return resolution.entry
