"""
Store data models.

Plain frozen dataclasses, matching the pattern in sopsvault.config. Entries
and indexes are snapshots: they are rebuilt on every request and never cached.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class SecretEntry:
    """One encrypted file known to the store."""

    name: str  # full logical path, e.g. "apps/foo/bar/secret"
    file_path: Path
    namespace: str  # name minus its last segment, "" at the vault root
    short_name: str

    def __post_init__(self) -> None:
        expected = f"{self.namespace}/{self.short_name}" if self.namespace else self.short_name
        if self.name != expected:
            raise ValueError(
                f"Inconsistent entry: name={self.name!r}, "
                f"namespace={self.namespace!r}, short_name={self.short_name!r}"
            )

    @classmethod
    def from_name(cls, name: str, file_path: Path) -> SecretEntry:
        namespace, _, short_name = name.rpartition("/")
        return cls(name=name, file_path=file_path, namespace=namespace, short_name=short_name)


class SecretIndex:
    """Ordered, immutable collection of entries in enumeration order."""

    def __init__(self, entries: Iterable[SecretEntry] = ()):
        self._entries: tuple[SecretEntry, ...] = tuple(entries)

    def __iter__(self) -> Iterator[SecretEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, i: int) -> SecretEntry:
        return self._entries[i]

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __repr__(self) -> str:
        return f"SecretIndex({len(self._entries)} entries)"

    @property
    def entries(self) -> tuple[SecretEntry, ...]:
        return self._entries

    def names(self) -> list[str]:
        return [e.name for e in self._entries]

    def namespaces(self) -> list[str]:
        """Distinct namespaces, in first-seen order."""
        seen: dict[str, None] = {}
        for e in self._entries:
            seen.setdefault(e.namespace, None)
        return list(seen)

    def by_name(self, name: str) -> SecretEntry | None:
        for e in self._entries:
            if e.name == name:
                return e
        return None

    def in_namespace(self, namespace: str) -> SecretIndex:
        """Entries at or below a namespace ("" = whole index)."""
        ns = namespace.strip("/")
        if not ns:
            return self
        return SecretIndex(
            e for e in self._entries if e.namespace == ns or e.namespace.startswith(ns + "/")
        )
