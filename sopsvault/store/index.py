"""
Index builder — walks a vault directory and turns files into SecretEntry
snapshots.

Usage:
    from sopsvault.sops.config import read_store_config
    from sopsvault.store.index import build_index

    index = build_index(root, "*.yaml", store_config=read_store_config(root))
    for entry in index:
        print(entry.name, entry.file_path)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from sopsvault.errors import StoreNotADirectoryError, VaultIOError
from sopsvault.sops.config import STORE_CONFIG_FILENAME, StoreConfig
from sopsvault.store.classifier import is_encrypted_file
from sopsvault.store.models import SecretEntry, SecretIndex

logger = logging.getLogger(__name__)

DEFAULT_FILE_PATTERN = "*.yaml"

_GLOB_CHARS = frozenset("*?[]")


def pattern_extension(file_pattern: str) -> str:
    """Literal extension a pattern implies ("*.yaml" → ".yaml"), or ""."""
    if not file_pattern.startswith("*"):
        return ""
    tail = file_pattern[1:]
    if tail.startswith(".") and not (_GLOB_CHARS & set(tail)):
        return tail
    return ""


def strip_extension(filename: str, extension: str = "") -> str:
    """Remove the recognized extension, falling back to the last suffix."""
    if extension and filename.endswith(extension) and len(filename) > len(extension):
        return filename[: -len(extension)]
    stem, dot, _ = filename.rpartition(".")
    return stem if dot and stem else filename


def _enumerate(root: Path, file_pattern: str, recurse: bool) -> Iterator[Path]:
    paths = root.rglob(file_pattern) if recurse else root.glob(file_pattern)
    try:
        for path in paths:
            if path.name == STORE_CONFIG_FILENAME or not path.is_file():
                continue
            yield path
    except OSError as e:
        raise VaultIOError(e.filename or root, e.strerror or str(e)) from e


def entry_for_path(root: Path, path: Path, extension: str = "") -> SecretEntry:
    """Derive name, namespace and short name from a path under root."""
    rel = path.relative_to(root)
    name = "/".join([*rel.parts[:-1], strip_extension(rel.name, extension)])
    return SecretEntry.from_name(name, path.absolute())


def build_index(
    root: Path | str,
    file_pattern: str = DEFAULT_FILE_PATTERN,
    recurse: bool = True,
    require_encryption: bool = True,
    store_config: StoreConfig | None = None,
) -> SecretIndex:
    """Build a fresh index of the secrets under ``root``.

    Args:
        root: Vault directory.
        file_pattern: Glob matched against file names.
        recurse: Descend into subdirectories.
        require_encryption: Keep only files carrying sops metadata. Files whose
            stem ends with an unencrypted suffix from ``store_config`` are
            dropped first without being opened.
        store_config: Parsed .sops.yaml, or None for no suffix exclusions.

    Raises:
        StoreNotADirectoryError: root is missing or not readable.
        VaultIOError: a candidate file could not be read while classifying.
    """
    root = Path(root)
    if not root.is_dir() or not os.access(root, os.R_OK | os.X_OK):
        raise StoreNotADirectoryError(root)

    extension = pattern_extension(file_pattern)
    suffixes = store_config.unencrypted_suffixes if store_config else ()

    entries: list[SecretEntry] = []
    skipped = 0
    for path in _enumerate(root, file_pattern, recurse):
        if require_encryption:
            stem = strip_extension(path.name, extension)
            if any(stem.endswith(s) for s in suffixes):
                skipped += 1
                continue
            if not is_encrypted_file(path):
                skipped += 1
                continue
        entries.append(entry_for_path(root, path, extension))

    logger.debug("Indexed %d secrets under %s (%d skipped)", len(entries), root, skipped)
    return SecretIndex(entries)
