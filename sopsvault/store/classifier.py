"""
Streaming check for sops metadata.

A sops-encrypted YAML file ends with a top-level ``sops:`` mapping holding,
among other things, the ``version`` of sops that wrote it. Finding the marker
key alone is not enough (a plaintext document may legitimately contain a
``sops`` key), so the scan also needs the indented version field shortly
after it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from sopsvault.errors import VaultIOError

logger = logging.getLogger(__name__)

# Lines to look at after the marker before giving up on the version field
VERSION_LOOKAHEAD = 50

_MARKER_RE = re.compile(r'^(?:sops:|\s*"sops":\s*\{)\s*$')
_VERSION_RE = re.compile(r'^\s+"?version"?:\s*["\']?\d+(?:\.\d+)*["\']?\s*,?\s*$')


def is_encrypted(lines: Iterable[str]) -> bool:
    """Return True if the line stream carries sops metadata."""
    it = iter(lines)
    for line in it:
        if _MARKER_RE.match(line.rstrip("\r\n")):
            break
    else:
        return False

    for scanned, line in enumerate(it, start=1):
        if scanned > VERSION_LOOKAHEAD:
            return False
        if _VERSION_RE.match(line.rstrip("\r\n")):
            return True
    return False


def is_encrypted_file(path: Path | str) -> bool:
    """Classify a file on disk. Unreadable files raise VaultIOError."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            result = is_encrypted(f)
    except OSError as e:
        raise VaultIOError(path, e.strerror or str(e)) from e
    logger.debug("Classified %s as %s", path, "encrypted" if result else "plaintext")
    return result
