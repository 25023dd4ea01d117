"""
Secret store core — indexing, name resolution and patch compilation.

Public API:
    build_index(root, ...)     → SecretIndex of encrypted files under root
    resolve(name, index)       → Resolution (exact / short_name / collision / not_found)
    require_entry(name, index) → SecretEntry, or SecretNotFoundError / SecretCollisionError
    compile_patch(value)       → ordered list of PathOperation for sops set/unset
    is_encrypted_file(path)    → True if the file carries sops metadata

The read/write flows that tie these to the sops binary live in
sopsvault.store.service.
"""

from __future__ import annotations

from sopsvault.store.classifier import is_encrypted, is_encrypted_file
from sopsvault.store.index import build_index
from sopsvault.store.models import SecretEntry, SecretIndex
from sopsvault.store.patch import (
    REMOVE,
    PathOperation,
    apply_operations,
    build_document,
    compile_patch,
)
from sopsvault.store.resolver import MatchKind, Resolution, require_entry, resolve

__all__ = [
    "REMOVE",
    "MatchKind",
    "PathOperation",
    "Resolution",
    "SecretEntry",
    "SecretIndex",
    "apply_operations",
    "build_document",
    "build_index",
    "compile_patch",
    "is_encrypted",
    "is_encrypted_file",
    "require_entry",
    "resolve",
]
