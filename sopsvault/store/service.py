"""
Secret store — the read, write and delete flows over one vault.

Nothing is cached: every call re-reads .sops.yaml and rebuilds the index, so
the store always reflects the directory as it is right now.

Usage:
    from sopsvault.sops.runner import SopsRunner
    from sopsvault.store.service import SecretStore

    store = SecretStore(vault, SopsRunner())
    print(store.read("apps/api/db", path='["password"]'))
    store.write("apps/api/db", ".password: hunter2")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from sopsvault.errors import InvalidInputError, SecretCollisionError, VaultIOError
from sopsvault.sops.config import read_store_config
from sopsvault.sops.runner import SopsRunner
from sopsvault.store.index import build_index
from sopsvault.store.models import SecretEntry, SecretIndex
from sopsvault.store.patch import (
    PathOperation,
    build_document,
    compile_patch,
    format_path,
    load_yaml,
    parse_path,
)
from sopsvault.store.resolver import MatchKind, require_entry, resolve
from sopsvault.vaults import VaultConfig

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    entry: SecretEntry
    created: bool
    operations: list[PathOperation] = field(default_factory=list)


def validate_secret_name(name: str) -> str:
    """Check a name is a clean relative slash path; returns it unchanged."""
    if not name or name.startswith("/") or name.endswith("/"):
        raise InvalidInputError("name", f"'{name}' must be a relative path like 'apps/db'")
    if "\\" in name:
        raise InvalidInputError("name", f"'{name}' must use '/' as the separator")
    for segment in name.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidInputError("name", f"'{name}' contains an empty, '.' or '..' segment")
    return name


class SecretStore:
    """Operations on the secrets of one registered vault."""

    def __init__(self, vault: VaultConfig, runner: SopsRunner):
        self.vault = vault
        self.runner = runner

    @property
    def root(self) -> Path:
        return self.vault.path

    def index(self, include_unencrypted: bool = False) -> SecretIndex:
        return build_index(
            self.root,
            self.vault.file_pattern,
            recurse=self.vault.recurse,
            require_encryption=self.vault.require_encryption and not include_unencrypted,
            store_config=read_store_config(self.root),
        )

    def list(self, namespace: str | None = None, include_unencrypted: bool = False) -> SecretIndex:
        index = self.index(include_unencrypted=include_unencrypted)
        return index.in_namespace(namespace) if namespace else index

    def locate(self, name: str) -> SecretEntry:
        return require_entry(name, self.index(), vault=self.vault.name or None)

    def read(self, name: str, path: str | None = None) -> str:
        """Decrypted file contents, or one field when ``path`` is given."""
        if path is not None:
            path = format_path(parse_path(path))
        entry = self.locate(name)
        return self.runner.decrypt(entry.file_path, extract=path)

    def read_document(self, name: str) -> Any:
        return self.load_document(self.locate(name))

    def load_document(self, entry: SecretEntry) -> Any:
        """Decrypt an already located entry and parse it."""
        text = self.runner.decrypt(entry.file_path)
        try:
            return load_yaml(text)
        except yaml.YAMLError as e:
            raise InvalidInputError(
                "structured text", f"decrypted '{entry.name}' is not YAML/JSON: {e}"
            ) from e

    def write(self, name: str, value: Any) -> WriteResult:
        """Create a secret, or update the fields ``value`` mentions."""
        resolution = resolve(name, self.index())
        if resolution.kind == MatchKind.COLLISION:
            raise SecretCollisionError(name, resolution.entries)

        entry = resolution.entry
        operations = compile_patch(value)

        if entry is not None:
            self.runner.apply(entry.file_path, operations)
            logger.info("Updated %s (%d fields)", entry.name, len(operations))
            return WriteResult(entry=entry, created=False, operations=operations)

        return self._create(validate_secret_name(name), operations)

    def _create(self, name: str, operations: list[PathOperation]) -> WriteResult:
        document = build_document(operations)
        if not document:
            raise InvalidInputError("value", f"nothing to write for new secret '{name}'")

        file_path = (self.root / f"{name}{self.vault.extension}").absolute()
        if file_path.exists():
            # Present on disk but not indexed: unencrypted or filtered out
            raise VaultIOError(file_path, "file exists but is not a secret in this vault")

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, "w") as f:
                yaml.safe_dump(document, f, sort_keys=False, default_flow_style=False)
        except OSError as e:
            raise VaultIOError(file_path, e.strerror or str(e)) from e

        try:
            self.runner.encrypt_in_place(file_path, self.root)
        except Exception:
            file_path.unlink(missing_ok=True)
            logger.warning("Encryption failed; removed plaintext %s", file_path)
            raise

        entry = SecretEntry.from_name(name, file_path)
        logger.info("Created %s", entry.name)
        return WriteResult(entry=entry, created=True, operations=operations)

    def delete(self, name: str) -> SecretEntry:
        entry = self.locate(name)
        try:
            entry.file_path.unlink()
        except OSError as e:
            raise VaultIOError(entry.file_path, e.strerror or str(e)) from e
        logger.info("Deleted %s", entry.name)
        return entry
