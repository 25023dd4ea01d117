"""
Vault registry — named vault directories and the default one.

Stored as YAML at $SOPSVAULT_REGISTRY (default ~/.config/sopsvault/vaults.yaml):

    default: personal
    vaults:
      personal:
        path: /home/me/secrets
        file_pattern: "*.yaml"
        recurse: true
        require_encryption: true

Usage:
    from sopsvault.vaults import load_registry

    registry = load_registry(path)
    vault = registry.get()          # default vault
    vault = registry.get("work")    # by name
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from sopsvault.errors import VaultConfigError
from sopsvault.store.index import DEFAULT_FILE_PATTERN, pattern_extension

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".yaml"

_VAULT_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class VaultConfig(BaseModel):
    """One registered vault (the name is the registry key)."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    path: Path
    file_pattern: str = DEFAULT_FILE_PATTERN
    recurse: bool = True
    require_encryption: bool = True

    @field_validator("path")
    @classmethod
    def _expand(cls, v: Path) -> Path:
        return Path(os.path.expanduser(str(v)))

    @property
    def extension(self) -> str:
        """Extension for newly created secret files."""
        return pattern_extension(self.file_pattern) or DEFAULT_EXTENSION


class VaultRegistry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default: str | None = None
    vaults: dict[str, VaultConfig] = {}

    def model_post_init(self, __context: object) -> None:
        # Fill in names from the mapping keys
        for name, vault in list(self.vaults.items()):
            if vault.name != name:
                self.vaults[name] = vault.model_copy(update={"name": name})

    def names(self) -> list[str]:
        return list(self.vaults)

    def get(self, name: str | None = None) -> VaultConfig:
        """Look up a vault by name, or the default vault."""
        if not name:
            if not self.default:
                if not self.vaults:
                    raise VaultConfigError(
                        "No vaults registered. Run 'sopsvault vault add NAME PATH' first."
                    )
                raise VaultConfigError(
                    "No default vault set. Use --vault or 'sopsvault vault default NAME'."
                )
            name = self.default
        vault = self.vaults.get(name)
        if vault is None:
            known = ", ".join(self.vaults) or "none"
            raise VaultConfigError(f"Unknown vault '{name}' (registered: {known})")
        return vault

    def add(
        self,
        name: str,
        path: Path | str,
        *,
        file_pattern: str = DEFAULT_FILE_PATTERN,
        recurse: bool = True,
        require_encryption: bool = True,
    ) -> VaultConfig:
        if not _VAULT_NAME_RE.match(name):
            raise VaultConfigError(f"Invalid vault name '{name}'")
        if name in self.vaults:
            raise VaultConfigError(f"Vault '{name}' is already registered")
        vault = VaultConfig(
            name=name,
            path=Path(os.path.expanduser(str(path))).absolute(),
            file_pattern=file_pattern,
            recurse=recurse,
            require_encryption=require_encryption,
        )
        self.vaults[name] = vault
        if not self.default:
            self.default = name
        return vault

    def remove(self, name: str) -> VaultConfig:
        vault = self.vaults.pop(name, None)
        if vault is None:
            raise VaultConfigError(f"Unknown vault '{name}'")
        if self.default == name:
            self.default = next(iter(self.vaults)) if len(self.vaults) == 1 else None
        return vault

    def set_default(self, name: str) -> None:
        if name not in self.vaults:
            raise VaultConfigError(f"Unknown vault '{name}'")
        self.default = name


def load_registry(path: Path) -> VaultRegistry:
    """Load the registry. A missing file is an empty registry."""
    if not path.exists():
        logger.debug("No vault registry at %s", path)
        return VaultRegistry()

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise VaultConfigError(f"Cannot read vault registry {path}: {e}") from e

    if data is None:
        return VaultRegistry()
    if not isinstance(data, dict):
        raise VaultConfigError(f"Vault registry {path} must be a mapping")

    try:
        registry = VaultRegistry.model_validate(data)
    except ValidationError as e:
        raise VaultConfigError(f"Invalid vault registry {path}: {e}") from e

    if registry.default and registry.default not in registry.vaults:
        raise VaultConfigError(
            f"Vault registry {path}: default vault '{registry.default}' is not registered"
        )
    return registry


def save_registry(registry: VaultRegistry, path: Path) -> None:
    """Write the registry as YAML."""
    data = {
        "default": registry.default,
        "vaults": {
            name: {
                "path": str(v.path),
                "file_pattern": v.file_pattern,
                "recurse": v.recurse,
                "require_encryption": v.require_encryption,
            }
            for name, v in registry.vaults.items()
        },
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False, default_flow_style=False)
    logger.info("Saved vault registry (%d vaults) to %s", len(registry.vaults), path)
