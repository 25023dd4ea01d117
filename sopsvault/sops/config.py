"""Reader for the vault's own sops configuration file (.sops.yaml).

Only the parts the store needs are modelled; key groups, KMS settings and
anything else sops understands pass through as extra fields.

A missing or broken .sops.yaml is never an error here: read_store_config()
returns None and the index builder then applies no suffix exclusions. sops
itself will complain loudly enough when it actually needs the file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

STORE_CONFIG_FILENAME = ".sops.yaml"


class CreationRule(BaseModel):
    """One entry of ``creation_rules``."""

    model_config = ConfigDict(extra="allow")

    path_regex: str | None = None
    unencrypted_suffix: str | None = None
    encrypted_suffix: str | None = None
    unencrypted_regex: str | None = None
    encrypted_regex: str | None = None


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    creation_rules: list[CreationRule] = []

    @property
    def unencrypted_suffixes(self) -> tuple[str, ...]:
        """Distinct ``unencrypted_suffix`` values, in rule order."""
        seen: dict[str, None] = {}
        for rule in self.creation_rules:
            if rule.unencrypted_suffix:
                seen.setdefault(rule.unencrypted_suffix, None)
        return tuple(seen)


def store_config_path(root: Path | str) -> Path:
    return Path(root) / STORE_CONFIG_FILENAME


def read_store_config(root: Path | str) -> StoreConfig | None:
    """Load ``<root>/.sops.yaml``. Returns None if missing or unusable."""
    path = store_config_path(root)
    if not path.is_file():
        logger.debug("No store config at %s", path)
        return None

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable store config %s: %s", path, e)
        return None

    if data is None:
        return StoreConfig()
    if not isinstance(data, dict):
        logger.warning("Ignoring store config %s: top level is not a mapping", path)
        return None

    try:
        return StoreConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Ignoring invalid store config %s: %s", path, e)
        return None
