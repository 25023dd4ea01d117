"""Integration with the sops binary and its .sops.yaml configuration."""

from __future__ import annotations

from sopsvault.sops.config import STORE_CONFIG_FILENAME, StoreConfig, read_store_config
from sopsvault.sops.runner import SopsRunner

__all__ = ["STORE_CONFIG_FILENAME", "SopsRunner", "StoreConfig", "read_store_config"]
