"""
Centralized configuration for sopsvault.

All configuration is loaded from environment variables with sensible defaults.
Vault definitions themselves live in the registry file (see sopsvault.vaults);
this module only locates it and the external binaries.

Usage:
    from sopsvault.config import get_config
    cfg = get_config()
    print(cfg.registry_path)   # ~/.config/sopsvault/vaults.yaml
    print(cfg.sops.binary)     # "sops" or $SOPSVAULT_SOPS_BIN
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_home() -> Path:
    return Path.home() / ".config" / "sopsvault"


@dataclass(frozen=True)
class SopsConfig:
    """sops binary invocation parameters."""

    binary: str = "sops"
    timeout: int = 30  # seconds per subprocess call


@dataclass(frozen=True)
class KubectlConfig:
    """kubectl binary invocation parameters."""

    binary: str = "kubectl"
    timeout: int = 30


@dataclass(frozen=True)
class Config:
    """Top-level sopsvault configuration."""

    home: Path = field(default_factory=_default_home)
    registry_path: Path = field(default_factory=lambda: _default_home() / "vaults.yaml")

    # Vault to use instead of the registry default (empty = registry default)
    vault: str = ""

    log_level: str = "WARNING"

    sops: SopsConfig = field(default_factory=SopsConfig)
    kubectl: KubectlConfig = field(default_factory=KubectlConfig)


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    home = Path(os.environ.get("SOPSVAULT_HOME", _default_home()))
    registry_path = Path(os.environ.get("SOPSVAULT_REGISTRY", home / "vaults.yaml"))

    sops_cfg = SopsConfig(
        binary=os.environ.get("SOPSVAULT_SOPS_BIN", "sops"),
        timeout=int(os.environ.get("SOPSVAULT_SOPS_TIMEOUT", "30")),
    )

    kubectl_cfg = KubectlConfig(
        binary=os.environ.get("SOPSVAULT_KUBECTL_BIN", "kubectl"),
        timeout=int(os.environ.get("SOPSVAULT_KUBECTL_TIMEOUT", "30")),
    )

    return Config(
        home=home,
        registry_path=registry_path,
        vault=os.environ.get("SOPSVAULT_VAULT", ""),
        log_level=os.environ.get("SOPSVAULT_LOG_LEVEL", "WARNING").upper(),
        sops=sops_cfg,
        kubectl=kubectl_cfg,
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
