"""Check the sops and kubectl binaries the store shells out to."""

from __future__ import annotations

import json
import re
import shutil
import subprocess
from dataclasses import dataclass

from sopsvault.config import Config

# `sops unset` needs 3.9.0; `sops set --value-stdin` needs 3.10.0
SOPS_MIN_VERSION = "3.10.0"

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


@dataclass
class PrereqResult:
    name: str
    found: bool
    version: str
    required_min: str
    hint: str

    @property
    def ok(self) -> bool:
        return self.found


def _version_tuple(version: str) -> tuple[int, int, int] | None:
    m = _VERSION_RE.search(version)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3))


def check_sops(binary: str = "sops") -> PrereqResult:
    """Check that sops >= 3.10.0 is available."""
    path = shutil.which(binary)
    if not path:
        return PrereqResult(
            name="sops",
            found=False,
            version="",
            required_min=SOPS_MIN_VERSION,
            hint="https://github.com/getsops/sops/releases",
        )

    try:
        result = subprocess.run(
            [path, "--version"], capture_output=True, text=True, timeout=5
        )
        found = _version_tuple(result.stdout)
        version = ".".join(str(p) for p in found) if found else result.stdout.strip()
        required = _version_tuple(SOPS_MIN_VERSION)
        ok = found is not None and required is not None and found >= required
        return PrereqResult(
            name="sops",
            found=ok,
            version=version,
            required_min=SOPS_MIN_VERSION,
            hint="" if ok else f"sops {version} found but >= {SOPS_MIN_VERSION} required",
        )
    except (OSError, subprocess.SubprocessError):
        return PrereqResult(
            name="sops",
            found=False,
            version="",
            required_min=SOPS_MIN_VERSION,
            hint="Failed to detect sops version",
        )


def check_kubectl(binary: str = "kubectl") -> PrereqResult:
    """Check that kubectl is available (only needed for `sopsvault kube`)."""
    path = shutil.which(binary)
    if not path:
        return PrereqResult(
            name="kubectl",
            found=False,
            version="",
            required_min="",
            hint="https://kubernetes.io/docs/tasks/tools/",
        )

    try:
        result = subprocess.run(
            [path, "version", "--client", "-o", "json"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        info = json.loads(result.stdout or "{}")
        version = info.get("clientVersion", {}).get("gitVersion", "").lstrip("v")
        return PrereqResult(
            name="kubectl",
            found=True,
            version=version,
            required_min="",
            hint="",
        )
    except (OSError, subprocess.SubprocessError, json.JSONDecodeError):
        return PrereqResult(
            name="kubectl",
            found=False,
            version="",
            required_min="",
            hint="Failed to detect kubectl version",
        )


def check_all(config: Config) -> list[PrereqResult]:
    """Check all external binaries."""
    return [check_sops(config.sops.binary), check_kubectl(config.kubectl.binary)]
