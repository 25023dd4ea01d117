"""Render a decrypted secret as a Kubernetes Secret manifest via kubectl.

kubectl does the manifest generation (``create secret generic --dry-run=client
-o yaml``), so the output always matches what the cluster's tooling expects.
Values are handed over as files in a private temporary directory rather than
``--from-literal`` arguments, which would expose them in the process list.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import subprocess
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from sopsvault.errors import ExternalToolError, InvalidInputError
from sopsvault.store.models import SecretEntry

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[-._a-zA-Z0-9]+$")
_DNS_INVALID_RE = re.compile(r"[^a-z0-9-]+")
MAX_NAME_LENGTH = 253


def kube_secret_name(entry: SecretEntry) -> str:
    """DNS-1123 name derived from the full secret name ("apps/db_main" → "apps-db-main")."""
    name = _DNS_INVALID_RE.sub("-", entry.name.lower()).strip("-")
    name = re.sub(r"-{2,}", "-", name)[:MAX_NAME_LENGTH].rstrip("-")
    if not name:
        raise InvalidInputError("name", f"cannot derive a Kubernetes name from '{entry.name}'")
    return name


def _scalar_text(key: str, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise InvalidInputError(
        "value", f"key '{key}' holds a {type(value).__name__}; Secret values must be scalars"
    )


def secret_literals(document: Any) -> dict[str, str]:
    """Flatten a decrypted document into Secret key/value pairs.

    Kubernetes-shaped documents use ``data`` (base64, decoded here) overlaid with
    ``stringData``; anything else contributes its top-level keys.
    """
    if not isinstance(document, Mapping):
        raise InvalidInputError("value", "secret document is not a mapping")

    literals: dict[str, str] = {}
    if "data" in document or "stringData" in document:
        data = document.get("data") or {}
        string_data = document.get("stringData") or {}
        if not isinstance(data, Mapping) or not isinstance(string_data, Mapping):
            raise InvalidInputError("value", "'data' and 'stringData' must be mappings")
        for key, value in data.items():
            try:
                literals[str(key)] = base64.b64decode(str(value), validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise InvalidInputError("value", f"data.{key} is not base64 text: {e}") from e
        for key, value in string_data.items():
            literals[str(key)] = _scalar_text(str(key), value)
    else:
        for key, value in document.items():
            if key == "sops":
                continue
            if value is None:
                continue
            literals[str(key)] = _scalar_text(str(key), value)

    for key in literals:
        if not _KEY_RE.match(key):
            raise InvalidInputError("value", f"'{key}' is not a valid Secret key")
    return literals


class KubectlRunner:
    """Generate manifests with kubectl."""

    def __init__(self, binary: str = "kubectl", timeout: int = 30):
        self.binary = binary
        self.timeout = timeout

    def secret_manifest(
        self,
        name: str,
        literals: Mapping[str, str],
        namespace: str | None = None,
    ) -> str:
        """Return the YAML for a generic Secret holding ``literals``."""
        with tempfile.TemporaryDirectory(prefix="sopsvault-") as tmp:
            tmp_dir = Path(tmp)
            tmp_dir.chmod(0o700)
            cmd = [self.binary, "create", "secret", "generic", name]
            cmd += ["--dry-run=client", "-o", "yaml"]
            if namespace:
                cmd += ["--namespace", namespace]
            for i, (key, value) in enumerate(literals.items()):
                value_file = tmp_dir / f"v{i}"
                value_file.write_text(value)
                cmd.append(f"--from-file={key}={value_file}")

            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except FileNotFoundError as e:
                raise ExternalToolError(
                    cmd, None, f"{self.binary} not found on PATH", "create secret"
                ) from e
            except subprocess.TimeoutExpired as e:
                raise ExternalToolError(
                    cmd, None, f"timed out after {self.timeout}s", "create secret"
                ) from e

        if proc.returncode != 0:
            raise ExternalToolError(cmd, proc.returncode, proc.stderr, "create secret")
        logger.debug("Generated Secret manifest %s with %d keys", name, len(literals))
        return proc.stdout
