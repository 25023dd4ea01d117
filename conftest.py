"""
Root-level shared test fixtures.

Vault trees are built under tmp_path. "Encrypted" files only need to look
encrypted to the classifier (a top-level sops: block with a version field);
nothing in the test suite runs the real sops binary.
"""

from __future__ import annotations

from pathlib import Path

import pytest

SOPS_TRAILER = """\
sops:
    age:
        - recipient: age1ql3z7hjy54pw3hyww5ayyfg7zqgvc7w3j2elw8zmrj2kg5sfn9aqmcac8p
          enc: |
            -----BEGIN AGE ENCRYPTED FILE-----
            YWdlLWVuY3J5cHRpb24ub3JnL3YxCi0+IFgyNTUxOSBzb21lIGZha2Uga2V5
            -----END AGE ENCRYPTED FILE-----
    lastmodified: "2024-05-01T10:00:00Z"
    mac: ENC[AES256_GCM,data:Zm9vYmFy,iv:aXY=,tag:dGFn,type:str]
    unencrypted_suffix: _unencrypted
    version: 3.8.1
"""

ENCRYPTED_BODY = "password: ENC[AES256_GCM,data:cGFzcw==,iv:aXY=,tag:dGFn,type:str]\n"


@pytest.fixture
def clean_env(monkeypatch):
    """Remove sopsvault env vars that leak between tests."""
    for key in [
        "SOPSVAULT_HOME",
        "SOPSVAULT_REGISTRY",
        "SOPSVAULT_VAULT",
        "SOPSVAULT_SOPS_BIN",
        "SOPSVAULT_SOPS_TIMEOUT",
        "SOPSVAULT_KUBECTL_BIN",
        "SOPSVAULT_KUBECTL_TIMEOUT",
        "SOPSVAULT_LOG_LEVEL",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def vault_root(tmp_path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def write_secret(vault_root):
    """Write a file under the vault root; encrypted-looking unless told otherwise."""

    def _write(rel: str, body: str = ENCRYPTED_BODY, encrypted: bool = True) -> Path:
        path = vault_root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body + (SOPS_TRAILER if encrypted else ""))
        return path

    return _write
