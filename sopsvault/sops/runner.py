"""sops subprocess wrapper — decrypt, encrypt, set, unset.

Every call is one blocking ``subprocess.run``. Field updates are issued one
operation at a time, in order, so a failure leaves every earlier field applied
and every later one untouched; each call can be retried on its own.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from sopsvault.errors import ExternalToolError
from sopsvault.sops.config import store_config_path
from sopsvault.store.patch import PathOperation

logger = logging.getLogger(__name__)


class SopsRunner:
    """Run the sops binary against files in a vault."""

    def __init__(
        self,
        binary: str = "sops",
        timeout: int = 30,
        env: Mapping[str, str] | None = None,
    ):
        self.binary = binary
        self.timeout = timeout
        self.env = dict(env) if env is not None else None

    def _run(
        self,
        args: Sequence[str],
        action: str,
        cwd: Path | None = None,
        input: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        cmd = [self.binary, *args]
        env = None
        if self.env is not None:
            env = os.environ.copy()
            env.update(self.env)
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=str(cwd) if cwd else None,
                env=env,
                input=input,
            )
        except FileNotFoundError as e:
            hint = f"{self.binary} not found on PATH (https://github.com/getsops/sops)"
            raise ExternalToolError(cmd, None, hint, action) from e
        except subprocess.TimeoutExpired as e:
            raise ExternalToolError(cmd, None, f"timed out after {self.timeout}s", action) from e

        if proc.returncode != 0:
            raise ExternalToolError(cmd, proc.returncode, proc.stderr, action)
        return proc

    def version(self) -> str:
        """Installed sops version, e.g. "3.9.1"."""
        out = self._run(["--version"], "version").stdout.strip()
        # "sops 3.9.1 (latest)" / "sops 3.7.3"
        for token in out.split():
            if token[:1].isdigit():
                return token
        return out

    def decrypt(self, path: Path, extract: str | None = None) -> str:
        """Decrypt a file to stdout; optionally only one bracket path."""
        args = ["--decrypt"]
        if extract:
            args += ["--extract", extract]
        args.append(str(path))
        logger.debug("Decrypting %s%s", path, f" {extract}" if extract else "")
        return self._run(args, "decrypt").stdout

    def encrypt_in_place(self, path: Path, config_root: Path) -> None:
        """Encrypt a plaintext file where it lies.

        sops matches creation rules against the path it is given, so the call
        runs from ``config_root`` with the path relative to it.
        """
        path = Path(path).absolute()
        config_root = Path(config_root).absolute()
        try:
            target = str(path.relative_to(config_root))
        except ValueError:
            target = str(path)

        args: list[str] = []
        config = store_config_path(config_root)
        if config.is_file():
            args += ["--config", str(config)]
        args += ["--encrypt", "--in-place", target]
        logger.debug("Encrypting %s (root %s)", target, config_root)
        self._run(args, "encrypt", cwd=config_root)

    def set(self, path: Path, operation: PathOperation) -> None:
        """Set one field. The value is written to stdin, never to argv."""
        if operation.is_remove:
            raise ValueError(f"{operation.path} is a removal; use unset()")
        logger.debug("sops set %s %s", path, operation.path)
        self._run(
            ["set", "--value-stdin", str(path), operation.path],
            "set",
            input=operation.rendered or '""',
        )

    def unset(self, path: Path, operation: PathOperation) -> None:
        logger.debug("sops unset %s %s", path, operation.path)
        self._run(["unset", str(path), operation.path], "unset")

    def apply(self, path: Path, operations: Sequence[PathOperation]) -> int:
        """Apply operations in order. Returns the number applied."""
        for applied, op in enumerate(operations):
            try:
                if op.is_remove:
                    self.unset(path, op)
                else:
                    self.set(path, op)
            except ExternalToolError:
                logger.warning(
                    "Stopped after %d/%d operations on %s (failed: %s)",
                    applied,
                    len(operations),
                    path,
                    op,
                )
                raise
        return len(operations)
