"""
Error taxonomy for sopsvault.

Every failure the store can report derives from VaultError, so callers (the
CLI in particular) can catch one type and print an actionable message.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sopsvault.store.models import SecretEntry


class VaultError(Exception):
    pass


class SecretNotFoundError(VaultError):
    """A name resolved to zero secrets."""

    def __init__(self, name: str, vault: str | None = None):
        self.name = name
        self.vault = vault
        where = f" in vault '{vault}'" if vault else ""
        super().__init__(
            f"Secret '{name}' does not exist{where}. "
            "Run 'sopsvault list' to see available secrets."
        )


class SecretCollisionError(VaultError):
    """A short name matched more than one secret."""

    def __init__(self, name: str, candidates: Sequence[SecretEntry]):
        self.name = name
        self.candidates = tuple(candidates)
        lines = [f"Secret name '{name}' is ambiguous; {len(self.candidates)} secrets match:"]
        for entry in self.candidates:
            lines.append(f"  - {entry.name}  ({entry.file_path})")
        lines.append("Retry with one of the full names above.")
        super().__init__("\n".join(lines))


class InvalidInputError(VaultError):
    """A value or name could not be turned into store operations."""

    def __init__(self, mode: str, reason: str):
        self.mode = mode
        self.reason = reason
        super().__init__(f"Invalid {mode} input: {reason}")


class VaultIOError(VaultError):
    """A file or directory could not be read."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class StoreNotADirectoryError(VaultIOError):
    def __init__(self, path: Path | str):
        super().__init__(path, "not an accessible directory")


class ExternalToolError(VaultError):
    """An external binary (sops, kubectl) failed or could not be run."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int | None,
        stderr: str = "",
        action: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        self.action = action
        tool = Path(self.command[0]).name if self.command else "?"
        label = f"{tool} {action}".strip()
        if returncode is None:
            msg = f"{label} could not be run"
        else:
            msg = f"{label} exited with status {returncode}"
        if self.stderr:
            msg += f": {self.stderr}"
        super().__init__(msg)


class VaultConfigError(VaultError):
    """The vault registry is missing, malformed or inconsistent."""
