"""
sopsvault CLI — entry point for all operations.

Usage:
    sopsvault vault add NAME PATH    # Register a vault directory
    sopsvault list                   # List secrets in the default vault
    sopsvault get NAME               # Decrypt a secret
    sopsvault set NAME VALUE         # Create a secret or update its fields
    sopsvault rm NAME                # Delete a secret
    sopsvault kube NAME              # Print a Kubernetes Secret manifest
    sopsvault status                 # Show configuration and prerequisites
    sopsvault version                # Show version
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from sopsvault.errors import VaultConfigError, VaultError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sopsvault",
        description="sopsvault — a hierarchical secret store on top of sops-encrypted files.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--vault", help="Vault to use (default: registry default)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # vault
    vault_parser = subparsers.add_parser("vault", help="Manage registered vaults")
    vault_sub = vault_parser.add_subparsers(dest="vault_command")
    vault_add = vault_sub.add_parser("add", help="Register a vault directory")
    vault_add.add_argument("name", help="Vault name")
    vault_add.add_argument("path", help="Directory holding the encrypted files")
    vault_add.add_argument("--pattern", default="*.yaml", help="File glob (default: *.yaml)")
    vault_add.add_argument("--no-recurse", action="store_true", help="Ignore subdirectories")
    vault_add.add_argument(
        "--allow-unencrypted",
        action="store_true",
        help="Index files even when they carry no sops metadata",
    )
    vault_add.add_argument("--default", action="store_true", help="Make this the default vault")
    vault_sub.add_parser("list", help="List registered vaults")
    vault_remove = vault_sub.add_parser("remove", help="Unregister a vault (files are kept)")
    vault_remove.add_argument("name")
    vault_default = vault_sub.add_parser("default", help="Set the default vault")
    vault_default.add_argument("name")

    # list
    list_parser = subparsers.add_parser("list", help="List secrets")
    list_parser.add_argument("--namespace", "-n", help="Only secrets under this namespace")
    list_parser.add_argument(
        "--all", action="store_true", help="Include files without sops metadata"
    )
    list_parser.add_argument("--long", "-l", action="store_true", help="Show file paths")

    # get
    get_parser = subparsers.add_parser("get", help="Decrypt a secret")
    get_parser.add_argument("name", help="Full name (apps/api/db) or unique short name (db)")
    get_parser.add_argument("--path", help='Only this field, e.g. \'["password"]\'')

    # set
    set_parser = subparsers.add_parser("set", help="Create a secret or update its fields")
    set_parser.add_argument("name")
    set_parser.add_argument(
        "value",
        nargs="?",
        default="-",
        help="'.field: value', YAML text or a plain value ('-' reads stdin)",
    )
    set_parser.add_argument("--from-file", type=Path, help="Read the value from a file")

    # rm
    rm_parser = subparsers.add_parser("rm", help="Delete a secret file")
    rm_parser.add_argument("name")
    rm_parser.add_argument("--yes", "-y", action="store_true", help="Don't ask for confirmation")

    # kube
    kube_parser = subparsers.add_parser("kube", help="Print a Kubernetes Secret manifest")
    kube_parser.add_argument("name")
    kube_parser.add_argument("--secret-name", help="metadata.name (default: derived from NAME)")
    kube_parser.add_argument("--namespace", help="metadata.namespace")

    # status
    subparsers.add_parser("status", help="Show configuration and prerequisites")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.version or args.command == "version":
        from sopsvault import __version__

        print(f"sopsvault {__version__}")
        return 0

    try:
        if args.command == "vault":
            return _cmd_vault(args)
        elif args.command == "list":
            return _cmd_list(args)
        elif args.command == "get":
            return _cmd_get(args)
        elif args.command == "set":
            return _cmd_set(args)
        elif args.command == "rm":
            return _cmd_rm(args)
        elif args.command == "kube":
            return _cmd_kube(args)
        elif args.command == "status":
            return _cmd_status(args)
        else:
            parser.print_help()
            return 0
    except VaultError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _setup_logging(verbose: bool) -> None:
    from sopsvault.config import get_config

    level = "DEBUG" if verbose else get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _open_store(args: argparse.Namespace):
    from sopsvault.config import get_config
    from sopsvault.sops.runner import SopsRunner
    from sopsvault.store.service import SecretStore
    from sopsvault.vaults import load_registry

    cfg = get_config()
    registry = load_registry(cfg.registry_path)
    vault = registry.get(args.vault or cfg.vault or None)
    runner = SopsRunner(binary=cfg.sops.binary, timeout=cfg.sops.timeout)
    return SecretStore(vault, runner)


def _cmd_vault(args: argparse.Namespace) -> int:
    from sopsvault.config import get_config
    from sopsvault.vaults import load_registry, save_registry

    cfg = get_config()
    registry = load_registry(cfg.registry_path)
    sub = getattr(args, "vault_command", None)

    if sub == "add":
        path = Path(args.path).expanduser()
        if not path.is_dir():
            raise VaultConfigError(f"{path} is not a directory")
        vault = registry.add(
            args.name,
            path,
            file_pattern=args.pattern,
            recurse=not args.no_recurse,
            require_encryption=not args.allow_unencrypted,
        )
        if args.default:
            registry.set_default(args.name)
        save_registry(registry, cfg.registry_path)
        print(f"Registered vault '{vault.name}' at {vault.path}")
        return 0

    elif sub == "list":
        if not registry.vaults:
            print("No vaults registered. Run 'sopsvault vault add NAME PATH'.")
            return 0
        for name, vault in registry.vaults.items():
            mark = "*" if name == registry.default else " "
            print(f"{mark} {name:<16} {vault.path}  ({vault.file_pattern})")
        return 0

    elif sub == "remove":
        vault = registry.remove(args.name)
        save_registry(registry, cfg.registry_path)
        print(f"Unregistered vault '{vault.name}' ({vault.path} left untouched)")
        return 0

    elif sub == "default":
        registry.set_default(args.name)
        save_registry(registry, cfg.registry_path)
        print(f"Default vault is now '{args.name}'")
        return 0

    else:
        print("Usage: sopsvault vault {add|list|remove|default}")
        return 0


def _cmd_list(args: argparse.Namespace) -> int:
    store = _open_store(args)
    index = store.list(namespace=args.namespace, include_unencrypted=args.all)
    for entry in index:
        if args.long:
            print(f"{entry.name}\t{entry.file_path}")
        else:
            print(entry.name)
    return 0


def _cmd_get(args: argparse.Namespace) -> int:
    store = _open_store(args)
    text = store.read(args.name, path=args.path)
    sys.stdout.write(text if text.endswith("\n") else text + "\n")
    return 0


def _read_value(args: argparse.Namespace) -> str:
    if args.from_file is not None:
        from sopsvault.errors import VaultIOError

        try:
            return args.from_file.read_text()
        except OSError as e:
            raise VaultIOError(args.from_file, e.strerror or str(e)) from e
    if args.value == "-":
        text = sys.stdin.read()
        return text[:-1] if text.endswith("\n") else text
    return args.value


def _cmd_set(args: argparse.Namespace) -> int:
    store = _open_store(args)
    result = store.write(args.name, _read_value(args))
    if result.created:
        print(f"Created {result.entry.name} ({result.entry.file_path})")
    else:
        print(f"Updated {result.entry.name}: {len(result.operations)} field(s)")
        for op in result.operations:
            print(f"  {op}")
    return 0


def _cmd_rm(args: argparse.Namespace) -> int:
    store = _open_store(args)
    entry = store.locate(args.name)
    if not args.yes:
        answer = input(f"Delete {entry.name} ({entry.file_path})? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    store.delete(entry.name)
    print(f"Deleted {entry.name}")
    return 0


def _cmd_kube(args: argparse.Namespace) -> int:
    from sopsvault.config import get_config
    from sopsvault.kube import KubectlRunner, kube_secret_name, secret_literals

    cfg = get_config()
    store = _open_store(args)
    entry = store.locate(args.name)
    literals = secret_literals(store.load_document(entry))
    kubectl = KubectlRunner(binary=cfg.kubectl.binary, timeout=cfg.kubectl.timeout)
    manifest = kubectl.secret_manifest(
        args.secret_name or kube_secret_name(entry),
        literals,
        namespace=args.namespace,
    )
    sys.stdout.write(manifest)
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    from sopsvault import __version__
    from sopsvault.config import get_config
    from sopsvault.sops.prerequisites import check_all
    from sopsvault.vaults import load_registry

    cfg = get_config()
    print(f"sopsvault v{__version__}")
    print()

    for p in check_all(cfg):
        mark = "+" if p.ok else "x"
        detail = p.version if p.ok else p.hint
        print(f"  {mark} {p.name}: {detail}")
    print()

    print(f"  Registry:    {cfg.registry_path}")
    try:
        registry = load_registry(cfg.registry_path)
    except VaultConfigError as e:
        print(f"               INVALID — {e}")
        return 1
    if not registry.vaults:
        print("               no vaults registered")
    for name, vault in registry.vaults.items():
        mark = " (default)" if name == registry.default else ""
        state = "ok" if vault.path.is_dir() else "MISSING"
        print(f"  Vault:       {name}{mark} — {vault.path} [{state}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
