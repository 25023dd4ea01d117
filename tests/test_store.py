"""Tests for sopsvault.store.service — read/write/delete flows (sops mocked)."""

from unittest.mock import MagicMock

import pytest
import yaml

from sopsvault.errors import (
    ExternalToolError,
    InvalidInputError,
    SecretCollisionError,
    SecretNotFoundError,
    VaultIOError,
)
from sopsvault.sops.runner import SopsRunner
from sopsvault.store.patch import REMOVE, PathOperation
from sopsvault.store.service import SecretStore, validate_secret_name
from sopsvault.vaults import VaultConfig


@pytest.fixture
def runner():
    return MagicMock(spec=SopsRunner)


@pytest.fixture
def store(vault_root, runner):
    return SecretStore(VaultConfig(name="test", path=vault_root), runner)


@pytest.fixture
def populated(write_secret):
    write_secret("apps/api/db.yaml")
    write_secret("apps/web/session.yaml")
    write_secret("infra/db.yaml")
    write_secret("root.yaml")
    write_secret("notes.yaml", "todo: rotate keys\n", encrypted=False)


class TestListing:
    def test_list(self, store, populated):
        assert sorted(store.list().names()) == [
            "apps/api/db",
            "apps/web/session",
            "infra/db",
            "root",
        ]

    def test_namespace(self, store, populated):
        assert sorted(store.list(namespace="apps").names()) == ["apps/api/db", "apps/web/session"]

    def test_include_unencrypted(self, store, populated):
        assert "notes" in store.list(include_unencrypted=True).names()

    def test_reflects_directory_changes(self, store, populated, write_secret):
        assert "late" not in store.list().names()
        write_secret("late.yaml")
        assert "late" in store.list().names()


class TestRead:
    def test_by_short_name(self, store, populated, runner, vault_root):
        runner.decrypt.return_value = "password: hunter2\n"
        assert store.read("session") == "password: hunter2\n"
        runner.decrypt.assert_called_once_with(
            vault_root / "apps" / "web" / "session.yaml", extract=None
        )

    def test_with_path(self, store, populated, runner):
        store.read("apps/api/db", path='["password"]')
        assert runner.decrypt.call_args.kwargs["extract"] == '["password"]'

    def test_path_is_normalized(self, store, populated, runner):
        store.read("root", path="['data'][0]")
        assert runner.decrypt.call_args.kwargs["extract"] == '["data"][0]'

    def test_malformed_path_never_reaches_sops(self, store, populated, runner):
        with pytest.raises(InvalidInputError):
            store.read("root", path="data.password")
        runner.decrypt.assert_not_called()

    def test_collision(self, store, populated, runner):
        with pytest.raises(SecretCollisionError) as exc:
            store.read("db")
        assert {e.name for e in exc.value.candidates} == {"apps/api/db", "infra/db"}
        runner.decrypt.assert_not_called()

    def test_not_found(self, store, populated):
        with pytest.raises(SecretNotFoundError, match="vault 'test'"):
            store.read("missing")

    def test_plaintext_is_not_readable(self, store, populated):
        with pytest.raises(SecretNotFoundError):
            store.read("notes")

    def test_read_document(self, store, populated, runner):
        runner.decrypt.return_value = "user: api\nport: 5432\n"
        assert store.read_document("root") == {"user": "api", "port": 5432}

    def test_read_document_keeps_timestamps_as_text(self, store, populated, runner):
        runner.decrypt.return_value = "rotated: 2024-05-01 10:00:00\n"
        assert store.read_document("root") == {"rotated": "2024-05-01 10:00:00"}

    def test_read_document_not_yaml(self, store, populated, runner):
        runner.decrypt.return_value = "key: [unclosed\n"
        with pytest.raises(InvalidInputError):
            store.read_document("root")


class TestUpdate:
    def test_path_syntax(self, store, populated, runner, vault_root):
        result = store.write("apps/api/db", ".password: hunter2")
        assert not result.created
        assert result.entry.name == "apps/api/db"
        runner.apply.assert_called_once_with(
            vault_root / "apps" / "api" / "db.yaml",
            [PathOperation(("password",), "hunter2")],
        )

    def test_structured_with_removal(self, store, populated, runner):
        result = store.write("session", "user: api\nold: null\n")
        ops = runner.apply.call_args.args[1]
        assert [op.path for op in ops] == ['["user"]', '["old"]']
        assert ops[1].value is REMOVE
        assert result.operations == ops

    def test_collision_writes_nothing(self, store, populated, runner):
        with pytest.raises(SecretCollisionError):
            store.write("db", "x")
        runner.apply.assert_not_called()
        runner.encrypt_in_place.assert_not_called()

    def test_invalid_value_writes_nothing(self, store, populated, runner):
        with pytest.raises(InvalidInputError):
            store.write("root", "a: [1,\nb: 2")
        runner.apply.assert_not_called()


class TestCreate:
    def test_create_from_one_line_yaml(self, store, runner, vault_root):
        store.write("token", "user: admin\n")
        assert yaml.safe_load((vault_root / "token.yaml").read_text()) == {"user": "admin"}

    def test_plain_value(self, store, runner, vault_root):
        result = store.write("apps/new/token", "s3cr3t")
        path = vault_root / "apps" / "new" / "token.yaml"
        assert result.created
        assert result.entry.name == "apps/new/token"
        assert result.entry.file_path == path
        assert yaml.safe_load(path.read_text()) == {"value": "s3cr3t"}
        runner.encrypt_in_place.assert_called_once_with(path, vault_root)

    def test_structured_value_keeps_order(self, store, runner, vault_root):
        store.write("db", {"user": "api", "port": 5432, "hosts": ["a", "b"]})
        text = (vault_root / "db.yaml").read_text()
        assert yaml.safe_load(text) == {"user": "api", "port": 5432, "hosts": ["a", "b"]}
        assert text.index("user") < text.index("port")

    def test_removals_only(self, store, runner, vault_root):
        with pytest.raises(InvalidInputError, match="nothing to write"):
            store.write("empty", ".old: null")
        assert not (vault_root / "empty.yaml").exists()

    def test_encryption_failure_removes_plaintext(self, store, runner, vault_root):
        runner.encrypt_in_place.side_effect = ExternalToolError(
            ["sops"], 128, "no matching creation rules", "encrypt"
        )
        with pytest.raises(ExternalToolError):
            store.write("apps/db", "hunter2")
        assert not (vault_root / "apps" / "db.yaml").exists()

    def test_refuses_to_overwrite_plaintext(self, store, populated, runner):
        with pytest.raises(VaultIOError, match="file exists"):
            store.write("notes", "x")
        runner.encrypt_in_place.assert_not_called()

    def test_uses_vault_extension(self, vault_root, runner):
        store = SecretStore(VaultConfig(path=vault_root, file_pattern="*.json"), runner)
        result = store.write("token", "x")
        assert result.entry.file_path == vault_root / "token.json"

    @pytest.mark.parametrize("name", ["/abs", "trailing/", "a//b", "../up", "a/./b", "a\\b"])
    def test_bad_names(self, store, runner, name):
        with pytest.raises(InvalidInputError):
            store.write(name, "x")
        runner.encrypt_in_place.assert_not_called()


class TestDelete:
    def test_delete(self, store, populated, vault_root):
        entry = store.delete("session")
        assert entry.name == "apps/web/session"
        assert not (vault_root / "apps" / "web" / "session.yaml").exists()
        assert "apps/web/session" not in store.list().names()

    def test_delete_collision(self, store, populated, vault_root):
        with pytest.raises(SecretCollisionError):
            store.delete("db")
        assert (vault_root / "infra" / "db.yaml").exists()


def test_validate_secret_name():
    assert validate_secret_name("apps/api/db") == "apps/api/db"
