"""Tests for sopsvault.store.index — building the secret index."""

import os

import pytest

from sopsvault.errors import StoreNotADirectoryError
from sopsvault.sops.config import StoreConfig
from sopsvault.store.index import (
    build_index,
    entry_for_path,
    pattern_extension,
    strip_extension,
)


class TestHelpers:
    def test_pattern_extension(self):
        assert pattern_extension("*.yaml") == ".yaml"
        assert pattern_extension("*.enc.json") == ".enc.json"
        assert pattern_extension("*") == ""
        assert pattern_extension("secret-*.yaml") == ""
        assert pattern_extension("*.y?ml") == ""

    def test_strip_extension(self):
        assert strip_extension("db.yaml", ".yaml") == "db"
        assert strip_extension("db.enc.yaml", ".enc.yaml") == "db"
        assert strip_extension("db.enc.yaml") == "db.enc"
        assert strip_extension("README") == "README"
        assert strip_extension(".yaml", ".yaml") == ".yaml"

    def test_entry_for_path(self, vault_root):
        entry = entry_for_path(vault_root, vault_root / "apps" / "foo" / "db.yaml", ".yaml")
        assert entry.name == "apps/foo/db"
        assert entry.namespace == "apps/foo"
        assert entry.short_name == "db"
        assert entry.file_path.is_absolute()


class TestBuildIndex:
    def test_namespaces(self, vault_root, write_secret):
        write_secret("a/b.yaml")
        write_secret("c.yaml")

        index = build_index(vault_root, "*.yaml", recurse=True)
        by_name = {e.name: e for e in index}

        assert set(by_name) == {"a/b", "c"}
        assert (by_name["a/b"].namespace, by_name["a/b"].short_name) == ("a", "b")
        assert (by_name["c"].namespace, by_name["c"].short_name) == ("", "c")
        assert by_name["a/b"].file_path == (vault_root / "a" / "b.yaml").absolute()

    def test_no_recurse(self, vault_root, write_secret):
        write_secret("a/b.yaml")
        write_secret("c.yaml")
        index = build_index(vault_root, "*.yaml", recurse=False)
        assert index.names() == ["c"]

    def test_pattern_filters(self, vault_root, write_secret):
        write_secret("db.yaml")
        write_secret("db.json")
        write_secret("notes.txt")
        index = build_index(vault_root, "*.json")
        assert index.names() == ["db"]
        assert index[0].file_path.name == "db.json"

    def test_excludes_store_config(self, vault_root, write_secret):
        write_secret("db.yaml")
        write_secret(".sops.yaml")  # even if it looked encrypted
        index = build_index(vault_root, "*.yaml", require_encryption=False)
        assert index.names() == ["db"]

    def test_skips_plaintext_when_required(self, vault_root, write_secret):
        write_secret("db.yaml")
        write_secret("plain.yaml", "user: admin\n", encrypted=False)
        assert build_index(vault_root).names() == ["db"]
        assert set(build_index(vault_root, require_encryption=False).names()) == {"db", "plain"}

    def test_unencrypted_suffix_excluded_without_opening(self, vault_root, write_secret):
        write_secret("db.yaml")
        skipped = write_secret("settings_unencrypted.yaml")
        os.chmod(skipped, 0)  # would fail classification if it were opened
        try:
            config = StoreConfig.model_validate(
                {"creation_rules": [{"path_regex": ".*", "unencrypted_suffix": "_unencrypted"}]}
            )
            index = build_index(vault_root, store_config=config)
        finally:
            os.chmod(skipped, 0o600)
        assert index.names() == ["db"]

    def test_suffixes_ignored_without_encryption_filter(self, vault_root, write_secret):
        write_secret("settings_unencrypted.yaml", "a: 1\n", encrypted=False)
        config = StoreConfig.model_validate(
            {"creation_rules": [{"unencrypted_suffix": "_unencrypted"}]}
        )
        index = build_index(vault_root, require_encryption=False, store_config=config)
        assert index.names() == ["settings_unencrypted"]

    def test_no_config_means_no_suffix_exclusions(self, vault_root, write_secret):
        write_secret("settings_unencrypted.yaml")
        assert build_index(vault_root, store_config=None).names() == ["settings_unencrypted"]

    def test_directories_matching_pattern_are_skipped(self, vault_root, write_secret):
        (vault_root / "odd.yaml").mkdir()
        write_secret("odd.yaml/inner.yaml")
        assert build_index(vault_root).names() == ["odd.yaml/inner"]

    def test_empty_vault(self, vault_root):
        index = build_index(vault_root)
        assert len(index) == 0
        assert not index

    def test_missing_root(self, tmp_path):
        with pytest.raises(StoreNotADirectoryError):
            build_index(tmp_path / "nope")

    def test_root_is_a_file(self, tmp_path):
        f = tmp_path / "file.yaml"
        f.write_text("x: 1\n")
        with pytest.raises(StoreNotADirectoryError) as exc:
            build_index(f)
        assert exc.value.path == f

    def test_fresh_on_every_call(self, vault_root, write_secret):
        write_secret("one.yaml")
        assert build_index(vault_root).names() == ["one"]
        write_secret("two.yaml")
        assert set(build_index(vault_root).names()) == {"one", "two"}


class TestSecretIndex:
    def test_namespaces_and_filtering(self, vault_root, write_secret):
        write_secret("apps/api/db.yaml")
        write_secret("apps/web/db.yaml")
        write_secret("infra/dns.yaml")
        write_secret("root.yaml")
        index = build_index(vault_root)

        assert set(index.namespaces()) == {"apps/api", "apps/web", "infra", ""}
        assert set(index.in_namespace("apps").names()) == {"apps/api/db", "apps/web/db"}
        assert index.in_namespace("apps/api").names() == ["apps/api/db"]
        assert index.in_namespace("app").names() == []
        assert len(index.in_namespace("")) == 4

    def test_by_name(self, vault_root, write_secret):
        write_secret("apps/db.yaml")
        index = build_index(vault_root)
        assert index.by_name("apps/db").short_name == "db"
        assert index.by_name("db") is None
