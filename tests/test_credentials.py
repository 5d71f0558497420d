"""Tests for the credential vault."""

from __future__ import annotations

from pathlib import Path

import pytest

from brainkeep.errors import StorageError, ValidationError, VaultDecryptError
from brainkeep.vault.credentials import (
    CREDENTIALS_ENC_FILENAME,
    CREDENTIALS_FILENAME,
    CredentialVault,
    VaultRegistry,
    parse_credentials,
    serialize_credentials,
)
from brainkeep.vault.crypto import VaultCipher


@pytest.fixture
def registry(tmp_path: Path) -> VaultRegistry:
    return VaultRegistry(tmp_path / "vaults.txt")


@pytest.fixture
def vault(cipher: VaultCipher, registry: VaultRegistry) -> CredentialVault:
    return CredentialVault(cipher_factory=lambda: cipher, registry=registry)


LEGACY = """# Hosting
LOGIN=bob
PASSWORD=a=b=c

# Database
URL = postgres://db
"""


class TestTextForm:
    def test_parse_sections(self):
        assert parse_credentials(LEGACY) == {
            "Hosting": {"LOGIN": "bob", "PASSWORD": "a=b=c"},
            "Database": {"URL": "postgres://db"},
        }

    def test_default_section(self):
        assert parse_credentials("TOKEN=xyz\n=orphan\nnot a pair\n") == {"general": {"TOKEN": "xyz"}}

    def test_serialize_reparses(self):
        creds = {"Hosting": {"LOGIN": "bob"}, "general": {"A": "1"}}
        text = serialize_credentials(creds)
        assert text.startswith("# Credentials - managed by brainkeep\n")
        assert parse_credentials(text) == creds


class TestWriteRead:
    def test_values_stripped(self, vault: CredentialVault, project: Path):
        vault.write(project, {" Hosting ": {" PASSWORD ": " pw "}})
        assert vault.read(project) == {"Hosting": {"PASSWORD": "pw"}}

    def test_write_then_read(self, vault: CredentialVault, project: Path):
        vault.write(project, {"Hosting": {"LOGIN": "bob"}})
        assert vault.read(project) == {"Hosting": {"LOGIN": "bob"}}
        assert (project / CREDENTIALS_ENC_FILENAME).exists()
        assert not (project / CREDENTIALS_FILENAME).exists()

    def test_encrypted_at_rest(self, vault: CredentialVault, project: Path):
        vault.write(project, {"Hosting": {"PASSWORD": "hunter2"}})
        payload = (project / CREDENTIALS_ENC_FILENAME).read_text()
        assert "hunter2" not in payload
        assert len(payload.split(":")) == 3

    def test_no_vault_returns_none(self, vault: CredentialVault, project: Path):
        assert vault.read(project) is None

    def test_encrypted_wins_over_plaintext(self, vault: CredentialVault, project: Path):
        vault.write(project, {"A": {"K": "encrypted"}})
        (project / CREDENTIALS_FILENAME).write_text("# A\nK=plaintext\n")
        assert vault.read(project) == {"A": {"K": "encrypted"}}

    def test_write_removes_legacy_plaintext(self, vault: CredentialVault, project: Path):
        (project / CREDENTIALS_FILENAME).write_text(LEGACY)
        vault.write(project, {"A": {"K": "v"}})
        assert not (project / CREDENTIALS_FILENAME).exists()

    def test_other_machine_gets_decrypt_error(self, vault: CredentialVault, project: Path):
        vault.write(project, {"A": {"K": "v"}})
        stranger = CredentialVault(lambda: VaultCipher.for_machine("elsewhere", "tester"))
        with pytest.raises(VaultDecryptError, match="different machine"):
            stranger.read(project)

    def test_corrupted_payload(self, vault: CredentialVault, project: Path):
        (project / CREDENTIALS_ENC_FILENAME).write_text("not-a-payload")
        with pytest.raises(VaultDecryptError):
            vault.read(project)

    @pytest.mark.parametrize(
        "creds",
        [
            "not a dict",
            {"Hosting": "flat"},
            {"Hosting": {"BAD=KEY": "v"}},
            {"Hosting": {"KEY": "multi\nline"}},
            {"": {"K": "v"}},
            {"Hosting": {}},
            {"Hosting": {"NOTE": "line\u2028two"}},
            {"Hosting": {"NOTE": "line\rtwo"}},
            {"Host\x85ing": {"K": "v"}},
            {"#Hosting": {"K": "v"}},
        ],
    )
    def test_invalid_records_rejected(self, vault: CredentialVault, project: Path, creds):
        with pytest.raises(ValidationError):
            vault.write(project, creds)
        assert not (project / CREDENTIALS_ENC_FILENAME).exists()

    def test_registry_records_project(self, vault: CredentialVault, project: Path, registry):
        vault.write(project, {"A": {"K": "v"}})
        vault.write(project, {"A": {"K": "w"}})
        assert registry.paths() == [project]


class TestMigration:
    def test_legacy_migrated_on_read(self, vault: CredentialVault, project: Path):
        (project / CREDENTIALS_FILENAME).write_text(LEGACY)
        first = vault.read(project)
        assert not (project / CREDENTIALS_FILENAME).exists()
        assert (project / CREDENTIALS_ENC_FILENAME).exists()
        second = vault.read(project)
        assert first == second == parse_credentials(LEGACY)

    def test_migration_failure_still_returns(self, vault: CredentialVault, project: Path, monkeypatch):
        (project / CREDENTIALS_FILENAME).write_text(LEGACY)

        def boom(*args, **kwargs):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(CredentialVault, "_write_payload", boom)
        assert vault.read(project) == parse_credentials(LEGACY)
        assert (project / CREDENTIALS_FILENAME).exists()

    def test_migration_updates_existing_gitignore(self, vault: CredentialVault, project: Path):
        (project / ".gitignore").write_text("node_modules/\n")
        (project / CREDENTIALS_FILENAME).write_text(LEGACY)
        vault.read(project)
        assert CREDENTIALS_ENC_FILENAME in (project / ".gitignore").read_text().splitlines()


class TestGitignore:
    def test_lists_both_names(self, vault: CredentialVault, project: Path):
        (project / ".gitignore").write_text("dist/\n")
        vault.write(project, {"A": {"K": "v"}})
        lines = (project / ".gitignore").read_text().splitlines()
        assert CREDENTIALS_ENC_FILENAME in lines
        assert CREDENTIALS_FILENAME in lines

    def test_not_duplicated(self, vault: CredentialVault, project: Path):
        (project / ".gitignore").write_text("dist/\n")
        vault.write(project, {"A": {"K": "v"}})
        vault.write(project, {"A": {"K": "w"}})
        lines = (project / ".gitignore").read_text().splitlines()
        assert lines.count(CREDENTIALS_ENC_FILENAME) == 1

    def test_never_created(self, vault: CredentialVault, project: Path):
        vault.write(project, {"A": {"K": "v"}})
        assert not (project / ".gitignore").exists()

    def test_gitignore_failure_is_reported(self, vault: CredentialVault, project: Path):
        (project / ".gitignore").mkdir()  # reading a directory fails
        with pytest.raises(StorageError, match="Credentials saved"):
            vault.write(project, {"A": {"K": "v"}})
        assert vault.read(project) == {"A": {"K": "v"}}


class TestMerge:
    def test_adds_missing_keys_only(self, vault: CredentialVault, project: Path):
        vault.write(project, {"Hosting": {"LOGIN": "bob"}})
        added = vault.merge(project, {"Hosting": {"LOGIN": "eve", "PASSWORD": "x"}, "DB": {"URL": "u"}})
        assert added == 2
        assert vault.read(project) == {
            "Hosting": {"LOGIN": "bob", "PASSWORD": "x"},
            "DB": {"URL": "u"},
        }
