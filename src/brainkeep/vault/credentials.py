"""Per-project credential vault.

Text form (before encryption):

    # Hosting
    LOGIN=bob
    PASSWORD=hunter2

A comment line starts a section; `key=value` lines assign into the current
section ("general" until the first header). At rest the vault is either the
encrypted `.credentials.enc` or the legacy plaintext `.credentials`; the
encrypted file always wins, and a plaintext file is migrated on first read.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from cryptography.exceptions import InvalidTag

from brainkeep.errors import StorageError, ValidationError, VaultDecryptError
from brainkeep.memory.locks import resource_lock
from brainkeep.memory.sessions import read_file_safe
from brainkeep.vault.crypto import VaultCipher

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = ".credentials"
CREDENTIALS_ENC_FILENAME = ".credentials.enc"
IGNORE_FILENAME = ".gitignore"
DEFAULT_SECTION = "general"

FILE_HEADER = (
    "# Credentials - managed by brainkeep\n"
    "# DO NOT commit this file to Git!\n\n"
)

Credentials = dict[str, dict[str, str]]


def parse_credentials(content: str) -> Credentials:
    creds: Credentials = {}
    section = DEFAULT_SECTION
    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith("#"):
            section = line.lstrip("#").strip()
            continue
        key, sep, value = line.partition("=")
        if sep and key.strip():
            creds.setdefault(section, {})[key.strip()] = value.strip()
    return creds


def serialize_credentials(creds: Credentials) -> str:
    content = FILE_HEADER
    for section, pairs in creds.items():
        content += f"# {section}\n"
        for key, value in pairs.items():
            content += f"{key}={value}\n"
        content += "\n"
    return content


def _multiline(text: str) -> bool:
    return len(text.splitlines()) > 1


def validate_credentials(creds: object) -> Credentials:
    """Check shape and that every name survives the line-based text form.

    Surrounding whitespace is stripped from sections, keys and values, since
    the text form cannot keep it. Sections must hold at least one key.
    """
    if not isinstance(creds, dict):
        raise ValidationError("credentials must be an object with sections")
    clean: Credentials = {}
    for section, pairs in creds.items():
        section = str(section).strip()
        if not section or section.startswith("#") or _multiline(section):
            raise ValidationError(f"Invalid section name: {section!r}")
        if not isinstance(pairs, dict):
            raise ValidationError(f"Section {section!r} must map keys to values")
        if not pairs:
            raise ValidationError(f"Section {section!r} has no keys")
        for key, value in pairs.items():
            key, value = str(key).strip(), str(value).strip()
            if not key or "=" in key or _multiline(key) or key.startswith("#"):
                raise ValidationError(f"Invalid key in section {section!r}: {key!r}")
            if _multiline(value):
                raise ValidationError(f"Value for {key!r} must be a single line")
            clean.setdefault(section, {})[key] = value
    return clean


def ensure_ignored(project_path: Path, filename: str) -> bool:
    """Add `filename` to an existing .gitignore. Never creates the file.

    Returns True if the file was changed.
    """
    ignore_path = project_path / IGNORE_FILENAME
    if not ignore_path.exists():
        return False
    lines = ignore_path.read_text(encoding="utf-8").splitlines()
    if filename in (line.strip() for line in lines):
        return False
    with ignore_path.open("a", encoding="utf-8") as f:
        f.write(f"\n# Credentials (auto-added)\n{filename}\n")
    return True


class VaultRegistry:
    """Remembers which project directories hold a vault, for export."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def paths(self) -> list[Path]:
        return [Path(line) for line in read_file_safe(self.path).splitlines() if line.strip()]

    def add(self, project_path: Path) -> None:
        entry = str(project_path)
        if entry in (str(p) for p in self.paths()):
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(f"{entry}\n")
        except OSError as e:
            logger.warning("Could not record vault %s in registry: %s", entry, e)


class CredentialVault:
    """Read and write encrypted project credentials."""

    def __init__(
        self,
        cipher_factory: Callable[[], VaultCipher] = VaultCipher.for_machine,
        registry: VaultRegistry | None = None,
    ) -> None:
        self._cipher_factory = cipher_factory
        self._cipher: VaultCipher | None = None
        self.registry = registry

    @property
    def cipher(self) -> VaultCipher:
        # Key derivation is slow; do it on first use only.
        if self._cipher is None:
            self._cipher = self._cipher_factory()
        return self._cipher

    def read(self, project_path: Path) -> Credentials | None:
        """Return the project's credentials, or None if it has no vault."""
        enc_path = project_path / CREDENTIALS_ENC_FILENAME
        if enc_path.exists():
            try:
                payload = enc_path.read_text(encoding="utf-8")
            except OSError as e:
                raise StorageError(f"Cannot read {enc_path}: {e}") from e
            try:
                text = self.cipher.decrypt(payload)
            except InvalidTag as e:
                raise VaultDecryptError(str(enc_path), "authentication failed") from e
            except ValueError as e:
                raise VaultDecryptError(str(enc_path), str(e)) from e
            self._register(project_path)
            return parse_credentials(text)

        plain_path = project_path / CREDENTIALS_FILENAME
        content = read_file_safe(plain_path)
        if not content.strip():
            return None
        creds = parse_credentials(content)
        self._migrate(project_path, content)
        return creds

    def _migrate(self, project_path: Path, content: str) -> None:
        """Encrypt a legacy plaintext vault and remove the plaintext.

        Failure is logged and left for the next read to retry.
        """
        enc_path = project_path / CREDENTIALS_ENC_FILENAME
        plain_path = project_path / CREDENTIALS_FILENAME
        try:
            with resource_lock(enc_path):
                self._write_payload(enc_path, self.cipher.encrypt(content))
                plain_path.unlink()
                ensure_ignored(project_path, CREDENTIALS_ENC_FILENAME)
        except OSError as e:
            logger.warning("Could not migrate plaintext credentials in %s: %s", project_path, e)
            return
        logger.info("Migrated plaintext credentials to %s", enc_path)
        self._register(project_path)

    def write(self, project_path: Path, creds: Credentials) -> Path:
        """Encrypt and store `creds`, replacing the previous vault.

        The vault file is replaced atomically. If the .gitignore update
        fails afterwards the vault stays written and StorageError says so.
        """
        creds = validate_credentials(creds)
        enc_path = project_path / CREDENTIALS_ENC_FILENAME
        plain_path = project_path / CREDENTIALS_FILENAME
        with resource_lock(enc_path):
            try:
                self._write_payload(enc_path, self.cipher.encrypt(serialize_credentials(creds)))
                if plain_path.exists():
                    plain_path.unlink()
                    logger.info("Removed legacy plaintext credentials %s", plain_path)
            except OSError as e:
                raise StorageError(f"Cannot write {enc_path}: {e}") from e
        logger.info("Saved %d credential section(s) to %s", len(creds), enc_path)
        self._register(project_path)

        try:
            ensure_ignored(project_path, CREDENTIALS_ENC_FILENAME)
            ensure_ignored(project_path, CREDENTIALS_FILENAME)
        except OSError as e:
            raise StorageError(
                f"Credentials saved to {enc_path}, but updating {IGNORE_FILENAME} failed: {e}"
            ) from e
        return enc_path

    def merge(self, project_path: Path, incoming: Credentials) -> int:
        """Add keys missing from the project's vault. Existing values are kept.

        Returns the number of keys added.
        """
        existing = self.read(project_path) or {}
        added = 0
        for section, pairs in incoming.items():
            target = existing.setdefault(section, {})
            for key, value in pairs.items():
                if key not in target:
                    target[key] = value
                    added += 1
        if added:
            self.write(project_path, existing)
        return added

    def _write_payload(self, enc_path: Path, payload: str) -> None:
        tmp_path = enc_path.with_name(enc_path.name + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, enc_path)

    def _register(self, project_path: Path) -> None:
        if self.registry is not None:
            self.registry.add(project_path)
