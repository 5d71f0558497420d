"""Export and import of the whole memory corpus as one encrypted container.

Container text: `BKX1:<scheme>:<salt-hex>:<nonce>:<tag>:<ciphertext>`.

- scheme `passphrase`: key derived from a user passphrase and the random
  salt stored in the container. Portable to other machines.
- scheme `machine`: the vault's machine-bound key, salt left empty. Only
  this machine and user can open it.

The decrypted payload is a JSON bundle of session notes and, optionally,
credential vaults keyed by project path. Import only ever adds.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from cryptography.exceptions import InvalidTag

from brainkeep.errors import BrainkeepError, TransferError, ValidationError
from brainkeep.memory.notes import NoteEntry, NoteJournal
from brainkeep.memory.sessions import SessionIndex
from brainkeep.validation import validate_session_id
from brainkeep.vault.credentials import CredentialVault, validate_credentials
from brainkeep.vault.crypto import VaultCipher, new_salt

logger = logging.getLogger(__name__)

CONTAINER_MAGIC = "BKX1"
CONTAINER_SUFFIX = ".bkx"
SCHEME_PASSPHRASE = "passphrase"
SCHEME_MACHINE = "machine"
BUNDLE_VERSION = 1


@dataclass
class ExportResult:
    path: Path
    scheme: str
    sessions: int = 0
    entries: int = 0
    vaults: int = 0


@dataclass
class ImportReport:
    sessions: int = 0
    added: int = 0
    skipped: int = 0
    credential_keys: int = 0
    rejected: list[str] = field(default_factory=list)


class MemoryTransfer:
    """Build, seal, open and merge export containers."""

    def __init__(
        self,
        index: SessionIndex,
        journal: NoteJournal,
        vault: CredentialVault,
        export_dir: Path,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.index = index
        self.journal = journal
        self.vault = vault
        self.export_dir = export_dir
        self._clock = clock

    # ── Export ───────────────────────────────────────────────

    def build_bundle(self, include_credentials: bool = False) -> dict:
        sessions: dict[str, list[dict]] = {}
        for session in self.index.all_sessions():
            entries = self.journal.entries(session.path)
            if entries:
                sessions[session.id] = [e.to_dict() for e in entries]

        credentials: dict[str, dict] = {}
        if include_credentials and self.vault.registry is not None:
            for project_path in self.vault.registry.paths():
                if not project_path.is_dir():
                    continue
                record = self.vault.read(project_path)
                if record:
                    credentials[str(project_path)] = record

        return {
            "version": BUNDLE_VERSION,
            "exported_at": self._clock().isoformat(timespec="seconds"),
            "sessions": sessions,
            "credentials": credentials,
        }

    def seal(self, bundle: dict, passphrase: str | None = None) -> str:
        plaintext = json.dumps(bundle, ensure_ascii=False)
        if passphrase:
            salt = new_salt()
            cipher = VaultCipher.for_passphrase(passphrase, salt)
            return f"{CONTAINER_MAGIC}:{SCHEME_PASSPHRASE}:{salt.hex()}:{cipher.encrypt(plaintext)}"
        return f"{CONTAINER_MAGIC}:{SCHEME_MACHINE}::{self.vault.cipher.encrypt(plaintext)}"

    def export(self, include_credentials: bool = False, passphrase: str | None = None) -> ExportResult:
        """Write a container to the export directory and return where it went."""
        bundle = self.build_bundle(include_credentials)
        container = self.seal(bundle, passphrase)

        self.export_dir.mkdir(parents=True, exist_ok=True)
        stamp = self._clock().strftime("%Y%m%dT%H%M%S")
        path = self.export_dir / f"{stamp}{CONTAINER_SUFFIX}"
        counter = 2
        while path.exists():
            path = self.export_dir / f"{stamp}-{counter}{CONTAINER_SUFFIX}"
            counter += 1
        path.write_text(container, encoding="utf-8")
        os.chmod(path, 0o600)

        result = ExportResult(
            path=path,
            scheme=SCHEME_PASSPHRASE if passphrase else SCHEME_MACHINE,
            sessions=len(bundle["sessions"]),
            entries=sum(len(v) for v in bundle["sessions"].values()),
            vaults=len(bundle["credentials"]),
        )
        logger.info(
            "Exported %d session(s), %d note(s), %d vault(s) to %s",
            result.sessions, result.entries, result.vaults, path,
        )
        return result

    # ── Import ───────────────────────────────────────────────

    def open(self, container: str, passphrase: str | None = None) -> dict:
        """Decrypt and decode a container. Raises TransferError on any mismatch."""
        parts = container.strip().split(":", 3)
        if len(parts) != 4 or parts[0] != CONTAINER_MAGIC:
            raise TransferError("Not a brainkeep export container")
        _, scheme, salt_hex, payload = parts

        if scheme == SCHEME_PASSPHRASE:
            if not passphrase:
                raise TransferError("This container is protected by a passphrase")
            try:
                cipher = VaultCipher.for_passphrase(passphrase, bytes.fromhex(salt_hex))
            except ValueError as e:
                raise TransferError(f"Malformed container salt: {e}") from e
        elif scheme == SCHEME_MACHINE:
            cipher = self.vault.cipher
        else:
            raise TransferError(f"Unknown container scheme: {scheme}")

        try:
            plaintext = cipher.decrypt(payload)
        except InvalidTag as e:
            hint = "wrong passphrase" if scheme == SCHEME_PASSPHRASE else "exported on a different machine"
            raise TransferError(f"Cannot decrypt container: corrupted or {hint}") from e
        except ValueError as e:
            raise TransferError(f"Malformed container payload: {e}") from e

        try:
            bundle = json.loads(plaintext)
        except ValueError as e:
            raise TransferError(f"Container content is not valid JSON: {e}") from e
        if not isinstance(bundle, dict) or not isinstance(bundle.get("sessions"), dict):
            raise TransferError("Container content has no sessions mapping")
        return bundle

    def import_container(self, container: str, passphrase: str | None = None) -> ImportReport:
        """Merge a container into local memory. Nothing is overwritten or removed."""
        bundle = self.open(container, passphrase)
        report = ImportReport()

        for session_id, raw_entries in bundle["sessions"].items():
            try:
                validate_session_id(session_id)
            except ValidationError:
                logger.warning("Skipping session with invalid id in container: %r", session_id)
                report.rejected.append(f"session {session_id}: invalid id")
                continue
            if not isinstance(raw_entries, list):
                report.rejected.append(f"session {session_id}: entries must be a list")
                continue
            entries = []
            for i, raw in enumerate(raw_entries):
                try:
                    entries.append(NoteEntry.from_dict(raw))
                except ValidationError as e:
                    logger.warning("Skipping note %d of session %s: %s", i, session_id, e)
                    report.rejected.append(f"session {session_id} note {i}: {e}")
            added, skipped = self.journal.merge(self.index.brain_dir / session_id, entries)
            report.sessions += 1
            report.added += added
            report.skipped += skipped

        for project, record in (bundle.get("credentials") or {}).items():
            project_path = Path(project)
            if not project_path.is_absolute() or not project_path.is_dir():
                report.rejected.append(f"vault {project}: project directory not found")
                continue
            try:
                report.credential_keys += self.vault.merge(
                    project_path, validate_credentials(record)
                )
            except BrainkeepError as e:
                logger.warning("Skipping vault for %s: %s", project, e)
                report.rejected.append(f"vault {project}: {e}")

        logger.info(
            "Imported %d session(s): %d note(s) added, %d already present",
            report.sessions, report.added, report.skipped,
        )
        return report
