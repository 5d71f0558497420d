"""Brainkeep — wires the memory components together from one config.

Responsibilities:
1. Build every component once, passing config values explicitly
2. Resolve the session a note should go to
3. Collect diagnostics for the status tool
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from brainkeep import __version__
from brainkeep.config import BrainkeepConfig
from brainkeep.errors import ValidationError
from brainkeep.memory.backups import BackupManager
from brainkeep.memory.locks import resource_lock
from brainkeep.memory.notes import NoteJournal
from brainkeep.memory.projects import ProjectMatcher
from brainkeep.memory.sessions import Session, SessionIndex
from brainkeep.memory.transfer import MemoryTransfer
from brainkeep.validation import validate_session_id
from brainkeep.vault.credentials import CredentialVault, VaultRegistry
from brainkeep.vault.crypto import CIPHER_NAME, VaultCipher

logger = logging.getLogger(__name__)

CONTEXT_FILENAME = "AGENT_CONTEXT.md"


@dataclass
class ContextStatus:
    version: str
    brain_dir: Path
    brain_exists: bool
    total_sessions: int = 0
    sessions_with_artifacts: int = 0
    notes_files: int = 0
    total_notes: int = 0
    backup_snapshots: int = 0
    knowledge_items: int = 0
    disk_usage_mb: float = 0.0
    vaults: int = 0
    cipher: str = CIPHER_NAME
    max_response_chars: int = 0


class Brainkeep:
    """Owns the session index, note journal, vault and transfer components."""

    def __init__(self, config: BrainkeepConfig, cipher: VaultCipher | None = None) -> None:
        self.config = config
        self.sessions = SessionIndex(config.brain_dir, config.sessions.reserved_dir)
        self.projects = ProjectMatcher(self.sessions)
        self.backups = BackupManager(config.notes.backup_retention_days)
        self.notes = NoteJournal(self.sessions, self.backups)
        self.vault = CredentialVault(
            cipher_factory=(lambda: cipher) if cipher else VaultCipher.for_machine,
            registry=VaultRegistry(config.registry_file),
        )
        self.transfer = MemoryTransfer(self.sessions, self.notes, self.vault, config.export_dir)

    # ── Sessions ─────────────────────────────────────────────

    def recent_sessions(self, project_path: str | None = None) -> list[Session]:
        return self.projects.filter(self.sessions.list_sessions(), project_path)

    def note_target(self, session_id: str | None) -> Path:
        """Directory a new note goes to: the given session, or the most recent one."""
        if session_id:
            validate_session_id(session_id)
            path = self.config.brain_dir / session_id
            path.mkdir(parents=True, exist_ok=True)
            return path
        sessions = self.sessions.list_sessions()
        if not sessions:
            raise ValidationError("No sessions found to save note to")
        return sessions[0].path

    # ── Project files ────────────────────────────────────────

    def write_context_file(self, project_path: Path, text: str) -> Path:
        path = project_path / CONTEXT_FILENAME
        with resource_lock(path):
            path.write_text(text, encoding="utf-8")
        logger.info("Wrote %s (%d chars)", path, len(text))
        return path

    # ── Diagnostics ──────────────────────────────────────────

    def status(self) -> ContextStatus:
        brain_dir = self.config.brain_dir
        status = ContextStatus(
            version=__version__,
            brain_dir=brain_dir,
            brain_exists=brain_dir.is_dir(),
            max_response_chars=self.config.server.max_response_chars,
            vaults=len(self.vault.registry.paths()) if self.vault.registry else 0,
        )

        if status.brain_exists:
            all_sessions = self.sessions.all_sessions()
            status.total_sessions = len(all_sessions)
            status.sessions_with_artifacts = sum(1 for s in all_sessions if s.has_artifacts)

            total_bytes = 0
            for session in all_sessions:
                if session.has_artifacts:
                    entries = self.notes.entries(session.path)
                    if entries:
                        status.notes_files += 1
                        status.total_notes += len(entries)
                status.backup_snapshots += self.backups.count(session.path)
                total_bytes += _dir_size(session.path)
            status.disk_usage_mb = round(total_bytes / 1024 / 1024, 1)

        knowledge_dir = self.config.knowledge_dir
        if knowledge_dir.is_dir():
            status.knowledge_items = sum(1 for d in knowledge_dir.iterdir() if d.is_dir())

        return status


def _dir_size(path: Path) -> int:
    total = 0
    for f in path.rglob("*"):
        try:
            if f.is_file():
                total += f.stat().st_size
        except OSError:
            continue
    return total
