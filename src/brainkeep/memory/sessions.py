"""Session folder index and artifact reader.

A session is one directory under brain/. It is listed only when at least
one of task.md, walkthrough.md or implementation_plan.md has content; a
notes journal alone does not qualify it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

logger = logging.getLogger(__name__)

ARTIFACT_FILES = {
    "task": "task.md",
    "walkthrough": "walkthrough.md",
    "plan": "implementation_plan.md",
    "notes": "session_notes.md",
}
QUALIFYING_KINDS = ("task", "walkthrough", "plan")

UNTITLED = "Untitled session"
TITLE_MAX_CHARS = 80


@dataclass
class Session:
    """One session directory."""

    id: str
    path: Path
    mtime: float
    has_artifacts: bool = False

    @property
    def date(self) -> str:
        return datetime.fromtimestamp(self.mtime).strftime("%Y-%m-%d")

    def artifact_path(self, kind: str) -> Path:
        return self.path / ARTIFACT_FILES[kind]


def read_file_safe(path: Path) -> str:
    """Read a text file, returning "" when it is missing or unreadable."""
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return ""


def _split_frontmatter(text: str) -> tuple[dict, str]:
    """Separate optional YAML frontmatter from the markdown body."""
    if not text.startswith("---"):
        return {}, text
    try:
        post = frontmatter.loads(text)
        return dict(post.metadata), post.content
    except Exception:
        return {}, text


class SessionIndex:
    """Enumerate, rank and read session directories."""

    def __init__(self, brain_dir: Path, reserved_dir: str = "tempmediaStorage") -> None:
        self.brain_dir = brain_dir
        self.reserved_dir = reserved_dir

    # ── Enumeration ──────────────────────────────────────────

    def all_sessions(self) -> list[Session]:
        """Every session directory, qualifying or not, newest first."""
        if not self.brain_dir.is_dir():
            return []
        sessions = []
        for entry in self.brain_dir.iterdir():
            if entry.name == self.reserved_dir:
                continue
            try:
                if not entry.is_dir():
                    continue
                mtime = entry.stat().st_mtime
            except OSError:
                continue
            sessions.append(
                Session(
                    id=entry.name,
                    path=entry,
                    mtime=mtime,
                    has_artifacts=self._has_artifacts(entry),
                )
            )
        sessions.sort(key=lambda s: s.mtime, reverse=True)
        return sessions

    def list_sessions(self) -> list[Session]:
        """Sessions with at least one qualifying artifact, newest first.

        A missing brain directory is the normal empty state, not an error.
        """
        return [s for s in self.all_sessions() if s.has_artifacts]

    def get(self, session_id: str) -> Session | None:
        path = self.brain_dir / session_id
        if not path.is_dir():
            return None
        return Session(
            id=session_id,
            path=path,
            mtime=path.stat().st_mtime,
            has_artifacts=self._has_artifacts(path),
        )

    def _has_artifacts(self, path: Path) -> bool:
        return any(
            read_file_safe(path / ARTIFACT_FILES[kind]).strip() for kind in QUALIFYING_KINDS
        )

    # ── Artifacts ────────────────────────────────────────────

    def read_artifact(self, session: Session, kind: str) -> str:
        return read_file_safe(session.artifact_path(kind))

    def full_artifacts(self, session: Session) -> dict[str, str]:
        """All non-empty artifacts keyed by kind. Missing ones are left out."""
        results: dict[str, str] = {}
        for kind in ARTIFACT_FILES:
            content = self.read_artifact(session, kind)
            if content.strip():
                results[kind] = content
        return results

    def title(self, session: Session) -> str:
        """Derive a title from task.md, falling back to the plan.

        First markdown heading wins, then the first non-blank line (cut to
        80 characters). A frontmatter `title:` field overrides both.
        """
        text = self.read_artifact(session, "task")
        if not text.strip():
            text = self.read_artifact(session, "plan")

        meta, body = _split_frontmatter(text)
        if meta.get("title"):
            return str(meta["title"]).strip()

        lines = body.splitlines()
        for line in lines:
            stripped = line.strip()
            if stripped.startswith("#"):
                return stripped.lstrip("#").strip()
        for line in lines:
            stripped = line.strip()
            if stripped:
                return stripped[:TITLE_MAX_CHARS]
        return UNTITLED
