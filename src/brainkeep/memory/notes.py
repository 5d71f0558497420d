"""Append-only note journal, one `session_notes.md` per session.

Journal format:

    # Session Notes

    ### [2026-10-17 10:15] #decision
    Use Postgres for the job queue.

    ---

Entries are never rewritten or removed; every mutating write is preceded by
a backup snapshot of the current journal. A body line that reads exactly
`---` is stored indented by one space so it cannot end the entry early.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path

from brainkeep.errors import ValidationError
from brainkeep.memory.backups import BackupManager
from brainkeep.memory.locks import resource_lock
from brainkeep.memory.sessions import ARTIFACT_FILES, SessionIndex, read_file_safe

logger = logging.getLogger(__name__)

NOTES_TITLE = "# Session Notes"
ENTRY_DELIMITER = "---"

_DELIMITER_RE = re.compile(r"^---$", re.MULTILINE)
_HEADER_RE = re.compile(r"^### \[(?P<timestamp>[^\]]+)\](?:[ \t]+#(?P<tag>\S+))?[ \t]*$")
_TIMESTAMP_RE = re.compile(r"[^\]\n]+")


def escape_body(body: str) -> str:
    """Indent lines that would otherwise read back as an entry delimiter."""
    lines = body.replace("\r\n", "\n").split("\n")
    return "\n".join(f" {line}" if line == ENTRY_DELIMITER else line for line in lines)


@dataclass
class NoteEntry:
    """One journal entry."""

    timestamp: str
    body: str
    tag: str | None = None
    raw: str = field(default="", compare=False, repr=False)

    @property
    def key(self) -> tuple[str, str]:
        """Identity used to de-duplicate entries on import."""
        return (self.timestamp, self.body.strip())

    @property
    def header(self) -> str:
        tag = f" #{self.tag}" if self.tag else ""
        return f"### [{self.timestamp}]{tag}"

    @property
    def text(self) -> str:
        """The entry as it reads in the journal, without the delimiter."""
        return self.raw or f"{self.header}\n{self.body}"

    def render(self) -> str:
        if not self.timestamp:
            # Headerless fragments are written back as they were read
            return f"{self.body}\n\n{ENTRY_DELIMITER}\n\n"
        return f"{self.header}\n{self.body}\n\n{ENTRY_DELIMITER}\n\n"

    @classmethod
    def parse(cls, text: str) -> NoteEntry:
        header, _, rest = text.partition("\n")
        match = _HEADER_RE.match(header.strip())
        if not match:
            # Hand-edited fragment without a header line
            return cls(timestamp="", body=text, raw=text)
        return cls(
            timestamp=match.group("timestamp"),
            body=rest.strip(),
            tag=match.group("tag"),
            raw=text,
        )

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "tag": self.tag, "body": self.body}

    @classmethod
    def from_dict(cls, data: dict) -> NoteEntry:
        """Build an entry from exported data, rejecting anything that would
        corrupt the journal header line."""
        if not isinstance(data, dict):
            raise ValidationError("note entry must be an object")
        timestamp = str(data.get("timestamp") or "")
        body = str(data.get("body") or "")
        tag = data.get("tag")
        if tag is not None and not isinstance(tag, str):
            raise ValidationError(f"tag must be a string: {tag!r}")
        tag = normalize_tag(tag)
        if timestamp:
            if not _TIMESTAMP_RE.fullmatch(timestamp):
                raise ValidationError(f"Invalid note timestamp: {timestamp!r}")
        elif tag or not body.strip() or _HEADER_RE.match(body.partition("\n")[0].strip()):
            raise ValidationError("note entry without a timestamp must be plain text")
        return cls(timestamp=timestamp, body=body, tag=tag)


@dataclass
class NoteMatch:
    """A search hit annotated with its session."""

    session_id: str
    title: str
    date: str
    entry: NoteEntry


def parse_journal(content: str) -> list[NoteEntry]:
    """Split a journal into entries, dropping the document title."""
    content = content.replace("\r\n", "\n")
    entries = []
    for i, fragment in enumerate(_DELIMITER_RE.split(content)):
        text = fragment.strip()
        if i == 0 and text.startswith(NOTES_TITLE):
            text = text[len(NOTES_TITLE):].strip()
        if text:
            entries.append(NoteEntry.parse(text))
    return entries


def normalize_tag(tag: str | None) -> str | None:
    if tag is None:
        return None
    tag = tag.strip().lstrip("#")
    if not tag:
        return None
    if any(c.isspace() for c in tag):
        raise ValidationError(f"tag must be a single word: {tag!r}")
    return tag


class NoteJournal:
    """Read, append, search and merge session note journals."""

    def __init__(
        self,
        index: SessionIndex,
        backups: BackupManager,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.index = index
        self.backups = backups
        self._clock = clock

    def journal_path(self, session_path: Path) -> Path:
        return session_path / ARTIFACT_FILES["notes"]

    def entries(self, session_path: Path) -> list[NoteEntry]:
        return parse_journal(read_file_safe(self.journal_path(session_path)))

    # ── Writes ───────────────────────────────────────────────

    def append(self, session_path: Path, body: str, tag: str | None = None) -> Path:
        """Append a timestamped entry. Creates the journal on first use."""
        entry = NoteEntry(
            timestamp=self._clock().isoformat(sep=" ", timespec="minutes"),
            body=escape_body(body),
            tag=normalize_tag(tag),
        )
        path = self.journal_path(session_path)
        with resource_lock(path):
            self._write_entries(path, [entry])
        logger.info("Appended note to %s%s", path, f" (#{entry.tag})" if entry.tag else "")
        return path

    def merge(self, session_path: Path, incoming: list[NoteEntry]) -> tuple[int, int]:
        """Append entries not already present (same timestamp and body).

        Returns (added, skipped). Existing entries are never touched.
        """
        path = self.journal_path(session_path)
        with resource_lock(path):
            seen = {e.key for e in self.entries(session_path)}
            new: list[NoteEntry] = []
            for entry in incoming:
                entry = replace(entry, body=escape_body(entry.body))
                if entry.key in seen:
                    continue
                seen.add(entry.key)
                new.append(entry)
            if new:
                session_path.mkdir(parents=True, exist_ok=True)
                self._write_entries(path, new)
        skipped = len(incoming) - len(new)
        logger.info("Merged into %s: %d added, %d skipped", path, len(new), skipped)
        return len(new), skipped

    def _write_entries(self, path: Path, entries: list[NoteEntry]) -> None:
        block = "".join(e.render() for e in entries)
        if not path.exists():
            path.write_text(f"{NOTES_TITLE}\n\n{block}", encoding="utf-8")
            return
        self.backups.snapshot(path)
        with path.open("a", encoding="utf-8") as f:
            f.write(block)

    # ── Search ───────────────────────────────────────────────

    def search(
        self,
        query: str | None = None,
        tag: str | None = None,
        window: int = 5,
    ) -> list[NoteMatch]:
        """Find entries across the `window` most recent sessions.

        Both filters must hold: `query` is a case-insensitive substring of
        the body, `tag` appears as a literal `#tag` in the entry. Results
        keep session recency order, then append order.
        """
        tag = normalize_tag(tag)
        needle = query.lower() if query else None
        results: list[NoteMatch] = []
        for session in self.index.list_sessions()[: max(window, 0)]:
            entries = self.entries(session.path)
            if not entries:
                continue
            title = self.index.title(session)
            for entry in entries:
                if needle and needle not in entry.body.lower():
                    continue
                if tag and f"#{tag}" not in entry.text:
                    continue
                results.append(
                    NoteMatch(session_id=session.id, title=title, date=session.date, entry=entry)
                )
        return results
