"""Project scoping for sessions, and the list of tracked projects.

Matching is a plain substring test over the session's artifacts. It is an
advisory relevance filter: short or common project names will produce
false positives, and that is accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from brainkeep.memory.sessions import Session, SessionIndex

logger = logging.getLogger(__name__)

_MATCH_KINDS = ("task", "plan", "walkthrough")


def normalize_project_path(project_path: str) -> tuple[str, str]:
    """Return (normalized full path, bare project name), both lowercased."""
    normalized = project_path.replace("\\", "/").rstrip("/").lower()
    name = normalized.rsplit("/", 1)[-1]
    return normalized, name


class ProjectMatcher:
    """Decide whether a session mentions a given project."""

    def __init__(self, index: SessionIndex) -> None:
        self.index = index

    def matches(self, session: Session, project_path: str | None) -> bool:
        if not project_path:
            return True
        normalized, name = normalize_project_path(project_path)
        for kind in _MATCH_KINDS:
            content = self.index.read_artifact(session, kind).lower()
            if normalized in content or (name and name in content):
                return True
        return False

    def filter(self, sessions: list[Session], project_path: str | None) -> list[Session]:
        if not project_path:
            return sessions
        return [s for s in sessions if self.matches(s, project_path)]


@dataclass
class KnownProject:
    """A project tracked under code_tracker/active/."""

    project: str
    tracker_key: str
    file_count: int


def list_known_projects(tracker_dir: Path) -> list[KnownProject]:
    """Tracker folders are named `<project>_<hash>`; the prefix is the project name."""
    if not tracker_dir.is_dir():
        return []
    projects = []
    for entry in sorted(tracker_dir.iterdir()):
        try:
            if not entry.is_dir():
                continue
            file_count = sum(1 for _ in entry.iterdir())
        except OSError as e:
            logger.warning("Skipping unreadable tracker folder %s: %s", entry, e)
            continue
        projects.append(
            KnownProject(
                project=entry.name.split("_")[0],
                tracker_key=entry.name,
                file_count=file_count,
            )
        )
    return projects
