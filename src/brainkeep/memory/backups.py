"""Pre-write snapshots of session note journals.

Each snapshot is a verbatim copy in `<session>/.backups/<timestamp>.md`.
Snapshots older than the retention window are pruned, oldest first, every
time a new one is taken.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

BACKUP_DIRNAME = ".backups"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%f"


class BackupManager:
    """Snapshot a file before it is mutated, then prune old snapshots."""

    def __init__(
        self,
        retention_days: int = 30,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.retention = timedelta(days=retention_days)
        self._clock = clock

    def backup_dir(self, session_path: Path) -> Path:
        return session_path / BACKUP_DIRNAME

    def snapshot(self, path: Path) -> Path | None:
        """Copy `path` into its folder's backup directory. No-op if it does not exist."""
        if not path.exists():
            return None
        backup_dir = self.backup_dir(path.parent)
        backup_dir.mkdir(exist_ok=True)

        stamp = self._clock().strftime(TIMESTAMP_FORMAT)
        target = backup_dir / f"{stamp}.md"
        counter = 2
        while target.exists():
            target = backup_dir / f"{stamp}-{counter}.md"
            counter += 1
        target.write_bytes(path.read_bytes())
        logger.debug("Snapshot %s -> %s", path, target)

        self.prune(backup_dir)
        return target

    def prune(self, backup_dir: Path) -> int:
        """Remove snapshots older than the retention window. Returns count removed."""
        if not backup_dir.is_dir():
            return 0
        cutoff = self._clock() - self.retention
        snapshots = sorted(
            ((self._taken_at(p), p) for p in backup_dir.glob("*.md")),
            key=lambda item: item[0],
        )
        removed = 0
        for taken_at, snapshot in snapshots:
            if taken_at >= cutoff:
                break
            try:
                snapshot.unlink()
                removed += 1
            except FileNotFoundError:
                logger.warning("Snapshot vanished before pruning: %s", snapshot)
        if removed:
            logger.info("Pruned %d snapshot(s) from %s", removed, backup_dir)
        return removed

    def count(self, session_path: Path) -> int:
        backup_dir = self.backup_dir(session_path)
        if not backup_dir.is_dir():
            return 0
        return sum(1 for _ in backup_dir.glob("*.md"))

    def _taken_at(self, snapshot: Path) -> datetime:
        """Timestamp from the file name; mtime if the name does not parse."""
        stem = snapshot.stem.split("-", 1)[0]
        try:
            return datetime.strptime(stem, TIMESTAMP_FORMAT)
        except ValueError:
            return datetime.fromtimestamp(snapshot.stat().st_mtime)
