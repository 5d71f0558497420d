"""Tests for journal snapshots and retention."""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from pathlib import Path

from brainkeep.memory.backups import BackupManager, TIMESTAMP_FORMAT


NOW = datetime(2026, 10, 17, 12, 0, 0)


def _manager(now: datetime = NOW) -> BackupManager:
    return BackupManager(retention_days=30, clock=lambda: now)


def _journal(tmp_path: Path, text: str = "# Session Notes\n") -> Path:
    path = tmp_path / "sess" / "session_notes.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestSnapshot:
    def test_verbatim_copy(self, tmp_path: Path):
        path = _journal(tmp_path, "# Session Notes\n\nü and ✓\n")
        snapshot = _manager().snapshot(path)
        assert snapshot.parent == path.parent / ".backups"
        assert snapshot.name == NOW.strftime(TIMESTAMP_FORMAT) + ".md"
        assert snapshot.read_bytes() == path.read_bytes()

    def test_missing_file_is_noop(self, tmp_path: Path):
        assert _manager().snapshot(tmp_path / "absent.md") is None
        assert not (tmp_path / ".backups").exists()

    def test_same_instant_does_not_overwrite(self, tmp_path: Path):
        path = _journal(tmp_path)
        manager = _manager()
        first = manager.snapshot(path)
        second = manager.snapshot(path)
        assert first != second
        assert manager.count(path.parent) == 2


class TestRetention:
    def test_old_snapshots_pruned_new_kept(self, tmp_path: Path):
        path = _journal(tmp_path)
        backup_dir = path.parent / ".backups"
        backup_dir.mkdir()
        ages = [45, 31, 29, 2]
        for days in ages:
            stamp = (NOW - timedelta(days=days)).strftime(TIMESTAMP_FORMAT)
            (backup_dir / f"{stamp}.md").write_text(f"{days} days old")

        _manager().snapshot(path)

        remaining = sorted(p.read_text() for p in backup_dir.glob("*.md"))
        assert "45 days old" not in remaining
        assert "31 days old" not in remaining
        assert "29 days old" in remaining
        assert "2 days old" in remaining
        assert len(remaining) == 3

    def test_unparseable_name_uses_mtime(self, tmp_path: Path):
        backup_dir = tmp_path / ".backups"
        backup_dir.mkdir()
        stray = backup_dir / "manual-copy.md"
        stray.write_text("old")
        old = (datetime.now() - timedelta(days=60)).timestamp()
        os.utime(stray, (old, old))

        removed = BackupManager(retention_days=30).prune(backup_dir)
        assert removed == 1
        assert not stray.exists()

    def test_prune_missing_dir(self, tmp_path: Path):
        assert _manager().prune(tmp_path / "nothing") == 0
