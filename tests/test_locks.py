"""Tests for per-resource advisory locks."""

from __future__ import annotations

import gc
import threading
from pathlib import Path

from brainkeep.memory.locks import _get_lock, _locks, resource_lock


class TestResourceLock:
    def test_same_path_same_lock(self, tmp_path: Path):
        a = _get_lock(str((tmp_path / "x").resolve()))
        b = _get_lock(str((tmp_path / "x").resolve()))
        assert a is b

    def test_blocks_second_holder(self, tmp_path: Path):
        path = tmp_path / "journal.md"
        acquired = []

        def other():
            with resource_lock(path):
                acquired.append(True)

        with resource_lock(path):
            t = threading.Thread(target=other)
            t.start()
            t.join(timeout=0.2)
            assert acquired == []
        t.join(timeout=2)
        assert acquired == [True]

    def test_different_paths_independent(self, tmp_path: Path):
        with resource_lock(tmp_path / "a"):
            with resource_lock(tmp_path / "b"):
                pass

    def test_released_locks_dropped(self, tmp_path: Path):
        key = str((tmp_path / "gone").resolve())
        with resource_lock(tmp_path / "gone"):
            assert key in _locks
        gc.collect()
        assert key not in _locks
