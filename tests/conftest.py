"""Shared fixtures: a throwaway memory root and a fixed machine identity."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from brainkeep.config import BrainkeepConfig
from brainkeep.core import Brainkeep
from brainkeep.vault.crypto import VaultCipher


def make_session(
    brain_dir: Path,
    session_id: str,
    *,
    task: str = "",
    walkthrough: str = "",
    plan: str = "",
    notes: str = "",
    age: float = 0.0,
) -> Path:
    """Create a session folder and set its mtime to `age` seconds ago."""
    path = brain_dir / session_id
    path.mkdir(parents=True, exist_ok=True)
    for name, content in (
        ("task.md", task),
        ("walkthrough.md", walkthrough),
        ("implementation_plan.md", plan),
        ("session_notes.md", notes),
    ):
        if content:
            (path / name).write_text(content, encoding="utf-8")
    stamp = time.time() - age
    os.utime(path, (stamp, stamp))
    return path


@pytest.fixture
def config(tmp_path: Path) -> BrainkeepConfig:
    return BrainkeepConfig(root=tmp_path / "antigravity")


@pytest.fixture
def brain_dir(config: BrainkeepConfig) -> Path:
    config.brain_dir.mkdir(parents=True)
    return config.brain_dir


@pytest.fixture
def cipher() -> VaultCipher:
    return VaultCipher.for_machine("test-host", "tester")


@pytest.fixture
def keeper(config: BrainkeepConfig, cipher: VaultCipher) -> Brainkeep:
    return Brainkeep(config, cipher=cipher)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "projects" / "shopfront"
    path.mkdir(parents=True)
    return path
