"""Configuration loading from environment variables and brainkeep.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_ROOT = Path.home() / ".gemini" / "antigravity"
_CONFIG_FILENAME = "brainkeep.toml"


@dataclass
class SessionsConfig:
    """Session listing configuration."""

    list_count: int = 10
    max_list_count: int = 20
    reserved_dir: str = "tempmediaStorage"


@dataclass
class NotesConfig:
    """Note journal configuration."""

    search_window: int = 5
    max_search_window: int = 20
    backup_retention_days: int = 30


@dataclass
class ServerConfig:
    """Tool server configuration."""

    max_response_chars: int = 50_000


@dataclass
class BrainkeepConfig:
    """Top-level configuration. Built once at startup and passed down explicitly."""

    root: Path = _DEFAULT_ROOT
    sessions: SessionsConfig = field(default_factory=SessionsConfig)
    notes: NotesConfig = field(default_factory=NotesConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = "INFO"

    @property
    def brain_dir(self) -> Path:
        return self.root / "brain"

    @property
    def knowledge_dir(self) -> Path:
        return self.root / "knowledge"

    @property
    def tracker_dir(self) -> Path:
        return self.root / "code_tracker" / "active"

    @property
    def export_dir(self) -> Path:
        return self.root / "exports"

    @property
    def registry_file(self) -> Path:
        return self.root / "vaults.txt"


def load_config(config_path: Path | None = None) -> BrainkeepConfig:
    """Load configuration from environment variables and optional brainkeep.toml.

    Priority: environment variables > brainkeep.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.brainkeep/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".brainkeep" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    sessions_data = file_data.get("sessions", {})
    notes_data = file_data.get("notes", {})
    server_data = file_data.get("server", {})

    root = os.getenv("BRAINKEEP_ROOT", file_data.get("root"))

    return BrainkeepConfig(
        root=Path(root).expanduser() if root else _DEFAULT_ROOT,
        sessions=SessionsConfig(
            list_count=int(sessions_data.get("list_count", 10)),
            max_list_count=int(sessions_data.get("max_list_count", 20)),
            reserved_dir=sessions_data.get("reserved_dir", "tempmediaStorage"),
        ),
        notes=NotesConfig(
            search_window=int(notes_data.get("search_window", 5)),
            max_search_window=int(notes_data.get("max_search_window", 20)),
            backup_retention_days=int(notes_data.get("backup_retention_days", 30)),
        ),
        server=ServerConfig(
            max_response_chars=int(
                os.getenv(
                    "BRAINKEEP_MAX_RESPONSE_CHARS",
                    server_data.get("max_response_chars", 50_000),
                )
            ),
        ),
        log_level=os.getenv("BRAINKEEP_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
