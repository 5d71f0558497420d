"""Argument checks enforced by the core before touching storage."""

from __future__ import annotations

import re
from pathlib import Path

from brainkeep.errors import ValidationError

_SESSION_ID_RE = re.compile(r"^[a-f0-9-]+$", re.IGNORECASE)


def validate_project_path(value: object, label: str = "project_path") -> Path:
    """Require an absolute path to an existing location."""
    if not value or not isinstance(value, str):
        raise ValidationError(f"{label} is required")
    path = Path(value)
    if not path.is_absolute():
        raise ValidationError(f"{label} must be an absolute path: {value}")
    if not path.exists():
        raise ValidationError(f"{label} not found: {value}")
    return path


def validate_session_id(value: object) -> str:
    """Session IDs are UUID-like tokens: hex digits and dashes only."""
    if not value or not isinstance(value, str):
        raise ValidationError("session_id is required")
    if not _SESSION_ID_RE.match(value):
        raise ValidationError(f"Invalid session_id format: {value}")
    return value


def require_text(value: object, label: str) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError(f"{label} is required and must be a string")
    return value
