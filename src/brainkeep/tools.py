"""Named memory operations exposed to a tool dispatcher.

Each tool takes the raw argument dict from the caller and returns text.
`run_tool` is the error boundary: nothing raised by a tool escapes it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from brainkeep.errors import BrainkeepError, ValidationError
from brainkeep.memory.projects import list_known_projects
from brainkeep.validation import require_text, validate_project_path, validate_session_id

if TYPE_CHECKING:
    from brainkeep.core import Brainkeep

logger = logging.getLogger(__name__)

Tool = Callable[[dict], str]

_PROJECT_PATH = {
    "type": "string",
    "description": "Absolute path to the project directory",
}
_OPTIONAL_PROJECT_PATH = {
    "type": "string",
    "description": (
        "Optional. Absolute path to the current project directory. When provided, "
        "only sessions mentioning this project are returned."
    ),
}

TOOL_DEFINITIONS = [
    {
        "name": "recall_latest_task",
        "description": (
            "Quick recall: returns only the task checklist (task.md) and notes of the most "
            "recent session. Use when the user says 'continue' or 'what were we doing'. "
            "Follow up with recall_full_session for more detail."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {"project_path": _OPTIONAL_PROJECT_PATH},
        },
    },
    {
        "name": "list_recent_sessions",
        "description": "List recent sessions with dates, titles and IDs.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "count": {"type": "number", "description": "How many sessions (default 10, max 20)"},
                "project_path": _OPTIONAL_PROJECT_PATH,
                "all_projects": {
                    "type": "boolean",
                    "description": "If true, ignore project_path and list every project.",
                },
            },
        },
    },
    {
        "name": "recall_full_session",
        "description": "Full task, notes, walkthrough and plan of one session.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "Session ID from list_recent_sessions"},
            },
            "required": ["session_id"],
        },
    },
    {
        "name": "list_known_projects",
        "description": "List all tracked projects.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "read_credentials",
        "description": "Read the project's encrypted credential vault.",
        "inputSchema": {
            "type": "object",
            "properties": {"project_path": _PROJECT_PATH},
            "required": ["project_path"],
        },
    },
    {
        "name": "write_credentials",
        "description": "Save credentials to the project's encrypted vault. Updates an existing .gitignore.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project_path": _PROJECT_PATH,
                "credentials": {
                    "type": "object",
                    "description": 'Sections with key-value pairs, e.g. {"Hosting": {"LOGIN": "user"}}',
                },
            },
            "required": ["project_path", "credentials"],
        },
    },
    {
        "name": "write_context_file",
        "description": "Write AGENT_CONTEXT.md into the project directory.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project_path": _PROJECT_PATH,
                "context_text": {"type": "string", "description": "Markdown content to write"},
            },
            "required": ["project_path", "context_text"],
        },
    },
    {
        "name": "append_note",
        "description": (
            "Save an important note (code words, instructions, decisions). Use whenever the "
            "user says 'remember'. Saved to the most recent session unless session_id is given."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "note": {"type": "string", "description": "The note text to save"},
                "tag": {
                    "type": "string",
                    "description": "Optional tag: codeword, instruction, decision, credential, todo",
                },
                "session_id": {"type": "string", "description": "Optional session ID"},
            },
            "required": ["note"],
        },
    },
    {
        "name": "search_notes",
        "description": "Search saved notes across recent sessions by text and/or tag.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Text to search for in notes"},
                "tag": {"type": "string", "description": "Filter by tag"},
                "last_n": {
                    "type": "number",
                    "description": "How many recent sessions to search (default 5, max 20)",
                },
            },
        },
    },
    {
        "name": "get_status",
        "description": "Health check and diagnostics for the memory store.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "export_memory",
        "description": (
            "Export all notes (and optionally credentials) into one encrypted container file. "
            "With a passphrase the container can be imported on another machine."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "include_credentials": {"type": "boolean"},
                "passphrase": {"type": "string"},
            },
        },
    },
    {
        "name": "import_memory",
        "description": "Merge an export container into local memory. Never overwrites or deletes.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "container": {"type": "string", "description": "Container text"},
                "path": {"type": "string", "description": "Absolute path to a container file"},
                "passphrase": {"type": "string"},
            },
        },
    },
]


def truncate_response(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return (
        text[:max_chars]
        + f"\n\n⚠️ [TRUNCATED: {len(text):,} chars total, showing first {max_chars:,}]"
    )


def _clamp_count(value: object, default: int, maximum: int, label: str) -> int:
    if value is None:
        return default
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number") from None
    return max(1, min(count, maximum))


def get_tools(keeper: Brainkeep) -> dict[str, Tool]:
    """Return a dict of tool_name -> callable for memory operations."""
    config = keeper.config

    def recall_latest_task(args: dict) -> str:
        project_path = args.get("project_path") or None
        sessions = keeper.recent_sessions(project_path)
        if not sessions:
            if project_path:
                return f"No recent sessions found for project: {project_path}"
            return "No recent sessions found."

        last = sessions[0]
        task = keeper.sessions.read_artifact(last, "task")
        notes = keeper.sessions.read_artifact(last, "notes")

        text = f"# Last Session ({last.date})\n**ID:** {last.id}\n\n"
        if task.strip():
            text += task
        else:
            text += "_No task.md found. Use recall_full_session to get other artifacts._"
        if notes.strip():
            text += f"\n\n## Notes\n{notes}"
        text += f"\n\n_Need more detail? Call recall_full_session with ID: {last.id}_"
        return text

    def list_recent_sessions(args: dict) -> str:
        count = _clamp_count(
            args.get("count"), config.sessions.list_count, config.sessions.max_list_count, "count"
        )
        project_path = None if args.get("all_projects") else args.get("project_path")
        sessions = keeper.recent_sessions(project_path)[:count]
        if not sessions:
            return "No sessions with artifacts found."

        text = "# Recent Sessions\n\n| # | Date | Title | ID |\n|---|------|-------|----|\n"
        for i, session in enumerate(sessions, 1):
            title = keeper.sessions.title(session).replace("|", "\\|")
            text += f"| {i} | {session.date} | {title} | `{session.id}` |\n"
        text += "\n_Use recall_full_session(session_id) to get full details of any session._"
        return text

    def recall_full_session(args: dict) -> str:
        session_id = validate_session_id(args.get("session_id"))
        session = keeper.sessions.get(session_id)
        if session is None:
            return f"Session not found: {session_id}"
        artifacts = keeper.sessions.full_artifacts(session)
        if not artifacts:
            return f"No artifacts in session: {session_id}"

        text = f"# Session: {session_id}\n\n"
        for kind, heading in (
            ("task", "Tasks"),
            ("notes", "Notes"),
            ("walkthrough", "Walkthrough"),
            ("plan", "Implementation Plan"),
        ):
            if kind in artifacts:
                text += f"## {heading}\n{artifacts[kind]}\n\n"
        return text

    def list_projects(args: dict) -> str:
        projects = list_known_projects(config.tracker_dir)
        lines = "\n".join(f"- **{p.project}** ({p.file_count} tracked files)" for p in projects)
        return f"# Known Projects\n\n{lines or '_None found_'}"

    def read_credentials(args: dict) -> str:
        project_path = validate_project_path(args.get("project_path"))
        creds = keeper.vault.read(project_path)
        if not creds:
            return f"📭 No credentials found in {project_path}"
        text = "# Credentials (🔐 encrypted)\n\n"
        for section, pairs in creds.items():
            text += f"## {section}\n"
            for key, value in pairs.items():
                text += f"- **{key}**: {value}\n"
            text += "\n"
        return text

    def write_credentials(args: dict) -> str:
        project_path = validate_project_path(args.get("project_path"))
        if not isinstance(args.get("credentials"), dict):
            raise ValidationError("credentials must be an object with sections")
        path = keeper.vault.write(project_path, args["credentials"])
        return f"✅ Saved (🔐 encrypted) to: {path}"

    def write_context_file(args: dict) -> str:
        project_path = validate_project_path(args.get("project_path"))
        text = require_text(args.get("context_text"), "context_text")
        path = keeper.write_context_file(project_path, text)
        return f"✅ Saved to: {path}"

    def append_note(args: dict) -> str:
        note = require_text(args.get("note"), "note")
        tag = args.get("tag") or None
        session_path = keeper.note_target(args.get("session_id") or None)
        path = keeper.notes.append(session_path, note, tag)
        tag_label = f" [#{tag.lstrip('#')}]" if tag else ""
        return f"✅ Note saved{tag_label}: {path}"

    def search_notes(args: dict) -> str:
        window = _clamp_count(
            args.get("last_n"), config.notes.search_window, config.notes.max_search_window, "last_n"
        )
        query = args.get("query") or None
        matches = keeper.notes.search(query, args.get("tag") or None, window)
        if not matches:
            return "📭 No notes found." + (f' Query: "{query}"' if query else "")
        text = f"# Found {len(matches)} note(s)\n\n"
        for m in matches:
            text += f"**Session:** {m.title} ({m.date}) `{m.session_id}`\n"
            text += f"{m.entry.text}\n\n---\n\n"
        return text

    def get_status(args: dict) -> str:
        s = keeper.status()
        rows = [
            ("Version", s.version),
            ("Brain directory", s.brain_dir),
            ("Brain exists", "✅" if s.brain_exists else "❌"),
            ("Total sessions", s.total_sessions),
            ("With artifacts", s.sessions_with_artifacts),
            ("Notes files", f"{s.notes_files} ({s.total_notes} total notes)"),
            ("Backup snapshots", s.backup_snapshots),
            ("Knowledge items", s.knowledge_items),
            ("Disk usage", f"~{s.disk_usage_mb} MB"),
            ("Vaults", s.vaults),
            ("Credentials", f"🔐 {s.cipher} encrypted"),
            ("Max response", f"{s.max_response_chars:,} chars"),
        ]
        text = "# Context Server Status\n\n| Property | Value |\n|----------|-------|\n"
        text += "".join(f"| **{name}** | {value} |\n" for name, value in rows)
        return text

    def export_memory(args: dict) -> str:
        result = keeper.transfer.export(
            include_credentials=bool(args.get("include_credentials")),
            passphrase=args.get("passphrase") or None,
        )
        text = (
            f"✅ Exported {result.sessions} session(s), {result.entries} note(s)"
            f", {result.vaults} vault(s) to: {result.path}\n"
        )
        if result.scheme == "machine":
            text += "_No passphrase given: only this machine and user can import it._"
        else:
            text += "_Protected by passphrase: importable on any machine with it._"
        return text

    def import_memory(args: dict) -> str:
        container = args.get("container")
        if not container:
            if not args.get("path"):
                raise ValidationError("container or path is required")
            path = validate_project_path(args.get("path"), "path")
            container = path.read_text(encoding="utf-8")
        report = keeper.transfer.import_container(container, args.get("passphrase") or None)
        text = (
            f"✅ Imported {report.sessions} session(s): {report.added} note(s) added, "
            f"{report.skipped} already present, {report.credential_keys} credential key(s) added"
        )
        if report.rejected:
            text += "\n\nSkipped:\n" + "\n".join(f"- {r}" for r in report.rejected)
        return text

    return {
        "recall_latest_task": recall_latest_task,
        "list_recent_sessions": list_recent_sessions,
        "recall_full_session": recall_full_session,
        "list_known_projects": list_projects,
        "read_credentials": read_credentials,
        "write_credentials": write_credentials,
        "write_context_file": write_context_file,
        "append_note": append_note,
        "search_notes": search_notes,
        "get_status": get_status,
        "export_memory": export_memory,
        "import_memory": import_memory,
    }


def run_tool(
    tools: dict[str, Tool],
    name: str,
    args: dict | None,
    max_chars: int = 50_000,
) -> tuple[str, bool]:
    """Run one tool. Returns (text, is_error); never raises."""
    tool = tools.get(name)
    if tool is None:
        return f"❌ Unknown tool: {name}", True
    try:
        text = tool(args or {})
    except BrainkeepError as e:
        logger.warning("%s failed: %s", name, e)
        return f"❌ {name} failed: {e}", True
    except Exception as e:
        logger.exception("%s failed unexpectedly", name)
        return f"❌ {name} failed: {e}", True
    return truncate_response(text, max_chars), False
