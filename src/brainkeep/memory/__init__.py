"""Session memory — artifact index, note journal, backups, export/import.

Layout (relative to the configured root):
    brain/
    ├── <session-id>/
    │   ├── task.md                    # Task checklist
    │   ├── walkthrough.md             # What was done
    │   ├── implementation_plan.md     # Plan
    │   ├── session_notes.md           # Note journal (append-only)
    │   └── .backups/
    │       └── 20261017T101500123456.md   # Pre-write snapshots (30 days)
    └── tempmediaStorage/              # Reserved, never listed
    knowledge/                         # Knowledge items (counted by status)
    code_tracker/active/<name>_<hash>/ # Known projects
    exports/<timestamp>.bkx            # Encrypted export containers

Credential vaults live inside each project: `.credentials.enc`
(legacy plaintext `.credentials` is migrated on first read).
"""
