"""brainkeep — file-backed memory for an AI coding agent."""

__version__ = "4.1.0"
