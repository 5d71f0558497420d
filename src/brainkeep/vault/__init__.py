"""Encrypted per-project credential vault."""
