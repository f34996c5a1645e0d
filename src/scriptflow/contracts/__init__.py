"""Typed records for scripts and persisted state."""
