"""Settings and persisted state for scriptflow."""

from .settings import Settings, load_settings
from .stores import JsonStore, open_global_store, open_project_store

__all__ = [
    "Settings",
    "load_settings",
    "JsonStore",
    "open_global_store",
    "open_project_store",
]
