#!/usr/bin/env python3
"""
Settings Loader

Typed settings for scriptflow. Values come from the dataclass defaults, then an
optional YAML file (``$SCRIPTFLOW_CONFIG`` or
``~/.config/scriptflow/config.yaml``, under a ``scriptflow:`` key), then
``SCRIPTFLOW_*`` environment variables.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

PACKAGE_DIR = Path(__file__).resolve().parents[1]
ENV_PREFIX = "SCRIPTFLOW_"


@dataclass
class Settings:
    """Resolved configuration for one invocation."""

    annotation_namespace: str = "vercel"
    global_state_path: Path = field(
        default_factory=lambda: Path.home() / ".scriptflow.json"
    )
    project_state_name: str = ".scriptflow-app.json"
    bundled_dir: Path = PACKAGE_DIR / "scripts"
    runtime_path: Path = PACKAGE_DIR / "shell" / "runtime.sh"
    shell: str = "bash"
    script_extensions: List[str] = field(default_factory=lambda: [".sh"])
    log_level: str = "WARNING"
    log_format: str = "text"

    def project_state_path(self, cwd: Optional[Path] = None) -> Path:
        return (Path.cwd() if cwd is None else cwd) / self.project_state_name

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["Settings"] = None) -> "Settings":
        """Overlay known keys from ``data`` onto ``base`` (or defaults)."""
        settings = base or cls()
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            current = getattr(settings, f.name)
            if isinstance(current, Path):
                value = Path(str(value)).expanduser()
            elif isinstance(current, list):
                if isinstance(value, str):
                    value = [v.strip() for v in value.split(",") if v.strip()]
                else:
                    value = [str(v) for v in value]
            else:
                value = str(value)
            setattr(settings, f.name, value)
        return settings

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = ENV_PREFIX,
        base: Optional["Settings"] = None,
    ) -> "Settings":
        """Create settings from ``SCRIPTFLOW_*`` environment variables."""
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for key, value in environ.items():
            if key.startswith(prefix):
                data[key[len(prefix):].lower()] = value
        return cls.from_mapping(data, base)

    @classmethod
    def from_file(cls, config_path: Path, base: Optional["Settings"] = None) -> "Settings":
        """Load settings from a YAML file, ignoring it if missing or unreadable."""
        return cls.from_mapping(_read_yaml(config_path).get("scriptflow", {}) or {}, base)

    def validate(self) -> List[str]:
        """Validate settings and return a list of problems."""
        errors = []
        if not self.annotation_namespace:
            errors.append("annotation_namespace must not be empty")
        elif not re.fullmatch(r"[A-Za-z0-9_-]+", self.annotation_namespace):
            errors.append(
                f"annotation_namespace {self.annotation_namespace!r} may only contain "
                "letters, digits, '_' and '-'"
            )
        if self.log_format not in ("text", "json"):
            errors.append(f"log_format must be 'text' or 'json', got {self.log_format!r}")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"unknown log_level {self.log_level!r}")
        if not self.script_extensions:
            errors.append("script_extensions must list at least one extension")
        return errors


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    explicit = environ.get(f"{ENV_PREFIX}CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".config" / "scriptflow" / "config.yaml"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    environ = os.environ if environ is None else environ
    settings = Settings.from_file(default_config_path(environ))
    # CONFIG and DEBUG are consumed elsewhere, not settings fields.
    return Settings.from_env(environ, base=settings)
