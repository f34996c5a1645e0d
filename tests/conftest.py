"""
Shared test configuration for scriptflow.

Provides:
- Factories for directories of annotated scripts
- A scripted prompter standing in for the terminal
- Settings pointing at isolated state files
"""

import io
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import pytest
from rich.console import Console

from scriptflow.config.settings import Settings
from scriptflow.prompts import Choice


class ScriptDir:
    """Writes annotated scripts into one directory."""

    def __init__(self, path: Path, namespace: str = "vercel"):
        self.path = path
        self.namespace = namespace
        self.path.mkdir(parents=True, exist_ok=True)

    def add(self, file_name: str, *annotations: str, body: str = "") -> Path:
        """Write ``file_name`` with one ``# @ns.<annotation>`` line per entry."""
        lines = ["#!/usr/bin/env bash", ""]
        lines += [f"# @{self.namespace}.{a}" for a in annotations]
        lines += ["", body]
        script = self.path / file_name
        script.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return script


class FakePrompter:
    """Answers prompts from a queue and records every question asked.

    ``select`` answers are choice indexes; ``checkbox`` answers are lists of
    indexes, or ``None`` to accept the pre-checked entries.
    """

    def __init__(self, answers: Optional[Sequence[Any]] = None):
        self.answers: List[Any] = list(answers or [])
        self.asked: List[Tuple[str, str]] = []
        self.errors: List[str] = []
        self.console = Console(file=io.StringIO(), width=120)

    def _next(self, kind: str, message: str) -> Any:
        self.asked.append((kind, message))
        if not self.answers:
            raise AssertionError(f"unexpected {kind} prompt: {message}")
        return self.answers.pop(0)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def confirm(self, message: str, default: bool = False) -> bool:
        return self._next("confirm", message)

    def text(self, message: str, default: Optional[str] = None) -> str:
        return self._next("text", message)

    def directory(self, message: str, default: Optional[str] = None) -> str:
        return self._next("directory", message)

    def select(self, message: str, choices: Sequence[Choice], default_index: int = 0):
        self.last_choices = list(choices)
        return choices[self._next("select", message)].value

    def checkbox(self, message, choices, checked=(), validate=None):
        self.last_choices = list(choices)
        self.last_checked = list(checked)
        while True:
            answer = self._next("checkbox", message)
            indexes = list(checked) if answer is None else answer
            values = [choices[i].value for i in indexes]
            problem = validate(values) if validate else None
            if problem:
                self.errors.append(problem)
                continue
            return values


@pytest.fixture
def script_dir(tmp_path):
    """Factory for script directories under the test's temp dir."""

    def make(name: str = "scripts") -> ScriptDir:
        return ScriptDir(tmp_path / name)

    return make


@pytest.fixture
def fake_prompter():
    return FakePrompter()


@pytest.fixture
def settings(tmp_path):
    """Settings with an empty bundled directory and state kept under tmp_path."""
    bundled = tmp_path / "bundled"
    bundled.mkdir()
    return Settings(
        global_state_path=tmp_path / "home" / ".scriptflow.json",
        bundled_dir=bundled,
    )


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


def pytest_collection_modifyitems(config, items):
    """Add default markers based on test location."""
    for item in items:
        test_path = str(item.fspath)
        if "unit" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "integration" in test_path:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def reset_scriptflow_logger():
    """Undo CLI logging setup so caplog sees scriptflow records."""
    yield
    logger = logging.getLogger("scriptflow")
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
