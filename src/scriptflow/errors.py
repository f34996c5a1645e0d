"""Exceptions raised by scriptflow.

Everything the CLI knows how to report derives from ``ScriptflowError``.
``PromptInterrupted`` is the one member that is not a failure: the user backed
out of a prompt and the process exits quietly.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence


class ScriptflowError(Exception):
    """Base class for errors reported to the user as a single message."""


class AnnotationError(ScriptflowError):
    """A script header could not be parsed or failed validation."""

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


@dataclass
class UnresolvedDependency:
    name: str
    referenced_by: List[str]

    def __str__(self) -> str:
        return (
            f"dependency '{self.name}' not found in any known script directory "
            f"(referenced by {', '.join(self.referenced_by)})"
        )


class DependencyResolutionError(ScriptflowError):
    def __init__(self, unresolved: Sequence[UnresolvedDependency]):
        self.unresolved = list(unresolved)
        super().__init__("; ".join(str(u) for u in self.unresolved))


class CyclicDependencyError(ScriptflowError):
    def __init__(self, ordered: Sequence[str], remaining: Sequence[str]):
        self.ordered = list(ordered)
        self.remaining = list(remaining)
        super().__init__(
            "circular dependency between scripts: "
            f"{', '.join(self.remaining)} "
            f"(ordered before the cycle: {', '.join(self.ordered) or 'none'})"
        )


class SelectionError(ScriptflowError):
    """The chosen scripts cannot run together."""


class MissingExportError(ScriptflowError):
    def __init__(self, script: str, problems: Sequence[str]):
        self.script = script
        self.problems = list(problems)
        super().__init__(
            f"script '{script}' is missing required variables: "
            + "; ".join(self.problems)
        )


class StoreError(ScriptflowError):
    """A persisted state file could not be read or written."""


class NonInteractiveInputError(ScriptflowError):
    def __init__(self, prompt: str):
        self.prompt = prompt
        super().__init__(f"no interactive input available for: {prompt}")


class PromptInterrupted(ScriptflowError):
    """The user interrupted an interactive prompt."""
