"""Git worktree integration."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from .process import ProcessRunner

logger = logging.getLogger(__name__)

DETACHED = "(detached)"


@dataclass
class Worktree:
    """One entry of ``git worktree list --porcelain``."""

    path: Path
    head: str
    branch: str = DETACHED

    def relative_path(self, base_dir: Path) -> Path:
        try:
            return self.path.relative_to(base_dir)
        except ValueError:
            return self.path

    def display_name(self, base_dir: Path) -> str:
        relative = self.relative_path(base_dir)
        if str(relative) in ("", "."):
            return self.branch
        return f"{self.branch} ({relative})"


def parse_worktree_porcelain(output: str) -> List[Worktree]:
    """Parse blank-line separated porcelain records.

    Records missing ``worktree`` or ``HEAD`` are skipped; records without a
    ``branch`` line are reported as detached.
    """
    worktrees: List[Worktree] = []
    record: Dict[str, str] = {}

    def flush() -> None:
        if "worktree" in record and "HEAD" in record:
            worktrees.append(
                Worktree(
                    path=Path(record["worktree"]),
                    head=record["HEAD"],
                    branch=record.get("branch", DETACHED),
                )
            )
        record.clear()

    for line in output.splitlines():
        if not line.strip():
            flush()
            continue
        key, _, value = line.partition(" ")
        if key == "branch":
            value = value[len("refs/heads/"):] if value.startswith("refs/heads/") else value
        record[key] = value
    flush()

    return worktrees


class VCSAdapter:
    """Adapter for the git operations scriptflow needs."""

    def __init__(self, runner: Optional[ProcessRunner] = None, git_path: str = "git"):
        self.runner = runner or ProcessRunner()
        self.git_path = git_path

    def list_worktrees(self, base_dir: Union[str, Path]) -> List[Worktree]:
        """List worktrees of the repository at ``base_dir``.

        Any failure (missing directory, not a repository, git not installed)
        yields an empty list.
        """
        base = Path(base_dir).expanduser()
        if not base.is_dir():
            logger.debug("Worktree base %s is not a directory", base)
            return []
        result = self.runner.run(
            [self.git_path, "worktree", "list", "--porcelain"], cwd=base
        )
        if not result.ok:
            logger.debug("git worktree list failed in %s: %s", base, result.details)
            return []
        return parse_worktree_porcelain(result.stdout)


def create_vcs_adapter(runner: Optional[ProcessRunner] = None) -> VCSAdapter:
    """Create a VCS adapter instance."""
    return VCSAdapter(runner)
