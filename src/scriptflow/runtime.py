"""
Runtime Wrapper

Each script runs through ``shell/runtime.sh``: the shim checks the target
exists, defines helper functions, sources the target, and snapshots
``export -p`` before and after so variables exported by one script can be
handed to the scripts that require them.
"""

import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Mapping, Set

from .contracts.models import Script
from .integrations.process import LaunchSpec, StdioMode

logger = logging.getLogger(__name__)

PRE_ENV_VAR = "SCRIPTFLOW_PRE_ENV_FILE"
POST_ENV_VAR = "SCRIPTFLOW_POST_ENV_FILE"


def _unquote(value: str) -> str:
    if len(value) > 1 and value[0] == value[-1] == "'":
        return value[1:-1]
    if len(value) > 1 and value[0] == value[-1] == '"':
        # export -p escapes these four inside double quotes
        return re.sub(r'\\([\\"$`])', r"\1", value[1:-1])
    return value


def parse_export_line(line: str):
    """Split ``declare -x NAME="value"`` / ``export NAME=value`` into a pair."""
    eq = line.find("=")
    if eq < 0:
        return None
    head = line[:eq]
    space = head.rfind(" ")
    if space < 0:
        return None
    key = head[space + 1:].strip()
    if not key:
        return None
    return key, _unquote(line[eq + 1:].strip())


def diff_exports(pre_lines: Set[str], post_lines: Set[str]) -> Dict[str, str]:
    """Variables exported (or changed) between two ``export -p`` snapshots."""
    exports: Dict[str, str] = {}
    for line in sorted(post_lines - pre_lines):
        pair = parse_export_line(line)
        if pair is not None:
            exports[pair[0]] = pair[1]
    return exports


def read_exports(pre_file: Path, post_file: Path) -> Dict[str, str]:
    def _lines(path: Path) -> Set[str]:
        try:
            return set(path.read_text(encoding="utf-8", errors="replace").splitlines())
        except OSError:
            return set()

    # No post snapshot means the script exited early: nothing was exported.
    if not post_file.exists() or post_file.stat().st_size == 0:
        return {}
    return diff_exports(_lines(pre_file), _lines(post_file))


class RuntimeWrapper:
    """Builds launch specs for the shell shim and collects exported variables."""

    def __init__(self, runtime_path: Path, shell: str = "bash"):
        self.runtime_path = Path(runtime_path)
        self.shell = shell

    def launch_spec(self, script: Script, env: Mapping[str, str]) -> LaunchSpec:
        return LaunchSpec(
            program=self.shell,
            args=[str(self.runtime_path), str(script.path)],
            env=dict(env),
            stdio=StdioMode.INHERIT if script.inherits_stdin else StdioMode.CAPTURE,
        )

    @contextmanager
    def export_capture(self, env: Dict[str, str]) -> Iterator[Dict[str, str]]:
        """Point the shim at fresh snapshot files; yields the exports dict.

        The yielded dict is filled in when the block exits normally.
        """
        exports: Dict[str, str] = {}
        fd_pre, pre = tempfile.mkstemp(prefix="scriptflow-pre-")
        fd_post, post = tempfile.mkstemp(prefix="scriptflow-post-")
        os.close(fd_pre)
        os.close(fd_post)
        env[PRE_ENV_VAR] = pre
        env[POST_ENV_VAR] = post
        try:
            yield exports
            exports.update(read_exports(Path(pre), Path(post)))
        finally:
            for path in (pre, post):
                try:
                    os.unlink(path)
                except OSError:
                    logger.debug("Could not remove snapshot file %s", path)
