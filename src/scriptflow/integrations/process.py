"""Process execution utilities.

Commands are always argument lists handed straight to the OS; nothing is
interpolated into a shell command string.
"""

import logging
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 5


@dataclass
class ProcessResult:
    """Result of a captured process execution."""

    code: int
    stdout: str
    stderr: str
    ok: bool = False
    details: str = ""

    def __post_init__(self):
        self.ok = self.code == 0
        if not self.details:
            self.details = self.stderr if self.stderr else "Process completed"


class StdioMode(Enum):
    """How a launched child is wired to the terminal."""

    CAPTURE = "capture"
    INHERIT = "inherit"


@dataclass
class LaunchSpec:
    """Everything needed to start one child process."""

    program: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    stdio: StdioMode = StdioMode.CAPTURE
    cwd: Optional[Path] = None

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]


LineHandler = Callable[[str, str], None]


class ProcessRunner:
    """Execute external processes with proper error handling."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def run(
        self,
        command: List[str],
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> ProcessResult:
        """Run a command to completion and capture its output.

        Failures to start the command are reported as a non-ok result rather
        than raised.
        """
        self.logger.debug("Running: %s", " ".join(command))

        try:
            result = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                env=env,
                timeout=timeout,
                capture_output=True,
                text=True,
            )
            return ProcessResult(
                code=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
                details=result.stderr if result.returncode != 0 else "Success",
            )

        except subprocess.TimeoutExpired:
            return ProcessResult(
                code=-1,
                stdout="",
                stderr="",
                details=f"Command timed out after {timeout} seconds",
            )

        except OSError as e:
            return ProcessResult(
                code=-1,
                stdout="",
                stderr=str(e),
                details=f"Process execution failed: {e}",
            )

    def launch(self, spec: LaunchSpec, on_line: Optional[LineHandler] = None) -> int:
        """Start ``spec`` and block until it exits, returning its exit code.

        In ``CAPTURE`` mode stdout and stderr are read line by line on two
        threads and each line is passed to ``on_line(stream, line)``, where
        stream is ``"stdout"`` or ``"stderr"``. Lines from one stream keep their
        order; the two streams are not ordered relative to each other.

        In ``INHERIT`` mode the child shares this process's terminal.

        A ``KeyboardInterrupt`` while waiting terminates the child and is
        re-raised.
        """
        self.logger.debug("Launching: %s (%s)", " ".join(spec.argv), spec.stdio.value)

        if spec.stdio is StdioMode.INHERIT:
            process = subprocess.Popen(
                spec.argv, env=spec.env, cwd=str(spec.cwd) if spec.cwd else None
            )
            return self._wait(process)

        process = subprocess.Popen(
            spec.argv,
            env=spec.env,
            cwd=str(spec.cwd) if spec.cwd else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            bufsize=1,
        )
        readers = [
            threading.Thread(
                target=self._pump, args=(process.stdout, "stdout", on_line), daemon=True
            ),
            threading.Thread(
                target=self._pump, args=(process.stderr, "stderr", on_line), daemon=True
            ),
        ]
        for reader in readers:
            reader.start()

        code = self._wait(process)
        for reader in readers:
            reader.join()
        return code

    def _pump(self, stream, name: str, on_line: Optional[LineHandler]) -> None:
        with stream:
            for line in stream:
                if on_line is not None:
                    on_line(name, line.rstrip("\r\n"))

    def _wait(self, process: subprocess.Popen) -> int:
        try:
            return process.wait()
        except KeyboardInterrupt:
            self.terminate(process)
            raise

    def terminate(self, process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return
        self.logger.debug("Terminating child process %s", process.pid)
        process.send_signal(signal.SIGTERM)
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def check_tool_available(self, tool_name: str) -> bool:
        """Check if a tool is available in PATH."""
        import shutil

        return shutil.which(tool_name) is not None
