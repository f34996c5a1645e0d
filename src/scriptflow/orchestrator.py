#!/usr/bin/env python3
"""
Run Orchestrator

Executes the resolved, parameterized scripts one at a time. Each script gets
the next color of a small palette, is announced, and then runs through the
runtime wrapper. Captured output is re-emitted line by line with the script's
tag; scripts that read from the terminal are attached to it directly. The
first nonzero exit code stops the run.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from .contracts.models import Script, ScriptIdentity
from .errors import MissingExportError
from .integrations.process import ProcessRunner
from .lib.dependency_resolver import DependencyResolver
from .parameters import ResolvedParameters
from .runtime import RuntimeWrapper
from .utils.json_logger import log_with_context

logger = logging.getLogger(__name__)

COLORS = ["green", "yellow", "blue", "magenta", "cyan", "red"]
INTERRUPTED_EXIT_CODE = 130
DEBUG_ENV_VAR = "SCRIPTFLOW_DEBUG"


def exit_status(code: int) -> int:
    """Map a negative wait status (killed by signal N) to the shell's 128+N."""
    return 128 - code if code < 0 else code


def _sparkle() -> str:
    enc = (getattr(sys.stdout, "encoding", None) or "").lower()
    return "✨" if "utf" in enc else "*"


@dataclass
class RunResult:
    """Outcome of one orchestrated run."""

    exit_code: int = 0
    completed: List[str] = field(default_factory=list)
    failed: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class RunOrchestrator:
    """Runs scripts sequentially and multiplexes their output."""

    def __init__(
        self,
        wrapper: RuntimeWrapper,
        runner: Optional[ProcessRunner] = None,
        console: Optional[Console] = None,
        debug: bool = False,
        base_env: Optional[Mapping[str, str]] = None,
    ):
        self.wrapper = wrapper
        self.runner = runner or ProcessRunner()
        self.console = console or Console()
        self.debug = debug
        self.base_env = base_env

    @staticmethod
    def color_for(index: int) -> str:
        return COLORS[index % len(COLORS)]

    def build_environment(
        self, script: Script, params: ResolvedParameters
    ) -> Dict[str, str]:
        """Current environment overlaid with the script's resolved values."""
        env = dict(os.environ if self.base_env is None else self.base_env)
        env.update(params.environment_for(script))
        if self.debug:
            env[DEBUG_ENV_VAR] = "1"
        return env

    def required_exports(
        self,
        script: Script,
        resolver: DependencyResolver,
        exports: Mapping[ScriptIdentity, Dict[str, str]],
    ) -> Dict[str, str]:
        """Collect variables this script requires from scripts that already ran.

        Raises:
            MissingExportError: a required script exported nothing, or a listed
                variable is missing from its exports.
        """
        values: Dict[str, str] = {}
        problems: List[str] = []
        for requirement in script.requires:
            target = resolver.resolve_name(requirement.script)
            exported = exports.get(target.identity) if target is not None else None
            if not exported:
                problems.append(
                    f"Script '{script.name}' requires variables from "
                    f"'{requirement.script}', but that script did not export any variables"
                )
                continue
            for name in requirement.variables:
                if name in exported:
                    values[name] = exported[name]
                else:
                    problems.append(
                        f"Variable '{name}' required by script '{script.name}' "
                        f"was not exported by script '{requirement.script}'"
                    )
        if problems:
            raise MissingExportError(script.name, problems)
        return values

    def run(
        self,
        scripts: Sequence[Script],
        params: ResolvedParameters,
        resolver: DependencyResolver,
    ) -> RunResult:
        """Run ``scripts`` in order, stopping at the first failure."""
        result = RunResult()
        exports: Dict[ScriptIdentity, Dict[str, str]] = {}

        for index, script in enumerate(scripts):
            color = self.color_for(index)
            env = self.build_environment(script, params)
            self._announce(script, color, params)

            required = self.required_exports(script, resolver, exports)
            for name, value in required.items():
                env[name] = value
                requirement = next(
                    r.script for r in script.requires if name in r.variables
                )
                self.console.print(
                    Text.assemble(
                        "    ", (name, color), f" (from {requirement}): {value}"
                    )
                )

            log_with_context(
                logger,
                logging.DEBUG,
                f"Starting {script.name}",
                script=script.name,
                identity=str(script.identity),
                phase="execute",
            )
            try:
                with self.wrapper.export_capture(env) as exported:
                    spec = self.wrapper.launch_spec(script, env)
                    code = self.runner.launch(spec, self._line_printer(script, color))
            except KeyboardInterrupt:
                self.console.print(
                    f"[yellow]Interrupted while running {escape(script.name)}[/yellow]"
                )
                result.exit_code = INTERRUPTED_EXIT_CODE
                result.failed = script.name
                return result

            exports[script.identity] = exported
            if exported:
                logger.debug("Exports from %s: %s", script.name, sorted(exported))

            if code != 0:
                code = exit_status(code)
                log_with_context(
                    logger,
                    logging.DEBUG,
                    f"{script.name} exited with code {code}",
                    script=script.name,
                    identity=str(script.identity),
                    phase="exit",
                )
                self.console.print(
                    f"[red]{escape(script.name)} failed with exit code {code}[/red]"
                )
                result.exit_code = code
                result.failed = script.name
                return result
            result.completed.append(script.name)

        return result

    def _announce(self, script: Script, color: str, params: ResolvedParameters) -> None:
        self.console.print(
            Text.assemble("\n", (f"{_sparkle()} Running {script.name}...", f"bold {color}"))
        )
        for name, value in params.environment_for(script).items():
            self.console.print(Text.assemble("    ", (name, color), f": {value}"))

    def _line_printer(self, script: Script, color: str):
        tag = f"[{script.tag}]"

        def on_line(stream: str, line: str) -> None:
            self.console.print(Text.assemble((tag, color), " ", line), soft_wrap=True)

        return on_line
