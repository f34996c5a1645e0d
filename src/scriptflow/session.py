#!/usr/bin/env python3
"""
Run Session

Wires one invocation together: discovery, dependency ordering, selection,
parameter resolution and execution. Stores are opened once at the start and
written at most once per concern.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console

from .annotations import AnnotationParser
from .config.settings import Settings
from .config.stores import open_global_store, open_project_store
from .contracts.models import Script
from .errors import ScriptflowError, SelectionError
from .integrations.process import ProcessRunner
from .integrations.vcs import VCSAdapter, create_vcs_adapter
from .lib.dependency_resolver import DependencyResolver
from .orchestrator import RunOrchestrator
from .parameters import ParameterResolver, persist_parameters
from .prompts import Choice, Prompter
from .repository import ScriptRepository
from .runtime import RuntimeWrapper

logger = logging.getLogger(__name__)


def unmet_requirements(
    selected: Sequence[Script], resolver: DependencyResolver
) -> List[str]:
    """Describe every ``requires`` target that is not part of ``selected``."""
    chosen = {s.identity for s in selected}
    problems = []
    for script in selected:
        for requirement in script.requires:
            target = resolver.resolve_name(requirement.script)
            if target is None or target.identity not in chosen:
                problems.append(
                    f"Script '{script.name}' requires '{requirement.script}' "
                    "to be selected as well"
                )
    return problems


class RunSession:
    """One invocation of the interactive runner."""

    def __init__(
        self,
        settings: Settings,
        prompter: Optional[Prompter] = None,
        console: Optional[Console] = None,
        runner: Optional[ProcessRunner] = None,
        vcs: Optional[VCSAdapter] = None,
        debug: bool = False,
        cwd: Optional[Path] = None,
    ):
        self.settings = settings
        self.console = console or Console()
        self.prompter = prompter or Prompter(self.console)
        self.runner = runner or ProcessRunner()
        self.vcs = vcs or create_vcs_adapter(self.runner)
        self.debug = debug
        self.cwd = cwd

        problems = settings.validate()
        if problems:
            raise ScriptflowError("Invalid configuration: " + "; ".join(problems))

        self.global_store = open_global_store(settings.global_state_path)
        self.project_store = open_project_store(settings.project_state_path(cwd))

    def repository(self) -> ScriptRepository:
        return ScriptRepository(
            self.settings.bundled_dir,
            self.global_store.get("script_dirs"),
            AnnotationParser(self.settings.annotation_namespace),
            self.settings.script_extensions,
        )

    def select(
        self, ordered: Sequence[Script], resolver: DependencyResolver, replay: bool
    ) -> List[Script]:
        """Choose the scripts to run; the result keeps the resolved order."""
        previous = set(self.project_store.get("selected"))

        if replay:
            selected = [s for s in ordered if s.key in previous]
            dropped = previous - {s.key for s in selected}
            if dropped:
                logger.debug("Replay ignores scripts no longer found: %s", sorted(dropped))
            problems = unmet_requirements(selected, resolver)
            if problems:
                raise SelectionError("; ".join(problems))
            return selected

        def validate(values: List[Script]) -> Optional[str]:
            if not values:
                return "Select at least one script"
            problems = unmet_requirements(values, resolver)
            return problems[0] if problems else None

        choices = [
            Choice(label=s.name, value=s, description=s.description) for s in ordered
        ]
        checked = [i for i, s in enumerate(ordered) if s.key in previous]
        picked = self.prompter.checkbox(
            "Select scripts to run", choices, checked=checked, validate=validate
        )
        picked_ids = {s.identity for s in picked}
        selected = [s for s in ordered if s.identity in picked_ids]

        self.project_store.set("selected", [s.key for s in selected])
        self.project_store.flush()
        return selected

    def run(self, replay: bool = False) -> int:
        """Run the whole pipeline and return the process exit code."""
        repository = self.repository()
        scripts = repository.discover()
        if not scripts:
            self.console.print(
                "[yellow]No scripts found. Register a directory with "
                "'scriptflow add-script-dir <path>'.[/yellow]"
            )
            return 0

        resolver = DependencyResolver(repository.directories, scripts)
        ordered = resolver.order()

        selected = self.select(ordered, resolver, replay)
        if not selected:
            self.console.print("[yellow]No scripts selected[/yellow]")
            return 0
        self.console.print(
            "[dim]Execution order: " + " -> ".join(s.name for s in selected) + "[/dim]"
        )

        if not self.runner.check_tool_available(self.settings.shell):
            raise ScriptflowError(f"Shell '{self.settings.shell}' was not found in PATH")

        params = ParameterResolver(self.prompter, self.vcs).resolve(
            selected,
            self.global_store.get("args"),
            self.project_store.get("opts"),
        )
        persist_parameters(params, self.global_store, self.project_store)

        orchestrator = RunOrchestrator(
            RuntimeWrapper(self.settings.runtime_path, self.settings.shell),
            self.runner,
            self.console,
            debug=self.debug,
        )
        result = orchestrator.run(selected, params, resolver)
        if result.success:
            count = len(result.completed)
            self.console.print(
                f"[green]Completed {count} script{'' if count == 1 else 's'}[/green]"
            )
        else:
            logger.debug(
                "Run stopped at %s after completing %s", result.failed, result.completed
            )
        return result.exit_code
