#!/usr/bin/env python3
"""
Parameter Resolver

Makes sure every argument and option declared by the selected scripts has a
value. Stored values are reused as-is (a stored ``false`` or ``null`` counts as
present); only missing keys are prompted for.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .contracts.models import (
    BooleanOpt,
    GlobalState,
    ParamValue,
    ProjectState,
    Script,
    StringOpt,
    WorktreeOpt,
)
from .config.stores import JsonStore
from .integrations.vcs import VCSAdapter
from .prompts import Choice, Prompter

logger = logging.getLogger(__name__)


def env_value(value: ParamValue) -> str:
    """Render a stored value for the environment (booleans as true/false)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class ResolvedParameters:
    """Argument and option values after resolution."""

    args: Dict[str, ParamValue] = field(default_factory=dict)
    opts: Dict[str, Optional[ParamValue]] = field(default_factory=dict)
    new_args: List[str] = field(default_factory=list)
    new_opts: List[str] = field(default_factory=list)

    def environment_for(self, script: Script) -> Dict[str, str]:
        """Environment overlay for one script; unset and null values are left out."""
        env: Dict[str, str] = {}
        for arg in script.args:
            if arg.name in self.args:
                env[arg.name] = env_value(self.args[arg.name])
        for opt in script.opts:
            value = self.opts.get(opt.name)
            if value is not None:
                env[opt.name] = env_value(value)
        return env


class ParameterResolver:
    """Prompts for missing argument and option values."""

    def __init__(self, prompter: Prompter, vcs: Optional[VCSAdapter] = None):
        self.prompter = prompter
        self.vcs = vcs or VCSAdapter()

    def resolve(
        self,
        scripts: Sequence[Script],
        args: Dict[str, ParamValue],
        opts: Dict[str, Optional[ParamValue]],
    ) -> ResolvedParameters:
        """Walk ``scripts`` in execution order, arguments before options."""
        params = ResolvedParameters(args=dict(args), opts=dict(opts))
        for script in scripts:
            logger.debug("Collecting arguments for script: %s", script.name)
            for arg in script.args:
                if arg.name in params.args:
                    continue
                params.args[arg.name] = self.prompter.directory(
                    f"Enter a value for {arg.name} - {arg.description}",
                    default=str(Path.home()),
                )
                params.new_args.append(arg.name)

            logger.debug("Collecting options for script: %s", script.name)
            for opt in script.opts:
                if opt.name in params.opts:
                    continue
                if isinstance(opt, BooleanOpt):
                    resolved, value = True, self.prompter.confirm(
                        opt.description, default=bool(opt.default)
                    )
                elif isinstance(opt, StringOpt):
                    resolved, value = self._resolve_string(opt)
                else:
                    resolved, value = self._resolve_worktree(opt, params.args)
                if resolved:
                    params.opts[opt.name] = value
                    params.new_opts.append(opt.name)
        return params

    def _resolve_string(self, opt: StringOpt) -> Tuple[bool, Optional[str]]:
        while True:
            value = self.prompter.text(opt.description, default=opt.default)
            if not value and opt.optional:
                return False, None
            if opt.pattern and not re.search(opt.pattern, value):
                self.prompter.error(opt.pattern_help or "Invalid input format")
                continue
            if not value:
                self.prompter.error(opt.pattern_help or "Value is required")
                continue
            return True, value

    def _resolve_worktree(
        self, opt: WorktreeOpt, args: Dict[str, ParamValue]
    ) -> Tuple[bool, Optional[str]]:
        base_dir = args.get(opt.base_dir_arg)
        if not isinstance(base_dir, str) or not base_dir:
            logger.warning(
                "Base directory %s not set, skipping %s", opt.base_dir_arg, opt.name
            )
            return False, None

        worktrees = self.vcs.list_worktrees(base_dir)
        if not worktrees and opt.optional:
            logger.debug("No worktrees under %s, leaving %s unset", base_dir, opt.name)
            return False, None

        base = Path(base_dir).expanduser()
        choices: List[Choice[Optional[str]]] = [
            Choice(label=f"Use base directory ({base})", value=None)
        ]
        default_index = 0
        for i, worktree in enumerate(worktrees, start=1):
            choices.append(Choice(label=worktree.display_name(base), value=str(worktree.path)))
            if opt.default is not None and str(worktree.path) == opt.default:
                default_index = i
        return True, self.prompter.select(opt.description, choices, default_index)


def persist_parameters(
    params: ResolvedParameters,
    global_store: JsonStore[GlobalState],
    project_store: JsonStore[ProjectState],
) -> Tuple[bool, bool]:
    """Write resolved values back, skipping any store with nothing new.

    Returns which stores were written: ``(global, project)``.
    """
    wrote_args = bool(params.args) and bool(params.new_args)
    wrote_opts = bool(params.opts) and bool(params.new_opts)
    if wrote_args:
        global_store.set("args", dict(params.args))
        global_store.flush()
    if wrote_opts:
        project_store.set("opts", dict(params.opts))
        project_store.flush()
    return wrote_args, wrote_opts
