"""
Unit tests for the RunOrchestrator.

The process runner is mocked; tests that launch real shells live in
tests/integration.
"""

import io
from pathlib import Path

import pytest
from rich.console import Console

from scriptflow.errors import MissingExportError
from scriptflow.lib.dependency_resolver import DependencyResolver
from scriptflow.orchestrator import (
    COLORS,
    DEBUG_ENV_VAR,
    INTERRUPTED_EXIT_CODE,
    RunOrchestrator,
    exit_status,
)
from scriptflow.parameters import ResolvedParameters
from scriptflow.repository import ScriptRepository
from scriptflow.runtime import POST_ENV_VAR, RuntimeWrapper


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def runner(mocker):
    runner = mocker.Mock()
    runner.launch.return_value = 0
    return runner


def _orchestrator(runner, console, **kwargs):
    kwargs.setdefault("base_env", {"PATH": "/usr/bin"})
    return RunOrchestrator(
        RuntimeWrapper(Path("/opt/runtime.sh")), runner, console, **kwargs
    )


def _discover(scripts):
    repo = ScriptRepository(None, [str(scripts.path)])
    found = repo.discover()
    return found, DependencyResolver(repo.directories, found)


class TestEnvironment:
    """Test the child environment overlay."""

    def test_values_overlay_base_environment(self, script_dir, runner, console):
        scripts = script_dir()
        scripts.add(
            "run.sh",
            "arg DIR Repo",
            'opt {"name": "PROD", "description": "Prod", "type": "boolean"}',
            'opt {"name": "TREE", "description": "Tree", "type": "worktree", "baseDirArg": "DIR"}',
        )
        (script,), _ = _discover(scripts)
        params = ResolvedParameters(
            args={"DIR": "/repo", "OTHER": "/elsewhere"},
            opts={"PROD": False, "TREE": None},
        )

        env = _orchestrator(runner, console).build_environment(script, params)

        assert env == {"PATH": "/usr/bin", "DIR": "/repo", "PROD": "false"}

    def test_debug_flag_is_exported(self, script_dir, runner, console):
        scripts = script_dir()
        scripts.add("run.sh", "name Run")
        (script,), _ = _discover(scripts)

        env = _orchestrator(runner, console, debug=True).build_environment(
            script, ResolvedParameters()
        )

        assert env[DEBUG_ENV_VAR] == "1"

    def test_colors_wrap_around(self):
        assert RunOrchestrator.color_for(0) == COLORS[0]
        assert RunOrchestrator.color_for(len(COLORS) + 1) == COLORS[1]


class TestRun:
    """Test sequential execution."""

    def test_failure_stops_the_run(self, script_dir, runner, console):
        scripts = script_dir()
        scripts.add("a.sh", "name A")
        scripts.add("b.sh", "name B", "after ./a.sh")
        found, resolver = _discover(scripts)
        runner.launch.side_effect = [2, 0]

        result = _orchestrator(runner, console).run(found, ResolvedParameters(), resolver)

        assert result.exit_code == 2
        assert result.failed == "A"
        assert result.completed == []
        assert runner.launch.call_count == 1
        assert "Running B" not in console.file.getvalue()

    def test_all_scripts_run_in_order(self, script_dir, runner, console):
        scripts = script_dir()
        scripts.add("a.sh", "name A")
        scripts.add("b.sh", "name B")
        found, resolver = _discover(scripts)

        result = _orchestrator(runner, console).run(found, ResolvedParameters(), resolver)

        assert result.success
        assert result.completed == ["A", "B"]
        launched = [call.args[0].args[1] for call in runner.launch.call_args_list]
        assert launched == [str(s.path) for s in found]

    def test_captured_lines_are_tagged(self, script_dir, runner, console):
        scripts = script_dir()
        scripts.add("build.sh", "name Build", "arg DIR Repo")
        found, resolver = _discover(scripts)

        def launch(spec, on_line):
            on_line("stdout", "compiling")
            on_line("stderr", "warning: slow")
            return 0

        runner.launch.side_effect = launch
        params = ResolvedParameters(args={"DIR": "/repo"})

        _orchestrator(runner, console).run(found, params, resolver)

        output = console.file.getvalue()
        assert "Running Build..." in output
        assert "    DIR: /repo" in output
        assert "[build.sh] compiling" in output
        assert "[build.sh] warning: slow" in output

    def test_interrupt_returns_130(self, script_dir, runner, console):
        scripts = script_dir()
        scripts.add("a.sh", "name A")
        scripts.add("b.sh", "name B")
        found, resolver = _discover(scripts)
        runner.launch.side_effect = KeyboardInterrupt

        result = _orchestrator(runner, console).run(found, ResolvedParameters(), resolver)

        assert result.exit_code == INTERRUPTED_EXIT_CODE
        assert result.failed == "A"
        assert runner.launch.call_count == 1

    def test_signal_death_maps_to_shell_status(self, script_dir, runner, console):
        scripts = script_dir()
        scripts.add("a.sh", "name A")
        found, resolver = _discover(scripts)
        runner.launch.return_value = -15

        result = _orchestrator(runner, console).run(found, ResolvedParameters(), resolver)

        assert result.exit_code == 143
        assert "failed with exit code 143" in console.file.getvalue()

    def test_exit_status(self):
        assert exit_status(0) == 0
        assert exit_status(3) == 3
        assert exit_status(-9) == 137


class TestRequiredExports:
    """Test passing exported variables between scripts."""

    @pytest.fixture
    def pair(self, script_dir):
        scripts = script_dir()
        scripts.add("deploy.sh", "name Deploy")
        scripts.add("hosts.sh", "name Hosts", "requires ./deploy.sh ORIGIN")
        return _discover(scripts)

    def test_exports_are_injected(self, pair, runner, console):
        found, resolver = pair
        seen_env = []

        def launch(spec, on_line):
            seen_env.append(dict(spec.env))
            if len(seen_env) == 1:
                Path(spec.env[POST_ENV_VAR]).write_text('declare -x ORIGIN="https://x.dev"\n')
            return 0

        runner.launch.side_effect = launch

        result = _orchestrator(runner, console).run(found, ResolvedParameters(), resolver)

        assert result.success
        assert "ORIGIN" not in seen_env[0]
        assert seen_env[1]["ORIGIN"] == "https://x.dev"
        assert "ORIGIN (from deploy.sh): https://x.dev" in console.file.getvalue()

    def test_missing_exports_abort_before_launch(self, pair, runner, console):
        found, resolver = pair

        with pytest.raises(MissingExportError) as exc_info:
            _orchestrator(runner, console).run(found, ResolvedParameters(), resolver)

        assert exc_info.value.script == "Hosts"
        assert "did not export any variables" in exc_info.value.problems[0]
        assert runner.launch.call_count == 1

    def test_missing_variable_is_named(self, pair, runner, console):
        found, resolver = pair

        def launch(spec, on_line):
            Path(spec.env[POST_ENV_VAR]).write_text('declare -x OTHER="1"\n')
            return 0

        runner.launch.side_effect = launch

        with pytest.raises(MissingExportError) as exc_info:
            _orchestrator(runner, console).run(found, ResolvedParameters(), resolver)

        assert exc_info.value.problems == [
            "Variable 'ORIGIN' required by script 'Hosts' was not exported by script 'deploy.sh'"
        ]
