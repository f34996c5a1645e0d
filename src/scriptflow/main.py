#!/usr/bin/env python3
"""
scriptflow Main Entry Point

Running ``scriptflow`` with no subcommand discovers the available scripts,
asks which ones to run, resolves their parameters and runs them in dependency
order. Subcommands manage the registered script directories and create new
annotated scripts.
"""

import re
import shlex
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .annotations import AnnotationParser
from .config.settings import Settings, load_settings
from .config.stores import open_global_store
from .contracts.models import (
    BooleanOpt,
    Origin,
    ScriptArg,
    ScriptOpt,
    StringOpt,
    WorktreeOpt,
)
from .errors import PromptInterrupted, ScriptflowError
from .prompts import Choice, Prompter
from .session import RunSession
from .utils.json_logger import configure_logging

app = typer.Typer(
    name="scriptflow",
    help="Interactive runner for annotated shell scripts",
    rich_markup_mode="rich",
)
console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


# Cross-platform safe success/failure symbols (avoid Unicode on legacy Windows)
def _symbol(ok: bool) -> str:
    enc = (getattr(sys.stdout, "encoding", None) or "").lower()
    if "utf" in enc:
        return "✓" if ok else "✗"
    return "OK" if ok else "FAIL"


@contextmanager
def _reporting_errors() -> Iterator[None]:
    """Turn scriptflow errors into exit codes."""
    try:
        yield
    except PromptInterrupted:
        raise typer.Exit(code=0)
    except ScriptflowError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"scriptflow {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    replay: bool = typer.Option(
        False, "--replay", "-r", help="Run the previous selection without asking"
    ),
    debug: bool = typer.Option(
        False, "--debug", "-d", help="Verbose logging; scripts see SCRIPTFLOW_DEBUG=1"
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
):
    """Select, configure and run annotated scripts in dependency order."""
    settings = load_settings()
    problems = settings.validate()
    if problems:
        err_console.print(
            f"[red]Error:[/red] Invalid configuration: {escape('; '.join(problems))}"
        )
        raise typer.Exit(code=1)
    configure_logging("DEBUG" if debug else settings.log_level, settings.log_format)
    ctx.obj = {"settings": settings, "debug": debug}

    if ctx.invoked_subcommand is not None:
        return

    with _reporting_errors():
        exit_code = RunSession(settings, console=console, debug=debug).run(replay=replay)
    if exit_code != 0:
        raise typer.Exit(code=exit_code)


@app.command("add-script-dir")
def add_script_dir(
    ctx: typer.Context,
    directory: Path = typer.Argument(..., help="Directory to scan for scripts"),
):
    """Add a directory to scan for scripts."""
    absolute = directory.expanduser().resolve()
    if not absolute.exists():
        err_console.print(f"[red]Error: Directory {absolute} does not exist[/red]")
        raise typer.Exit(code=1)
    if not absolute.is_dir():
        err_console.print(f"[red]Error: {absolute} is not a directory[/red]")
        raise typer.Exit(code=1)

    with _reporting_errors():
        store = open_global_store(_settings(ctx).global_state_path)
        dirs: List[str] = list(store.get("script_dirs"))
        if str(absolute) in dirs:
            console.print(f"[yellow]Directory {absolute} is already configured[/yellow]")
            return
        dirs.append(str(absolute))
        store.set("script_dirs", dirs)
        store.flush()
    console.print(f"[green]{_symbol(True)} Added {absolute} to script directories[/green]")


@app.command("remove-script-dir")
def remove_script_dir(
    ctx: typer.Context,
    directory: Optional[Path] = typer.Argument(
        None, help="Directory to remove (asked for when omitted)"
    ),
):
    """Remove a directory from script scanning."""
    with _reporting_errors():
        store = open_global_store(_settings(ctx).global_state_path)
        dirs: List[str] = list(store.get("script_dirs"))
        if not dirs:
            console.print("[yellow]No external directories configured[/yellow]")
            return

        if directory is not None:
            target = str(directory.expanduser().resolve())
            if target not in dirs:
                err_console.print(f"[red]Directory {target} is not configured[/red]")
                raise typer.Exit(code=1)
        else:
            target = Prompter(console).select(
                "Select a directory to remove",
                [Choice(label=d, value=d) for d in dirs],
            )

        store.set("script_dirs", [d for d in dirs if d != target])
        store.flush()
    console.print(f"[green]{_symbol(True)} Removed {target} from script directories[/green]")


@app.command("list-script-dirs")
def list_script_dirs(ctx: typer.Context):
    """List the registered script directories in priority order."""
    with _reporting_errors():
        dirs = open_global_store(_settings(ctx).global_state_path).get("script_dirs")
    if not dirs:
        console.print("[yellow]No external directories configured[/yellow]")
        console.print("[dim]  Use 'scriptflow add-script-dir <directory>' to add one[/dim]")
        return
    console.print("[bold blue]Script directories:[/bold blue]")
    for i, directory in enumerate(dirs, start=1):
        missing = "" if Path(directory).is_dir() else " [red](missing)[/red]"
        console.print(f"  [{i}] {escape(directory)}{missing}")


def _list_scripts(ctx: typer.Context) -> None:
    settings = _settings(ctx)
    with _reporting_errors():
        scripts = RunSession(settings, console=console).repository().discover()

    if not scripts:
        console.print("[yellow]No scripts found.[/yellow]")
        console.print(
            "[dim]  Use 'scriptflow add-script-dir <directory>' to add a directory "
            "with scripts[/dim]"
        )
        return

    table = Table(title="Available Scripts")
    table.add_column("Name", style="bold")
    table.add_column("Description", max_width=30)
    table.add_column("Source", max_width=30)
    table.add_column("Arguments")
    table.add_column("Options")
    for script in scripts:
        source = (
            "[blue]bundled[/blue]"
            if script.origin == Origin.bundled
            else f"[green]{escape(str(script.identity.directory))}[/green]"
        )
        table.add_row(
            escape(script.name),
            escape(script.description) if script.description else "[dim]No description[/dim]",
            source,
            ", ".join(a.name for a in script.args) or "[dim]none[/dim]",
            ", ".join(o.name for o in script.opts) or "[dim]none[/dim]",
        )
    console.print(table)
    plural = "" if len(scripts) == 1 else "s"
    console.print(f"[dim]Total: {len(scripts)} script{plural}[/dim]")


@app.command("list-scripts")
def list_scripts(ctx: typer.Context):
    """List all available scripts in a table."""
    _list_scripts(ctx)


@app.command("ls", hidden=True)
def ls(ctx: typer.Context):
    """Alias for list-scripts."""
    _list_scripts(ctx)


def _ask_filename(prompter: Prompter, target_dir: Path) -> str:
    while True:
        stem = prompter.text("Script filename (without .sh extension)").strip()
        if stem.endswith(".sh"):
            stem = stem[:-3]
        if not FILENAME_PATTERN.match(stem):
            prompter.error("Use letters, digits, '_' and '-' only")
            continue
        if (target_dir / f"{stem}.sh").exists():
            prompter.error(f"{stem}.sh already exists in {target_dir}")
            continue
        return f"{stem}.sh"


def _ask_name(prompter: Prompter, message: str, taken: List[str]) -> str:
    while True:
        name = prompter.text(message).strip()
        if not re.fullmatch(r"[A-Za-z0-9_]+", name):
            prompter.error("Names may only contain letters, digits and '_'")
        elif name in taken:
            prompter.error(f"{name} is already declared")
        else:
            return name


def _ask_args(prompter: Prompter) -> List[ScriptArg]:
    args: List[ScriptArg] = []
    while prompter.confirm("Add an argument (@arg)?", default=False):
        name = _ask_name(prompter, "Argument name", [a.name for a in args])
        description = prompter.text("Argument description").strip()
        args.append(ScriptArg(name=name, description=description or name))
    return args


def _ask_opts(prompter: Prompter, args: List[ScriptArg]) -> List[ScriptOpt]:
    opts: List[ScriptOpt] = []
    kinds = [Choice("boolean", "boolean"), Choice("string", "string")]
    if args:
        kinds.append(Choice("worktree", "worktree"))
    while prompter.confirm("Add an option (@opt)?", default=False):
        kind = prompter.select("Option type", kinds)
        name = _ask_name(prompter, "Option name", [o.name for o in opts])
        description = prompter.text("Option description").strip() or name
        optional = prompter.confirm("Is this option optional?", default=False)
        if kind == "boolean":
            default = prompter.confirm("Default value", default=False)
            opts.append(
                BooleanOpt(name=name, description=description, optional=optional, default=default)
            )
        elif kind == "string":
            pattern = prompter.text("Validation regex (empty for none)").strip() or None
            pattern_help = None
            if pattern:
                pattern_help = prompter.text("Message shown when the value does not match").strip() or None
            opts.append(
                StringOpt(
                    name=name,
                    description=description,
                    optional=optional,
                    pattern=pattern,
                    pattern_help=pattern_help,
                )
            )
        else:
            base = prompter.select(
                "Argument holding the repository directory",
                [Choice(a.name, a.name) for a in args],
            )
            opts.append(
                WorktreeOpt(
                    name=name, description=description, optional=optional, base_dir_arg=base
                )
            )
    return opts


@app.command("new")
def new_script(ctx: typer.Context):
    """Create a new annotated script in a registered directory."""
    settings = _settings(ctx)
    prompter = Prompter(console)

    with _reporting_errors():
        session = RunSession(settings, prompter=prompter, console=console)
        dirs: List[str] = session.global_store.get("script_dirs")
        if not dirs:
            err_console.print(
                "[red]Error:[/red] No script directories configured. "
                "Add one with 'scriptflow add-script-dir <path>'"
            )
            raise typer.Exit(code=1)

        console.print("[bold cyan]Creating a new script...[/bold cyan]")
        if len(dirs) == 1:
            target_dir = Path(dirs[0])
        else:
            target_dir = Path(
                prompter.select(
                    "Select target script directory", [Choice(d, d) for d in dirs]
                )
            )

        filename = _ask_filename(prompter, target_dir)
        name = prompter.text("Script display name", default=filename[:-3]).strip()
        description = prompter.text("Description (empty for none)").strip() or None

        existing = session.repository().discover()
        after: List[str] = []
        if existing and prompter.confirm("Add dependencies (@after)?", default=False):
            resolved_target = target_dir.resolve()
            picked = prompter.checkbox(
                "Scripts that must run first",
                [
                    Choice(label=s.name, value=s, description=s.tag)
                    for s in existing
                ],
            )
            for script in picked:
                if script.origin == Origin.bundled or script.identity.directory == resolved_target:
                    after.append(script.tag)
                else:
                    after.append(str(script.path))

        args = _ask_args(prompter)
        opts = _ask_opts(prompter, args)
        inherit_stdin = prompter.confirm(
            "Does the script read from the terminal (@stdin inherit)?", default=False
        )

        header = AnnotationParser(settings.annotation_namespace).render_header(
            name or filename[:-3],
            description=description,
            after=after,
            args=args,
            opts=opts,
            inherit_stdin=inherit_stdin,
        )
        path = target_dir / filename
        body = f"set -euo pipefail\n\necho {shlex.quote('Running ' + (name or filename))}\n"
        try:
            path.write_text(f"#!/usr/bin/env bash\n{header}\n{body}", encoding="utf-8")
            path.chmod(0o755)
        except OSError as e:
            raise ScriptflowError(f"Failed to write script {path}: {e}") from e

    console.print(f"[green]{_symbol(True)} Created script:[/green] {path}")
    if after:
        console.print(f"  Dependencies: [dim]{', '.join(after)}[/dim]")
    if args:
        console.print(f"  Arguments: [dim]{len(args)}[/dim]")
    if opts:
        console.print(f"  Options: [dim]{len(opts)}[/dim]")


if __name__ == "__main__":
    app()
