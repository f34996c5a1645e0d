"""
Interactive prompts built on rich.

``Prompter`` is the only place that reads from the terminal. Ctrl-C inside a
prompt becomes ``PromptInterrupted``; end of input becomes
``NonInteractiveInputError``.
"""

import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, Iterator, List, Optional, Sequence, TypeVar

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt

from .errors import NonInteractiveInputError, PromptInterrupted

T = TypeVar("T")

SelectionValidator = Callable[[List[T]], Optional[str]]


@dataclass
class Choice(Generic[T]):
    label: str
    value: T
    description: Optional[str] = None


class Prompter:
    """Terminal prompts: confirm, text, directory, select and checkbox."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    @contextmanager
    def _asking(self, message: str) -> Iterator[None]:
        try:
            yield
        except KeyboardInterrupt as e:
            raise PromptInterrupted() from e
        except EOFError as e:
            raise NonInteractiveInputError(message) from e

    def error(self, message: str) -> None:
        self.console.print(f"[red]{escape(message)}[/red]")

    def confirm(self, message: str, default: bool = False) -> bool:
        with self._asking(message):
            return Confirm.ask(escape(message), default=default, console=self.console)

    def text(self, message: str, default: Optional[str] = None) -> str:
        with self._asking(message):
            if default is None:
                return Prompt.ask(escape(message), console=self.console, default="")
            return Prompt.ask(escape(message), console=self.console, default=default)

    def directory(self, message: str, default: Optional[str] = None) -> str:
        """Ask for a path until it names an existing directory."""
        while True:
            value = self.text(message, default).strip()
            path = Path(value).expanduser()
            if value and path.is_dir():
                return str(path.resolve())
            self.console.print(f"[red]Not a directory: {escape(value)}[/red]")

    def select(self, message: str, choices: Sequence[Choice[T]], default_index: int = 0) -> T:
        self.console.print(f"[bold]{escape(message)}[/bold]")
        for i, choice in enumerate(choices, start=1):
            self.console.print(f"  [cyan]{i}[/cyan]) {escape(choice.label)}")
        with self._asking(message):
            picked = IntPrompt.ask(
                "Choose",
                console=self.console,
                choices=[str(i) for i in range(1, len(choices) + 1)],
                default=default_index + 1,
                show_choices=False,
            )
        return choices[picked - 1].value

    def checkbox(
        self,
        message: str,
        choices: Sequence[Choice[T]],
        checked: Sequence[int] = (),
        validate: Optional[SelectionValidator] = None,
    ) -> List[T]:
        """Pick any number of choices by number; Enter keeps the checked ones."""
        selected = sorted(set(checked))
        while True:
            self.console.print(f"[bold]{escape(message)}[/bold]")
            for i, choice in enumerate(choices, start=1):
                mark = "[green]x[/green]" if i - 1 in selected else " "
                line = f"  [{mark}] [cyan]{i:>2}[/cyan] {escape(choice.label)}"
                if choice.description:
                    line += f" [dim]{escape(choice.description)}[/dim]"
                self.console.print(line)
            default = " ".join(str(i + 1) for i in selected)
            with self._asking(message):
                answer = Prompt.ask(
                    "Numbers separated by spaces or commas",
                    console=self.console,
                    default=default,
                )
            indexes = self._parse_indexes(answer, len(choices))
            if indexes is None:
                self.console.print("[red]Enter numbers from the list above[/red]")
                continue
            values = [choices[i].value for i in indexes]
            problem = validate(values) if validate else None
            if problem:
                self.console.print(f"[red]{escape(problem)}[/red]")
                selected = indexes
                continue
            return values

    @staticmethod
    def _parse_indexes(answer: str, count: int) -> Optional[List[int]]:
        indexes: List[int] = []
        for token in re.split(r"[\s,]+", answer.strip()):
            if not token:
                continue
            if not token.isdigit() or not 1 <= int(token) <= count:
                return None
            if int(token) - 1 not in indexes:
                indexes.append(int(token) - 1)
        return sorted(indexes)
