from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from rich.console import Console
from rich.markdown import Markdown


class ConsoleSink:
    """Writes progress and markdown messages to a rich console (stderr by default)."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(stderr=True)

    def progress(self, message: str) -> None:
        self.console.print(f"[dim]… {message}[/dim]")

    def markdown(self, text: str) -> None:
        self.console.print(Markdown(text))


@dataclass
class RecordingSink:
    """Keeps every message in order; handy for tests and for embedding the pipeline."""

    events: list[tuple[Literal["progress", "markdown"], str]] = field(default_factory=list)

    def progress(self, message: str) -> None:
        self.events.append(("progress", message))

    def markdown(self, text: str) -> None:
        self.events.append(("markdown", text))

    @property
    def progress_messages(self) -> list[str]:
        return [t for kind, t in self.events if kind == "progress"]

    @property
    def markdown_messages(self) -> list[str]:
        return [t for kind, t in self.events if kind == "markdown"]
