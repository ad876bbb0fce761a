"""Display sinks that render toasts released by the coalescer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from rich.console import Console
from rich.text import Text


@dataclass(slots=True, frozen=True)
class DisplayOptions:
    position: str = "top-right"
    duration_ms: int = 3000


class DisplaySink(Protocol):
    def success(self, message: str, options: DisplayOptions) -> None: ...

    def error(self, message: str, options: DisplayOptions) -> None: ...

    def info(self, message: str, options: DisplayOptions) -> None: ...

    def warning(self, message: str, options: DisplayOptions) -> None: ...


@dataclass(slots=True)
class DisplayedToast:
    level: str
    message: str
    options: DisplayOptions


class RecordingSink:
    """Sink keeping every rendered toast in memory for inspection."""

    def __init__(self) -> None:
        self.shown: list[DisplayedToast] = []

    def success(self, message: str, options: DisplayOptions) -> None:
        self.shown.append(DisplayedToast("success", message, options))

    def error(self, message: str, options: DisplayOptions) -> None:
        self.shown.append(DisplayedToast("error", message, options))

    def info(self, message: str, options: DisplayOptions) -> None:
        self.shown.append(DisplayedToast("info", message, options))

    def warning(self, message: str, options: DisplayOptions) -> None:
        self.shown.append(DisplayedToast("warning", message, options))

    def messages(self, level: str | None = None) -> list[str]:
        return [toast.message for toast in self.shown if level is None or toast.level == level]


class RichConsoleSink:
    """Render toasts as single styled lines on a rich console.

    Terminal output cannot auto-dismiss, so ``duration_ms`` is ignored; the
    horizontal half of ``position`` picks the alignment.
    """

    STYLES = {
        "success": ("✔", "bold green"),
        "error": ("✖", "bold red"),
        "info": ("ℹ", "bold cyan"),
        "warning": ("⚠", "bold yellow"),
    }

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def _render(self, level: str, message: str, options: DisplayOptions) -> None:
        icon, style = self.STYLES[level]
        line = Text.assemble((f"{icon} ", style), (message, style if level == "error" else ""))
        justify = "right" if options.position.endswith("right") else "left"
        self.console.print(line, justify=justify)

    def success(self, message: str, options: DisplayOptions) -> None:
        self._render("success", message, options)

    def error(self, message: str, options: DisplayOptions) -> None:
        self._render("error", message, options)

    def info(self, message: str, options: DisplayOptions) -> None:
        self._render("info", message, options)

    def warning(self, message: str, options: DisplayOptions) -> None:
        self._render("warning", message, options)
