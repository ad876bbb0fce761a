"""Client-side toast coalescing.

Bursts of the same toast are debounced into a single render annotated with an
occurrence count, toasts rendered recently are not repeated, low-value success
acknowledgements are filtered out, and the number of undispatched toasts is
bounded. Two toasts are "the same" when they share a fingerprint: level,
category (``general`` when absent) and the first 50 characters of the message.

All bookkeeping runs on one event loop. Timers come from a :class:`Scheduler`
so tests can drive time by hand; cancelled handles never fire.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Literal, Protocol

from .config import ToastPosition, ToastSettings, get_toast_settings
from .metrics import (
    TOASTS_COALESCED_TOTAL,
    TOASTS_DISPATCHED_TOTAL,
    TOASTS_EVICTED_TOTAL,
    TOASTS_SUPPRESSED_TOTAL,
)
from .sinks import DisplayOptions, DisplaySink, RichConsoleSink

logger = logging.getLogger(__name__)

Level = Literal["success", "error", "info", "warning"]
Priority = Literal["low", "medium", "high"]

LEVELS: tuple[Level, ...] = ("success", "error", "info", "warning")
FINGERPRINT_MESSAGE_CHARS = 50


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...


class LoopScheduler:
    """Schedule callbacks on an asyncio loop, the running one by default."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


@dataclass(slots=True, frozen=True)
class ToastOptions:
    category: str | None = None
    priority: Priority = "medium"
    suppress_duplicates: bool = True
    position: ToastPosition | None = None
    duration_ms: int | None = None


@dataclass(slots=True)
class _PendingToast:
    level: Level
    message: str
    display: DisplayOptions
    count: int = 1
    handle: ScheduledCall | None = None


class ToastCoalescer:
    """Debounce, deduplicate and filter toasts before they reach a sink."""

    def __init__(
        self,
        sink: DisplaySink,
        settings: ToastSettings | None = None,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._sink = sink
        self._settings = settings or get_toast_settings()
        self._scheduler = scheduler or LoopScheduler()
        self._enabled = self._settings.enabled
        self._pending: dict[str, _PendingToast] = {}
        self._recent: dict[str, ScheduledCall] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    @staticmethod
    def fingerprint(level: str, message: str, category: str | None = None) -> str:
        return f"{level}:{category or 'general'}:{message[:FINGERPRINT_MESSAGE_CHARS]}"

    def is_recent(self, fingerprint: str) -> bool:
        return fingerprint in self._recent

    # Leveled entry points ---------------------------------------------------------------------
    def success(self, message: str, **options) -> bool:
        return self.notify("success", message, ToastOptions(**options))

    def error(self, message: str, **options) -> bool:
        return self.notify("error", message, replace(ToastOptions(**options), priority="high"))

    def info(self, message: str, **options) -> bool:
        return self.notify("info", message, ToastOptions(**options))

    def warning(self, message: str, **options) -> bool:
        return self.notify("warning", message, ToastOptions(**options))

    def notify(self, level: Level, message: str, options: ToastOptions | None = None) -> bool:
        """Queue a toast; return False when it was dropped instead."""

        _check_level(level)
        opts = options or ToastOptions()

        reason = self._suppression_reason(level, opts)
        if reason is not None:
            self._drop(level, message, reason)
            return False

        key = self.fingerprint(level, message, opts.category)
        if opts.suppress_duplicates and key in self._recent:
            self._drop(level, message, "duplicate")
            return False

        display = self._display_options(level, opts)
        entry = self._pending.get(key)
        if entry is not None:
            entry.count += 1
            entry.message = f"{message} ({entry.count})"
            entry.display = display
            self._arm(key, entry)
            TOASTS_COALESCED_TOTAL.labels(level=level).inc()
            return True

        if len(self._pending) >= self._settings.max_queue_size:
            self._evict_oldest()
        entry = _PendingToast(level=level, message=message, display=display)
        self._pending[key] = entry
        self._arm(key, entry)
        return True

    def force_show(self, level: Level, message: str, options: ToastOptions | None = None) -> None:
        """Render immediately, ignoring the switch, filters and the queue."""

        _check_level(level)
        display = self._display_options(level, options or ToastOptions())
        self._dispatch(level, message, display, path="forced")

    def group(self, messages: Iterable[str], level: Level, options: ToastOptions | None = None) -> bool:
        items = list(messages)
        if not items:
            return False
        if len(items) == 1:
            return self.notify(level, items[0], options)
        grouped = f"Multiple updates: {', '.join(items[:2])}"
        if len(items) > 2:
            grouped += f" and {len(items) - 2} more"
        return self.notify(level, grouped, options)

    def clear_all(self) -> None:
        for entry in self._pending.values():
            if entry.handle is not None:
                entry.handle.cancel()
        for handle in self._recent.values():
            handle.cancel()
        self._pending.clear()
        self._recent.clear()

    async def wait_idle(self, *, poll_interval: float = 0.05, timeout: float | None = None) -> None:
        """Wait until every pending toast has been dispatched or evicted."""

        async def _poll() -> None:
            while self._pending:
                await asyncio.sleep(poll_interval)

        await asyncio.wait_for(_poll(), timeout)

    # Internals --------------------------------------------------------------------------------
    def _suppression_reason(self, level: Level, opts: ToastOptions) -> str | None:
        important = opts.priority == "high" or _matches(opts.category, self._settings.always_show)
        if important:
            return None
        if not self._enabled:
            return "disabled"
        if level == "success" and _matches(opts.category, self._settings.suppress_success_for):
            return "low_value"
        return None

    def _drop(self, level: Level, message: str, reason: str) -> None:
        TOASTS_SUPPRESSED_TOTAL.labels(level=level, reason=reason).inc()
        logger.debug("Dropped %s toast (%s): %s", level, reason, message)

    def _display_options(self, level: Level, opts: ToastOptions) -> DisplayOptions:
        duration = opts.duration_ms
        if duration is None:
            duration = self._settings.error_duration_ms if level == "error" else self._settings.default_duration_ms
        return DisplayOptions(position=opts.position or self._settings.default_position, duration_ms=duration)

    def _arm(self, key: str, entry: _PendingToast) -> None:
        if entry.handle is not None:
            entry.handle.cancel()
        entry.handle = self._scheduler.call_later(
            self._settings.debounce_seconds, lambda: self._fire(key, entry)
        )

    def _evict_oldest(self) -> None:
        oldest_key = next(iter(self._pending))
        oldest = self._pending.pop(oldest_key)
        if oldest.handle is not None:
            oldest.handle.cancel()
        TOASTS_EVICTED_TOTAL.labels(level=oldest.level).inc()
        logger.debug("Evicted pending toast %s", oldest_key)

    def _fire(self, key: str, entry: _PendingToast) -> None:
        # A replaced or evicted entry must not render.
        if self._pending.get(key) is not entry:
            return
        del self._pending[key]
        entry.handle = None
        self._remember(key)
        self._dispatch(entry.level, entry.message, entry.display, path="queued")

    def _remember(self, key: str) -> None:
        previous = self._recent.pop(key, None)
        if previous is not None:
            previous.cancel()
        self._recent[key] = self._scheduler.call_later(
            self._settings.recent_seconds, lambda: self._recent.pop(key, None)
        )

    def _dispatch(self, level: Level, message: str, display: DisplayOptions, *, path: str) -> None:
        TOASTS_DISPATCHED_TOTAL.labels(level=level, path=path).inc()
        logger.debug("Showing %s toast: %s", level, message)
        getattr(self._sink, level)(message, display)


def _check_level(level: str) -> None:
    if level not in LEVELS:
        raise ValueError(f"Unknown toast level: {level!r}")


def _matches(category: str | None, labels: Iterable[str]) -> bool:
    if not category:
        return False
    return any(label in category for label in labels)


@lru_cache
def get_coalescer() -> ToastCoalescer:
    """Return the process-wide coalescer rendering to the console."""

    return ToastCoalescer(RichConsoleSink())
