"""Console log collector.

One process-wide ring buffer fed by CDP event buses (pages, the service
worker). Reads and writes happen on different threads, so every access goes
through the lock.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .cdp import CdpEventBus, describe_exception, remote_object_text

if TYPE_CHECKING:
    from .browser import Page

MAX_ENTRIES = 1000

SOURCES = ("page", "background-worker", "popup", "side-panel", "content-script")
LEVELS = ("debug", "log", "info", "warn", "error")

# Wire names older clients send.
SOURCE_ALIASES = {"service-worker": "background-worker", "sidepanel": "side-panel"}

LEVEL_MAP = {
    "log": "log",
    "info": "info",
    "warn": "warn",
    "warning": "warn",
    "error": "error",
    "assert": "error",
    "debug": "debug",
    "verbose": "debug",
    "trace": "debug",
    "dir": "log",
    "table": "log",
}

SEVERITY_ORDER = {level: rank for rank, level in enumerate(LEVELS)}


def map_level(raw: str | None) -> str:
    return LEVEL_MAP.get(str(raw or "").lower(), "log")


def normalize_source(source: str | None) -> str | None:
    if source is None:
        return None
    return SOURCE_ALIASES.get(source, source)


def page_source(url: str, extension_id: str | None) -> str:
    """Log source for a page URL: the extension's popup/side panel, else ``page``."""
    if extension_id and url.startswith(f"chrome-extension://{extension_id}/"):
        path = url.lower()
        if "popup" in path:
            return "popup"
        if "sidepanel" in path or "side_panel" in path:
            return "side-panel"
    return "page"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: float
    source: str
    level: str
    text: str
    url: str | None = None


class LogCollector:
    def __init__(self, max_entries: int = MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._entries: list[LogEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.max_entries:
                del self._entries[: len(self._entries) - self.max_entries]

    def get_entries(
        self,
        source: str | None = None,
        level: str | None = None,
        limit: int | None = None,
        clear: bool = False,
        since: float | None = None,
    ) -> list[LogEntry]:
        """Filtered snapshot: since, then source, then minimum level, then tail limit.

        ``clear`` empties the whole buffer, not only the returned entries.
        """
        source = normalize_source(source)
        with self._lock:
            result = list(self._entries)
            if clear:
                self._entries.clear()

        if since is not None:
            result = [e for e in result if e.timestamp >= since]
        if source:
            result = [e for e in result if e.source == source]
        if level and level in SEVERITY_ORDER:
            floor = SEVERITY_ORDER[level]
            result = [e for e in result if SEVERITY_ORDER.get(e.level, 0) >= floor]
        if limit is not None and limit > 0:
            result = result[-limit:]
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ─────────────────────────────────────────────────────────────────────────
    # CDP wiring
    # ─────────────────────────────────────────────────────────────────────────

    def _console_entry(self, params: dict[str, Any], source: str, url: str | None) -> LogEntry:
        args = params.get("args") or []
        text = " ".join(remote_object_text(a) for a in args)
        return LogEntry(_now_ms(), source, map_level(params.get("type")), text, url or None)

    def _exception_entry(self, params: dict[str, Any], source: str, url: str | None) -> LogEntry:
        details = params.get("exceptionDetails") or {}
        text = describe_exception(details, default="Uncaught exception")
        return LogEntry(_now_ms(), source, "error", text, details.get("url") or url or None)

    def attach_to_page(self, page: Page, source: str | None = None, *, extension_id: str | None = None) -> None:
        """Collect console output of ``page``.

        Without an explicit ``source`` the tag follows the page URL at event time,
        and output from the extension's isolated worlds is tagged content-script.
        """
        isolated: set[Any] = set()
        ext_origin = f"chrome-extension://{extension_id}" if extension_id else None

        def _source(params: dict[str, Any]) -> str:
            if params.get("executionContextId") in isolated:
                return "content-script"
            return source or page_source(page.url, extension_id)

        def _on_context(event: dict[str, Any]) -> None:
            ctx = (event.get("params") or {}).get("context") or {}
            aux = ctx.get("auxData") or {}
            if ext_origin and aux.get("type") == "isolated" and str(ctx.get("origin") or "").startswith(ext_origin):
                isolated.add(ctx.get("id"))

        def _on_console(event: dict[str, Any]) -> None:
            params = event.get("params") or {}
            self.add(self._console_entry(params, _source(params), page.url))

        def _on_exception(event: dict[str, Any]) -> None:
            params = event.get("params") or {}
            ctx_id = (params.get("exceptionDetails") or {}).get("executionContextId")
            self.add(self._exception_entry(params, _source({"executionContextId": ctx_id}), page.url))

        page.on("Runtime.executionContextCreated", _on_context)
        page.on("Runtime.consoleAPICalled", _on_console)
        page.on("Runtime.exceptionThrown", _on_exception)

    def attach_to_worker(self, bus: CdpEventBus, url: str | None = None) -> None:
        """Collect console output of the background service worker."""

        def _on_console(event: dict[str, Any]) -> None:
            self.add(self._console_entry(event.get("params") or {}, "background-worker", url))

        def _on_exception(event: dict[str, Any]) -> None:
            self.add(self._exception_entry(event.get("params") or {}, "background-worker", url))

        bus.on("Runtime.consoleAPICalled", _on_console)
        bus.on("Runtime.exceptionThrown", _on_exception)


__all__ = [
    "LEVELS",
    "LEVEL_MAP",
    "LogCollector",
    "LogEntry",
    "MAX_ENTRIES",
    "SEVERITY_ORDER",
    "SOURCES",
    "map_level",
    "normalize_source",
    "page_source",
]
