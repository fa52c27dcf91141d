"""Console and network buffer readers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .formatting import format_log_line, format_network_line

if TYPE_CHECKING:
    from ..session_manager import SessionManager


def console_logs(
    session: SessionManager,
    *,
    source: str | None = None,
    level: str | None = None,
    limit: int | None = 50,
    clear: bool = False,
    since: float | None = None,
) -> str:
    entries = session.collector.get_entries(source=source, level=level, limit=limit, clear=clear, since=since)
    if not entries:
        return "No console logs found."
    return "\n".join(format_log_line(e) for e in entries)


def network_requests(
    session: SessionManager,
    *,
    filter: str | None = None,
    limit: int | None = 50,
    clear: bool = False,
) -> str:
    entries = session.recorder.get_entries(filter=filter, limit=limit, clear=clear)
    if not entries:
        return "No network requests captured."
    return "\n".join(format_network_line(e) for e in entries)


__all__ = ["console_logs", "network_requests"]
