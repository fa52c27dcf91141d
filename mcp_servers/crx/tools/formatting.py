"""Plain-text renderers for tool output."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..console import LogEntry
    from ..network import NetworkEntry


def clock(timestamp_ms: float) -> str:
    """HH:MM:SS.mmm (UTC)."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%H:%M:%S.%f")[:-3]


def iso_time(timestamp_ms: float) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat(timespec="milliseconds")


def format_tree(node: dict[str, Any] | None, indent: int = 0) -> str:
    """Indented ``[role] "name" value="..."`` lines; role ``none`` is skipped but its children kept."""
    if not node:
        return ""
    out: list[str] = []

    def _walk(n: dict[str, Any], depth: int) -> None:
        role = n.get("role") or ""
        if role and role != "none":
            line = f"{'  ' * depth}[{role}]"
            if n.get("name"):
                line += f' "{n["name"]}"'
            if n.get("value"):
                line += f' value="{n["value"]}"'
            out.append(line)
        for child in n.get("children") or []:
            _walk(child, depth + 1)

    _walk(node, indent)
    return "\n".join(out) + ("\n" if out else "")


def format_log_line(entry: LogEntry) -> str:
    url_part = f" ({entry.url})" if entry.url else ""
    return f"[{clock(entry.timestamp)}] [{entry.source}] {entry.level.upper()}: {entry.text}{url_part}"


def format_network_line(entry: NetworkEntry) -> str:
    status = entry.status if entry.status is not None else "---"
    mime = f" ({entry.mime_type})" if entry.mime_type else ""
    return f"[{clock(entry.timestamp)}] {entry.method} {status} {entry.url}{mime}"


__all__ = ["clock", "format_log_line", "format_network_line", "format_tree", "iso_time"]
