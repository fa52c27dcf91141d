"""
Core tool handlers - loading, navigation, storage, worker eval, console, input.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ... import tools
from ..types import ToolResult

if TYPE_CHECKING:
    from ...session_manager import SessionManager
    from ..definitions import (
        ClickInput,
        ConsoleLogsInput,
        EvalServiceWorkerInput,
        ExtensionLoadInput,
        NavigateInput,
        SnapshotInput,
        StorageGetInput,
        StorageSetInput,
        TypeInput,
        WaitForInput,
    )


def handle_extension_load(session: SessionManager, args: ExtensionLoadInput) -> ToolResult:
    result = tools.extension_load(session, args.extension_path, chrome_flags=args.chrome_flags, url=args.url)
    return ToolResult.json(result)


def handle_navigate(session: SessionManager, args: NavigateInput) -> ToolResult:
    result = tools.navigate(
        session,
        args.url,
        wait_until=args.wait_until,
        clear_network=args.clear_network,
        clear_console=args.clear_console,
    )
    return ToolResult.json(result)


def handle_snapshot(session: SessionManager, args: SnapshotInput) -> ToolResult:
    return ToolResult.json(tools.snapshot(session, args.target))


def handle_storage_get(session: SessionManager, args: StorageGetInput) -> ToolResult:
    return ToolResult.json(tools.storage_get(session, args.keys, area=args.area, direct=args.direct))


def handle_storage_set(session: SessionManager, args: StorageSetInput) -> ToolResult:
    return ToolResult.json(tools.storage_set(session, args.data, area=args.area))


def handle_eval_service_worker(session: SessionManager, args: EvalServiceWorkerInput) -> ToolResult:
    return ToolResult.text(tools.eval_service_worker(session, args.expression))


def handle_console_logs(session: SessionManager, args: ConsoleLogsInput) -> ToolResult:
    text = tools.console_logs(
        session,
        source=args.source,
        level=args.level,
        limit=args.limit,
        clear=args.clear,
        since=args.since,
    )
    return ToolResult.text(text)


def handle_click(session: SessionManager, args: ClickInput) -> ToolResult:
    return ToolResult.json(tools.click(session, args.selector, double_click=args.double_click, target=args.target))


def handle_type(session: SessionManager, args: TypeInput) -> ToolResult:
    result = tools.type_text(
        session,
        args.selector,
        args.text,
        clear=args.clear,
        submit=args.submit,
        target=args.target,
    )
    return ToolResult.json(result)


def handle_wait_for(session: SessionManager, args: WaitForInput) -> ToolResult:
    result = tools.wait_for(session, args.selector, state=args.state, timeout_ms=args.timeout, target=args.target)
    return ToolResult.json(result)


CORE_HANDLERS: dict[str, tuple] = {
    "extension_load": (handle_extension_load, False),
    "navigate": (handle_navigate, True),
    "snapshot": (handle_snapshot, True),
    "storage_get": (handle_storage_get, True),
    "storage_set": (handle_storage_set, True),
    "eval_service_worker": (handle_eval_service_worker, True),
    # Buffers survive relaunches and are readable without a browser.
    "console_logs": (handle_console_logs, False),
    "click": (handle_click, True),
    "type": (handle_type, True),
    "wait_for": (handle_wait_for, True),
}
