"""
Advanced tool handlers - screenshots, network capture, content scripts, reload.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import tools
from ..types import ToolResult

if TYPE_CHECKING:
    from ...session_manager import SessionManager
    from ..definitions import ContentScriptEvalInput, NetworkRequestsInput, ScreenshotInput


def handle_screenshot(session: SessionManager, args: ScreenshotInput) -> ToolResult:
    shot = tools.screenshot(session, args.target, full_page=args.full_page)
    meta = {k: v for k, v in shot.items() if k != "data"}
    size = f" {meta['width']}x{meta['height']}" if "width" in meta else ""
    return ToolResult.with_image(f"Screenshot{size} of {meta.get('url') or args.target}", shot["data"], data=meta)


def handle_network_requests(session: SessionManager, args: NetworkRequestsInput) -> ToolResult:
    return ToolResult.text(tools.network_requests(session, filter=args.filter, limit=args.limit, clear=args.clear))


def handle_content_script_eval(session: SessionManager, args: ContentScriptEvalInput) -> ToolResult:
    return ToolResult.text(tools.content_script_eval(session, args.expression, world=args.world))


def handle_reload_extension(session: SessionManager, args: Any) -> ToolResult:
    return ToolResult.json(tools.reload_extension(session))


ADVANCED_HANDLERS: dict[str, tuple] = {
    "screenshot": (handle_screenshot, True),
    "network_requests": (handle_network_requests, False),
    "content_script_eval": (handle_content_script_eval, True),
    "reload_extension": (handle_reload_extension, True),
}
