"""Page interaction tools: navigation, snapshots, screenshots, input."""

from __future__ import annotations

import base64
import binascii
import io
import time
from typing import TYPE_CHECKING, Any

from PIL import Image, UnidentifiedImageError

from ..errors import TargetPageNotFound
from .formatting import format_tree

if TYPE_CHECKING:
    from ..session_manager import SessionManager


def navigate(
    session: SessionManager,
    url: str,
    *,
    wait_until: str = "domcontentloaded",
    clear_network: bool = False,
    clear_console: bool = False,
) -> dict[str, Any]:
    if clear_network:
        session.recorder.clear()
    if clear_console:
        session.collector.clear()
    page = session.get_active_page()
    status = page.goto(url, wait_until=wait_until, timeout=30.0)
    return {"url": url, "title": page.title(), "status": status or 0}


def snapshot(session: SessionManager, target: str = "page") -> dict[str, Any]:
    page = session.get_target_page(target)
    tree = page.accessibility_snapshot()
    return {
        "url": page.url,
        "title": page.title(),
        "accessibilityTree": format_tree(tree) if tree else "(empty page)",
    }


def image_size(data_b64: str) -> tuple[int, int] | None:
    try:
        with Image.open(io.BytesIO(base64.b64decode(data_b64))) as img:
            return img.size
    except (binascii.Error, UnidentifiedImageError, OSError):
        return None


def screenshot(session: SessionManager, target: str = "page", *, full_page: bool = False) -> dict[str, Any]:
    """PNG of the page, popup or side panel; falls back to the active page."""
    try:
        page = session.get_target_page(target)
    except TargetPageNotFound:
        page = session.get_active_page()
    data = page.screenshot(full_page=full_page)
    out: dict[str, Any] = {"data": data, "mimeType": "image/png", "url": page.url}
    size = image_size(data) if data else None
    if size:
        out["width"], out["height"] = size
    return out


def click(session: SessionManager, selector: str, *, double_click: bool = False, target: str = "page") -> dict[str, Any]:
    page = session.get_target_page(target)
    page.click(selector, click_count=2 if double_click else 1)
    return {"success": True, "selector": selector, "doubleClick": double_click}


def type_text(
    session: SessionManager,
    selector: str,
    text: str,
    *,
    clear: bool = False,
    submit: bool = False,
    target: str = "page",
) -> dict[str, Any]:
    page = session.get_target_page(target)
    if clear:
        # Triple-click selects the whole value.
        page.click(selector, click_count=3)
        page.press_key("Backspace")
    page.type_text(selector, text)
    if submit:
        page.press_key("Enter")
    return {"success": True, "selector": selector, "typed": f"{len(text)} chars"}


def wait_for(
    session: SessionManager,
    selector: str,
    *,
    state: str = "visible",
    timeout_ms: int = 10000,
    target: str = "page",
) -> dict[str, Any]:
    page = session.get_target_page(target)
    start = time.time()
    page.wait_for_selector(selector, state=state, timeout=timeout_ms / 1000)
    elapsed = int((time.time() - start) * 1000)
    return {"success": True, "selector": selector, "state": state, "elapsedMs": elapsed}


__all__ = ["click", "image_size", "navigate", "screenshot", "snapshot", "type_text", "wait_for"]
