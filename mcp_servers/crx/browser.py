"""Page and browser handles over raw CDP.

Browser owns the launched Chrome process, one browser-level command connection
and a target-discovery bus. Page wraps one page target with a lazily opened
command connection plus an event bus that subscribers hook into via ``on()``.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from .cdp import CdpConnection, CdpError, CdpEventBus, EventListener, describe_exception
from .config import CrxConfig
from .errors import BrowserLaunchFailed
from .http_client import DevToolsEndpoint, HttpClientError
from .launcher import BrowserLauncher

logger = logging.getLogger("mcp.crx.browser")

# waitUntil -> Page.lifecycleEvent name
LIFECYCLE_EVENTS = {
    "load": "load",
    "domcontentloaded": "DOMContentLoaded",
    "networkidle0": "networkIdle",
    "networkidle2": "networkAlmostIdle",
}

_KEY_CODES = {
    "Enter": 13,
    "Tab": 9,
    "Escape": 27,
    "Backspace": 8,
    "Delete": 46,
    "ArrowUp": 38,
    "ArrowDown": 40,
    "ArrowLeft": 37,
    "ArrowRight": 39,
}

_ELEMENT_CENTER_JS = """(() => {
  const el = document.querySelector(%s);
  if (!el) return null;
  el.scrollIntoView({block: 'center', inline: 'center'});
  const r = el.getBoundingClientRect();
  return {x: r.left + r.width / 2, y: r.top + r.height / 2};
})()"""

_SELECTOR_STATE_JS = """(() => {
  const el = document.querySelector(%s);
  if (!el) return 'detached';
  const style = getComputedStyle(el);
  const r = el.getBoundingClientRect();
  const visible = style.visibility !== 'hidden' && style.display !== 'none' && r.width > 0 && r.height > 0;
  return visible ? 'visible' : 'hidden';
})()"""


def decode_remote_value(result: dict[str, Any] | None) -> Any:
    """Runtime.evaluate result -> Python value; undefined and null map to None."""
    if not isinstance(result, dict):
        return None
    if result.get("type") == "undefined":
        return None
    if result.get("type") == "object" and result.get("subtype") == "null":
        return None
    return result.get("value")


class Page:
    """High-level handle for one page target."""

    def __init__(
        self,
        target_id: str,
        ws_url: str,
        *,
        url: str = "",
        timeout: float = 30.0,
        connect: Callable[[str], CdpConnection] | None = None,
    ) -> None:
        self.target_id = target_id
        self.ws_url = ws_url
        self.timeout = timeout
        self._url = url
        self._connect = connect or (lambda u: CdpConnection(u, timeout=timeout))
        self._conn: CdpConnection | None = None
        self._conn_lock = threading.Lock()
        self._enabled = False
        self.closed = False
        self._bus = CdpEventBus(
            ws_url,
            name=f"crx-page-{target_id[:8]}",
            setup=[("Runtime.enable", {}), ("Network.enable", {}), ("Page.enable", {})],
        )
        self._bus.on("Page.frameNavigated", self._on_frame_navigated)

    def __repr__(self) -> str:
        return f"Page(target_id={self.target_id!r}, url={self._url!r})"

    # ─────────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────────

    def on(self, method: str, listener: EventListener) -> None:
        """Subscribe to a CDP event on this page (Runtime/Network/Page domains)."""
        self._bus.on(method, listener)

    def start_events(self, wait: float = 2.0) -> bool:
        return self._bus.start(wait=wait)

    def _on_frame_navigated(self, event: dict[str, Any]) -> None:
        frame = (event.get("params") or {}).get("frame") or {}
        if not frame.get("parentId") and isinstance(frame.get("url"), str):
            self._url = frame["url"]

    # ─────────────────────────────────────────────────────────────────────────
    # Connection
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def url(self) -> str:
        return self._url

    def set_url(self, url: str) -> None:
        self._url = url

    @property
    def conn(self) -> CdpConnection:
        with self._conn_lock:
            if self._conn is None or self._conn.closed:
                self._conn = self._connect(self.ws_url)
                self._enabled = False
            return self._conn

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        return self.conn.send(method, params, timeout=timeout)

    def _enable(self) -> None:
        if self._enabled:
            return
        conn = self.conn
        conn.send("Page.enable")
        conn.send("Network.enable")
        conn.send("Page.setLifecycleEventsEnabled", {"enabled": True})
        self._enabled = True

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def goto(self, url: str, *, wait_until: str = "domcontentloaded", timeout: float | None = None) -> int | None:
        """Navigate and wait for the lifecycle event; returns the document HTTP status."""
        timeout = self.timeout if timeout is None else timeout
        lifecycle = LIFECYCLE_EVENTS.get(wait_until, "DOMContentLoaded")
        self._enable()
        conn = self.conn
        # Lifecycle events from earlier navigations are stale.
        conn.take_events(lambda ev: ev.get("method") in {"Page.lifecycleEvent", "Network.responseReceived"})

        res = conn.send("Page.navigate", {"url": url}, timeout=timeout)
        error_text = res.get("errorText")
        if error_text:
            raise CdpError(f"Navigation to {url} failed: {error_text}")

        loader_id = res.get("loaderId")
        if loader_id:
            ev = conn.wait_for(
                lambda e: e.get("method") == "Page.lifecycleEvent"
                and (e.get("params") or {}).get("name") == lifecycle
                and (e.get("params") or {}).get("loaderId") == loader_id,
                timeout=timeout,
            )
            if ev is None:
                raise CdpError(f"Navigation timeout of {timeout:.0f}s exceeded waiting for {wait_until}")
        self._url = url
        return self._document_status(loader_id)

    def _document_status(self, loader_id: str | None) -> int | None:
        if not loader_id:
            return None
        responses = self.conn.take_events(
            lambda ev: ev.get("method") == "Network.responseReceived"
            and (ev.get("params") or {}).get("loaderId") == loader_id
            and (ev.get("params") or {}).get("type") == "Document"
        )
        for ev in responses:
            status = ((ev.get("params") or {}).get("response") or {}).get("status")
            if isinstance(status, (int, float)):
                return int(status)
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def evaluate_raw(self, expression: str, *, timeout: float | None = None) -> dict[str, Any]:
        """Runtime.evaluate with returnByValue + awaitPromise; raw CDP result."""
        return self.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
            timeout=timeout,
        )

    def evaluate(self, expression: str, *, timeout: float | None = None) -> Any:
        result = self.evaluate_raw(expression, timeout=timeout)
        details = result.get("exceptionDetails")
        if isinstance(details, dict):
            raise CdpError(describe_exception(details))
        return decode_remote_value(result.get("result"))

    def title(self) -> str:
        title = self.evaluate("document.title")
        return title if isinstance(title, str) else ""

    # ─────────────────────────────────────────────────────────────────────────
    # Rendering
    # ─────────────────────────────────────────────────────────────────────────

    def screenshot(self, *, full_page: bool = False) -> str:
        """Capture a PNG, return base64 data."""
        params: dict[str, Any] = {"format": "png", "fromSurface": True}
        if full_page:
            metrics = self.send("Page.getLayoutMetrics")
            size = metrics.get("cssContentSize") or metrics.get("contentSize") or {}
            width = int(size.get("width") or 0)
            height = int(size.get("height") or 0)
            if width > 0 and height > 0:
                params["clip"] = {"x": 0, "y": 0, "width": width, "height": height, "scale": 1}
                params["captureBeyondViewport"] = True
        return str(self.send("Page.captureScreenshot", params).get("data") or "")

    def set_viewport(self, width: int, height: int) -> None:
        self.send(
            "Emulation.setDeviceMetricsOverride",
            {"width": int(width), "height": int(height), "deviceScaleFactor": 1, "mobile": False},
        )

    def accessibility_snapshot(self) -> dict[str, Any] | None:
        """Accessibility tree with ignored nodes collapsed into their parents."""
        nodes = self.send("Accessibility.getFullAXTree").get("nodes") or []
        by_id = {n.get("nodeId"): n for n in nodes if isinstance(n, dict)}
        if not by_id:
            return None
        root = next((n for n in by_id.values() if not n.get("parentId")), None)
        if root is None:
            return None

        def _prop(node: dict[str, Any], key: str) -> str:
            val = node.get(key)
            if isinstance(val, dict):
                inner = val.get("value")
                return "" if inner is None else str(inner)
            return ""

        def _children(node: dict[str, Any]) -> list[dict[str, Any]]:
            out: list[dict[str, Any]] = []
            for cid in node.get("childIds") or []:
                child = by_id.get(cid)
                if child is None:
                    continue
                if child.get("ignored"):
                    out.extend(_children(child))
                else:
                    out.append(_build(child))
            return out

        def _build(node: dict[str, Any]) -> dict[str, Any]:
            item: dict[str, Any] = {"role": _prop(node, "role"), "name": _prop(node, "name")}
            value = _prop(node, "value")
            if value:
                item["value"] = value
            children = _children(node)
            if children:
                item["children"] = children
            return item

        return _build(root)

    # ─────────────────────────────────────────────────────────────────────────
    # Input
    # ─────────────────────────────────────────────────────────────────────────

    def click(self, selector: str, *, click_count: int = 1) -> None:
        point = self.evaluate(_ELEMENT_CENTER_JS % json.dumps(selector))
        if not isinstance(point, dict):
            raise CdpError(f"No element matches selector: {selector}")
        x, y = float(point["x"]), float(point["y"])
        self.send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": x, "y": y})
        for count in range(1, max(1, int(click_count)) + 1):
            for kind in ("mousePressed", "mouseReleased"):
                self.send(
                    "Input.dispatchMouseEvent",
                    {"type": kind, "x": x, "y": y, "button": "left", "clickCount": count},
                )

    def press_key(self, key: str) -> None:
        code = _KEY_CODES.get(key, ord(key[0].upper()) if len(key) == 1 else 0)
        down: dict[str, Any] = {"type": "keyDown", "key": key, "code": key, "windowsVirtualKeyCode": code}
        if key == "Enter":
            down["text"] = "\r"
        self.send("Input.dispatchKeyEvent", down)
        self.send("Input.dispatchKeyEvent", {"type": "keyUp", "key": key, "code": key, "windowsVirtualKeyCode": code})

    def type_text(self, selector: str, text: str) -> None:
        focused = self.evaluate(
            f"(() => {{ const el = document.querySelector({json.dumps(selector)}); if (!el) return false; el.focus(); return true; }})()"
        )
        if not focused:
            raise CdpError(f"No element matches selector: {selector}")
        if text:
            self.send("Input.insertText", {"text": text})

    def wait_for_selector(self, selector: str, *, state: str = "visible", timeout: float = 10.0) -> None:
        """Poll until the selector reaches ``state`` (visible/hidden/attached/detached)."""
        js = _SELECTOR_STATE_JS % json.dumps(selector)
        deadline = time.time() + max(0.0, timeout)
        while True:
            current = self.evaluate(js)
            if state == "visible" and current == "visible":
                return
            if state == "attached" and current in {"visible", "hidden"}:
                return
            if state == "hidden" and current in {"hidden", "detached"}:
                return
            if state == "detached" and current == "detached":
                return
            if time.time() >= deadline:
                raise CdpError(f"Timeout {timeout * 1000:.0f}ms exceeded waiting for {selector!r} to be {state}")
            time.sleep(0.1)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        with suppress(CdpError):
            self.send("Page.close", timeout=2.0)
        self.detach()

    def detach(self) -> None:
        """Drop the event bus and command connection without closing the tab."""
        self.closed = True
        self._bus.stop()
        conn = self._conn
        self._conn = None
        if conn is not None:
            conn.close()


class Browser:
    """One launched Chrome plus its target registry."""

    def __init__(
        self,
        endpoint: DevToolsEndpoint,
        *,
        launcher: BrowserLauncher | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.endpoint = endpoint
        self.launcher = launcher
        self.timeout = timeout
        self._conn: CdpConnection | None = None
        self._bus: CdpEventBus | None = None
        # targetId -> TargetInfo, in creation order.
        self._targets: dict[str, dict[str, Any]] = {}
        self._pages: dict[str, Page] = {}
        self._cond = threading.Condition()
        self._created_listeners: list[Callable[[Page], None]] = []
        self._closed = False

    @classmethod
    def launch(
        cls,
        config: CrxConfig,
        chrome_path: str,
        extension_dir: str,
        extra_flags: list[str] | None = None,
    ) -> Browser:
        launcher = BrowserLauncher(config, chrome_path)
        result = launcher.start(extension_dir, extra_flags)
        if not result.started or result.port is None:
            launcher.stop()
            raise BrowserLaunchFailed(result.message, details={"command": result.command})
        browser = cls(DevToolsEndpoint(result.port), launcher=launcher, timeout=config.cdp_timeout)
        try:
            browser.connect()
        except HttpClientError as exc:
            browser.close()
            raise BrowserLaunchFailed(f"Cannot connect to Chrome DevTools: {exc}") from exc
        return browser

    def connect(self) -> None:
        ws_url = self.endpoint.browser_ws_url()
        self._conn = CdpConnection(ws_url, timeout=self.timeout)
        bus = CdpEventBus(
            ws_url,
            name="crx-targets",
            setup=[("Target.setDiscoverTargets", {"discover": True})],
        )
        bus.on("Target.targetCreated", self._on_target_created)
        bus.on("Target.targetInfoChanged", self._on_target_changed)
        bus.on("Target.targetDestroyed", self._on_target_destroyed)
        self._bus = bus
        bus.start(wait=5.0)

    @property
    def connected(self) -> bool:
        if self._closed or self._conn is None or self._conn.closed:
            return False
        return self.launcher is None or self.launcher.running

    @property
    def conn(self) -> CdpConnection:
        if self._conn is None:
            raise CdpError("Browser connection is not open")
        return self._conn

    def target_ws_url(self, target_id: str) -> str:
        return f"ws://{self.endpoint.host}:{self.endpoint.port}/devtools/page/{target_id}"

    # ─────────────────────────────────────────────────────────────────────────
    # Target registry (fed by the discovery bus thread)
    # ─────────────────────────────────────────────────────────────────────────

    def on_target_created(self, listener: Callable[[Page], None]) -> None:
        """Call ``listener`` for every page target created from now on."""
        self._created_listeners.append(listener)

    def _on_target_created(self, event: dict[str, Any]) -> None:
        info = (event.get("params") or {}).get("targetInfo") or {}
        target_id = info.get("targetId")
        if not target_id:
            return
        with self._cond:
            self._targets[target_id] = dict(info)
            page = self._page_for(info) if info.get("type") == "page" else None
            self._cond.notify_all()
        if page is not None:
            for listener in list(self._created_listeners):
                try:
                    listener(page)
                except Exception:  # noqa: BLE001
                    logger.warning("target_created listener failed target=%s", target_id, exc_info=True)

    def _on_target_changed(self, event: dict[str, Any]) -> None:
        info = (event.get("params") or {}).get("targetInfo") or {}
        target_id = info.get("targetId")
        if not target_id:
            return
        with self._cond:
            if target_id in self._targets:
                self._targets[target_id].update(info)
            else:
                self._targets[target_id] = dict(info)
            page = self._pages.get(target_id)
            if page is not None and isinstance(info.get("url"), str):
                page.set_url(info["url"])
            self._cond.notify_all()

    def _on_target_destroyed(self, event: dict[str, Any]) -> None:
        target_id = (event.get("params") or {}).get("targetId")
        with self._cond:
            self._targets.pop(target_id, None)
            page = self._pages.pop(target_id, None)
            self._cond.notify_all()
        if page is not None:
            page.detach()

    def _page_for(self, info: dict[str, Any]) -> Page:
        # Caller holds self._cond.
        target_id = info["targetId"]
        page = self._pages.get(target_id)
        if page is None:
            page = Page(target_id, self.target_ws_url(target_id), url=str(info.get("url") or ""), timeout=self.timeout)
            self._pages[target_id] = page
        return page

    def known_targets(self) -> list[dict[str, Any]]:
        with self._cond:
            return [dict(t) for t in self._targets.values()]

    def wait_for_target(
        self,
        predicate: Callable[[dict[str, Any]], bool],
        timeout: float = 10.0,
    ) -> dict[str, Any] | None:
        deadline = time.time() + max(0.0, timeout)
        with self._cond:
            while True:
                for info in self._targets.values():
                    if predicate(info):
                        return dict(info)
                remaining = deadline - time.time()
                if remaining <= 0:
                    return None
                self._cond.wait(min(remaining, 0.5))

    def http_targets(self) -> list[dict[str, Any]]:
        """Targets as listed by the DevTools HTTP endpoint (/json/list)."""
        return self.endpoint.list_targets()

    def protocol_targets(self) -> list[dict[str, Any]]:
        """Targets as listed by Target.getTargets on the browser connection."""
        infos = self.conn.send("Target.getTargets").get("targetInfos") or []
        return [t for t in infos if isinstance(t, dict)]

    # ─────────────────────────────────────────────────────────────────────────
    # Pages
    # ─────────────────────────────────────────────────────────────────────────

    def pages(self) -> list[Page]:
        """Open pages in creation order."""
        with self._cond:
            return [self._page_for(t) for t in self._targets.values() if t.get("type") == "page"]

    def new_page(self, url: str = "about:blank") -> Page:
        target_id = self.conn.send("Target.createTarget", {"url": "about:blank"}).get("targetId")
        if not target_id:
            raise CdpError("Target.createTarget returned no targetId")
        info = self.wait_for_target(lambda t: t.get("targetId") == target_id, timeout=5.0)
        with self._cond:
            if info is None:
                info = {"targetId": target_id, "type": "page", "url": "about:blank"}
                self._targets[target_id] = info
            page = self._page_for(info)
        if url and url != "about:blank":
            page.goto(url)
        return page

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._conn is not None and not self._conn.closed:
            with suppress(CdpError):
                self._conn.send("Browser.close", timeout=2.0)
        if self._bus is not None:
            self._bus.stop()
        with self._cond:
            pages = list(self._pages.values())
            self._pages.clear()
            self._targets.clear()
        for page in pages:
            page.detach()
        if self._conn is not None:
            self._conn.close()
        if self.launcher is not None:
            self.launcher.stop()


__all__ = ["Browser", "LIFECYCLE_EVENTS", "Page", "decode_remote_value"]
