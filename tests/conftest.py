"""Hand-written CDP fakes shared by the test modules (no real Chrome)."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from mcp_servers.crx.cdp import CdpError

EXT_ID = "abcdefghijklmnopabcdefghijklmnop"


class FakeConn:
    """Stands in for CdpConnection: scripted responses + an event queue."""

    def __init__(self, responses: dict[str, Any] | None = None, events: list[dict[str, Any]] | None = None) -> None:
        self.responses = dict(responses or {})
        self.events = list(events or [])
        self.sent: list[tuple[str, dict[str, Any]]] = []
        # Frames the event bus reads after setup.
        self.incoming: list[dict[str, Any]] = []
        self.closed = False

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        if self.closed:
            raise CdpError("CDP connection is closed")
        self.sent.append((method, dict(params or {})))
        resp = self.responses.get(method, {})
        if callable(resp):
            resp = resp(params or {})
        if isinstance(resp, Exception):
            raise resp
        return resp

    def _recv(self, remaining: float) -> dict[str, Any] | None:
        if self.closed:
            raise CdpError("CDP connection is closed")
        if self.incoming:
            return self.incoming.pop(0)
        time.sleep(0.01)
        return None

    def methods(self) -> list[str]:
        return [m for m, _ in self.sent]

    def take_events(self, predicate: Callable[[dict[str, Any]], bool] | None = None) -> list[dict[str, Any]]:
        taken = [ev for ev in self.events if predicate is None or predicate(ev)]
        self.events = [ev for ev in self.events if ev not in taken]
        return taken

    def wait_for(self, predicate: Callable[[dict[str, Any]], bool], timeout: float = 10.0) -> dict[str, Any] | None:
        for i, ev in enumerate(self.events):
            if predicate(ev):
                return self.events.pop(i)
        return None

    def close(self) -> None:
        self.closed = True


class FakeBus:
    """Stands in for CdpEventBus: records listeners, emits synchronously."""

    def __init__(self, ws_url: str = "ws://fake") -> None:
        self.ws_url = ws_url
        self.listeners: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self.started = False
        self.stopped = False

    def on(self, method: str, listener: Callable[[dict[str, Any]], None]) -> None:
        self.listeners.setdefault(method, []).append(listener)

    def start(self, wait: float = 5.0) -> bool:
        self.started = True
        return True

    def stop(self) -> None:
        self.stopped = True

    def emit(self, method: str, params: dict[str, Any]) -> None:
        for listener in self.listeners.get(method, []):
            listener({"method": method, "params": params})


class FakePage:
    """Stands in for browser.Page."""

    def __init__(self, target_id: str, url: str = "about:blank") -> None:
        self.target_id = target_id
        self.url = url
        self.bus = FakeBus()
        self.started = 0
        self.goto_calls: list[str] = []
        self.goto_error: Exception | None = None
        self.evaluated: list[str] = []
        self.evaluate_result: Any = None
        self.raw_result: dict[str, Any] = {"result": {"type": "undefined"}}
        self.tree: dict[str, Any] | None = {"role": "RootWebArea", "name": "Fake"}
        self.viewport: tuple[int, int] | None = None
        self.actions: list[tuple[Any, ...]] = []
        self.screenshot_data = ""
        self.closed = False

    def on(self, method: str, listener: Callable[[dict[str, Any]], None]) -> None:
        self.bus.on(method, listener)

    def emit(self, method: str, params: dict[str, Any]) -> None:
        self.bus.emit(method, params)

    def start_events(self, wait: float = 2.0) -> bool:
        self.started += 1
        return True

    def goto(self, url: str, *, wait_until: str = "domcontentloaded", timeout: float | None = None) -> int | None:
        self.goto_calls.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        return 200

    def evaluate(self, expression: str, *, timeout: float | None = None) -> Any:
        self.evaluated.append(expression)
        if isinstance(self.evaluate_result, Exception):
            raise self.evaluate_result
        return self.evaluate_result

    def evaluate_raw(self, expression: str, *, timeout: float | None = None) -> dict[str, Any]:
        self.evaluated.append(expression)
        return self.raw_result

    def title(self) -> str:
        return "Fake title"

    def accessibility_snapshot(self) -> dict[str, Any] | None:
        return self.tree

    def screenshot(self, full_page: bool = False) -> str:
        self.actions.append(("screenshot", full_page))
        return self.screenshot_data

    def click(self, selector: str, click_count: int = 1) -> None:
        self.actions.append(("click", selector, click_count))

    def press_key(self, key: str) -> None:
        self.actions.append(("key", key))

    def type_text(self, selector: str, text: str) -> None:
        self.actions.append(("type", selector, text))

    def wait_for_selector(self, selector: str, state: str = "visible", timeout: float = 10.0) -> None:
        self.actions.append(("wait", selector, state, timeout))

    def set_viewport(self, width: int, height: int) -> None:
        self.viewport = (width, height)

    def close(self) -> None:
        self.closed = True


class FakeBrowser:
    """Stands in for browser.Browser with a static target list."""

    def __init__(self, targets: list[dict[str, Any]] | None = None, pages: list[FakePage] | None = None) -> None:
        self.targets = list(targets or [])
        self._pages = list(pages or [])
        self.connected = True
        self.close_calls = 0
        self.created_listeners: list[Callable[[FakePage], None]] = []
        self.timeout = 5.0
        self._counter = 0
        self.new_page_hook: Callable[[FakePage], None] | None = None

    def wait_for_target(self, predicate: Callable[[dict[str, Any]], bool], timeout: float = 10.0) -> dict[str, Any] | None:
        return next((dict(t) for t in self.targets if predicate(t)), None)

    def known_targets(self) -> list[dict[str, Any]]:
        return [dict(t) for t in self.targets]

    def http_targets(self) -> list[dict[str, Any]]:
        return [dict(t) for t in self.targets]

    def protocol_targets(self) -> list[dict[str, Any]]:
        return [dict(t) for t in self.targets]

    def target_ws_url(self, target_id: str) -> str:
        return f"ws://fake/devtools/page/{target_id}"

    def pages(self) -> list[FakePage]:
        return [p for p in self._pages if not p.closed]

    def on_target_created(self, listener: Callable[[FakePage], None]) -> None:
        self.created_listeners.append(listener)

    def new_page(self, url: str = "about:blank") -> FakePage:
        self._counter += 1
        page = FakePage(f"new-{self._counter}")
        if self.new_page_hook is not None:
            self.new_page_hook(page)
        self._pages.append(page)
        for listener in self.created_listeners:
            listener(page)
        if url and url != "about:blank":
            page.goto(url)
        return page

    def close(self) -> None:
        self.close_calls += 1
        self.connected = False


def write_extension(root: Path, manifest: dict[str, Any] | None = None) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    data = manifest if manifest is not None else {
        "manifest_version": 3,
        "name": "Fixture Extension",
        "version": "1.2.3",
        "background": {"service_worker": "background.js"},
        "action": {"default_popup": "popup.html"},
    }
    (root / "manifest.json").write_text(json.dumps(data), encoding="utf-8")
    return root


@pytest.fixture
def fakes() -> SimpleNamespace:
    return SimpleNamespace(
        EXT_ID=EXT_ID,
        Conn=FakeConn,
        Bus=FakeBus,
        Page=FakePage,
        Browser=FakeBrowser,
        write_extension=write_extension,
    )


@pytest.fixture
def launched(tmp_path, monkeypatch) -> SimpleNamespace:
    """A SessionManager launched against fakes, with a reachable worker channel.

    Every worker connection shares ``responses`` so tests can script
    ``Runtime.evaluate`` once and survive re-attaches.
    """
    from mcp_servers.crx import extension as extension_module
    from mcp_servers.crx.config import CrxConfig
    from mcp_servers.crx.session_manager import SessionManager

    responses: dict[str, Any] = {}
    connections: list[FakeConn] = []

    def connect(ws_url: str, timeout: float | None = None) -> FakeConn:
        conn = FakeConn()
        conn.responses = responses
        connections.append(conn)
        return conn

    monkeypatch.setattr(extension_module, "CdpConnection", connect)
    monkeypatch.setattr(extension_module, "CdpEventBus", lambda ws_url, **kwargs: FakeBus(ws_url))

    page = FakePage("p1", url="https://example.com/")
    worker = {"targetId": "sw", "type": "service_worker", "url": f"chrome-extension://{EXT_ID}/background.js"}
    browser = FakeBrowser([worker], pages=[page])
    ext_dir = write_extension(tmp_path / "ext")
    session = SessionManager(
        CrxConfig(chrome_path="/fake/chrome"),
        browser_factory=lambda config, chrome, ext, flags: browser,
        discover=lambda browser, timeout: EXT_ID,
    )
    session.launch(str(ext_dir))
    return SimpleNamespace(
        session=session,
        browser=browser,
        page=page,
        responses=responses,
        connections=connections,
        ext_dir=ext_dir,
    )
