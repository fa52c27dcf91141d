"""Execution channel into the extension's background service worker.

The worker is started and stopped by Chrome at will, so the channel is never
trusted: every use probes it first, wakes the worker by loading an extension
URL when the probe fails, and re-attaches.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .cdp import CdpConnection, CdpError, CdpEventBus, describe_exception
from .errors import ServiceWorkerEvalError, ServiceWorkerNotFound

if TYPE_CHECKING:
    from .browser import Browser, Page
    from .console import LogCollector

logger = logging.getLogger("mcp.crx.extension")

_ASYNC_IIFE = re.compile(r"^\(async\s")
_FUNCTION_IIFE = re.compile(r"^\(function")
_RETURN = re.compile(r"\breturn\b")


class _Undefined:
    """JavaScript ``undefined`` as returned by an evaluation."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


def wrap_expression(expression: str) -> str:
    """Wrap user code in an async IIFE whose value is the last statement.

    Splitting is naive: a ``;`` inside a string or template literal breaks the
    statement list.
    """
    trimmed = expression.strip()

    if (_ASYNC_IIFE.match(trimmed) or _FUNCTION_IIFE.match(trimmed)) and trimmed.endswith(")"):
        return trimmed

    if _RETURN.search(trimmed):
        return f"(async () => {{ {trimmed} }})()"

    statements = [s.strip() for s in trimmed.rstrip(";").split(";")]
    statements = [s for s in statements if s]
    if len(statements) > 1:
        last = statements.pop()
        init = ";\n".join(statements)
        return f"(async () => {{ {init};\nreturn {last}; }})()"

    single = trimmed[:-1] if trimmed.endswith(";") else trimmed
    return f"(async () => {{ return {single}; }})()"


@dataclass(frozen=True, slots=True)
class ExtensionInfo:
    id: str
    name: str
    version: str
    manifest_path: str

    @property
    def origin(self) -> str:
        return f"chrome-extension://{self.id}"

    def url(self, path: str = "") -> str:
        return f"{self.origin}/{path.lstrip('/')}"


class ExtensionContext:
    def __init__(
        self,
        browser: Browser,
        info: ExtensionInfo,
        collector: LogCollector,
        *,
        attach_timeout: float = 10.0,
        connect: Callable[[str], CdpConnection] | None = None,
        bus_factory: Callable[[str], CdpEventBus] | None = None,
        open_page: Callable[[], Page] | None = None,
    ) -> None:
        self.browser = browser
        self.info = info
        self.collector = collector
        self.attach_timeout = attach_timeout
        self._connect = connect or (lambda url: CdpConnection(url, timeout=browser.timeout))
        self._bus_factory = bus_factory or self._default_bus
        self._open_page = open_page or browser.new_page
        self._worker: CdpConnection | None = None
        self._worker_target: dict[str, Any] | None = None
        self._worker_bus: CdpEventBus | None = None

    @property
    def id(self) -> str:
        return self.info.id

    @property
    def worker_target(self) -> dict[str, Any] | None:
        return self._worker_target

    @staticmethod
    def _default_bus(ws_url: str) -> CdpEventBus:
        return CdpEventBus(ws_url, name="crx-worker", setup=[("Runtime.enable", {})])

    def _is_worker(self, target: dict[str, Any]) -> bool:
        return target.get("type") == "service_worker" and str(target.get("url") or "").startswith(
            f"{self.info.origin}/"
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Attach / probe / wake
    # ─────────────────────────────────────────────────────────────────────────

    def attach_service_worker(self, timeout: float | None = None) -> bool:
        timeout = self.attach_timeout if timeout is None else timeout
        target = self.browser.wait_for_target(self._is_worker, timeout=timeout)
        if target is None:
            logger.debug("no service worker target ext=%s", self.id)
            return False

        ws_url = self.browser.target_ws_url(target["targetId"])
        try:
            conn = self._connect(ws_url)
        except CdpError as exc:
            logger.info("service worker attach failed ext=%s err=%s", self.id, exc)
            return False

        self._drop_worker()
        self._worker = conn
        self._worker_target = target
        bus = self._bus_factory(ws_url)
        self.collector.attach_to_worker(bus, str(target.get("url") or ""))
        bus.start(wait=2.0)
        self._worker_bus = bus
        logger.info("service worker attached ext=%s url=%s", self.id, target.get("url"))
        return True

    def _drop_worker(self) -> None:
        if self._worker_bus is not None:
            self._worker_bus.stop()
            self._worker_bus = None
        if self._worker is not None:
            self._worker.close()
        self._worker = None
        self._worker_target = None

    def _probe(self, conn: CdpConnection) -> bool:
        try:
            conn.send("Runtime.evaluate", {"expression": "1", "returnByValue": True}, timeout=5.0)
        except CdpError:
            return False
        return True

    def _wake(self) -> None:
        """Loading any extension resource restarts a stopped worker."""
        pages = self.browser.pages()
        if not pages:
            return
        try:
            pages[0].goto(self.info.url("manifest.json"), wait_until="domcontentloaded")
        except CdpError as exc:
            logger.debug("wake navigation failed ext=%s err=%s", self.id, exc)

    def get_worker_channel(self) -> CdpConnection | None:
        if self._worker is not None:
            if self._probe(self._worker):
                return self._worker
            logger.info("service worker channel stale ext=%s", self.id)
            self._drop_worker()

        self._wake()
        self.attach_service_worker()
        return self._worker

    # ─────────────────────────────────────────────────────────────────────────
    # Evaluation
    # ─────────────────────────────────────────────────────────────────────────

    def eval_in_service_worker(self, expression: str) -> Any:
        """Evaluate user code in the worker; returns ``UNDEFINED`` for undefined."""
        return self.eval_in_service_worker_raw(wrap_expression(expression))

    def eval_in_service_worker_raw(self, expression: str) -> Any:
        conn = self.get_worker_channel()
        if conn is None:
            raise ServiceWorkerNotFound()
        try:
            res = conn.send(
                "Runtime.evaluate",
                {"expression": expression, "returnByValue": True, "awaitPromise": True},
            )
        except CdpError as exc:
            raise ServiceWorkerEvalError(str(exc)) from exc

        details = res.get("exceptionDetails")
        if isinstance(details, dict):
            raise ServiceWorkerEvalError(describe_exception(details, default="SW evaluation error"))
        result = res.get("result") or {}
        if result.get("type") == "undefined":
            return UNDEFINED
        return result.get("value")

    # ─────────────────────────────────────────────────────────────────────────
    # Extension pages
    # ─────────────────────────────────────────────────────────────────────────

    def find_extension_page(self, pattern: str) -> Page | None:
        prefix = f"{self.info.origin}/"
        for page in self.browser.pages():
            if page.url.startswith(prefix) and pattern in page.url:
                return page
        return None

    def open_extension_page(self, path: str) -> Page:
        """Open an extension path (or a full URL on the extension origin) in a new tab."""
        url = path if path.startswith(f"{self.info.origin}/") else self.info.url(path)
        page = self._open_page()
        try:
            page.goto(url, wait_until="domcontentloaded")
        except CdpError:
            page.close()
            raise
        return page

    def runtime_manifest(self) -> dict[str, Any] | None:
        """``chrome.runtime.getManifest()`` from the worker, None if unreachable."""
        try:
            manifest = self.eval_in_service_worker_raw("(async () => chrome.runtime.getManifest())()")
        except (ServiceWorkerNotFound, ServiceWorkerEvalError) as exc:
            logger.debug("runtime manifest unavailable ext=%s err=%s", self.id, exc)
            return None
        return manifest if isinstance(manifest, dict) else None

    def popup_url(self) -> str | None:
        action = (self.runtime_manifest() or {}).get("action") or {}
        path = action.get("default_popup") or action.get("popup")
        return self.info.url(path) if isinstance(path, str) and path else None

    def sidepanel_url(self) -> str | None:
        side_panel = (self.runtime_manifest() or {}).get("side_panel") or {}
        path = side_panel.get("default_path")
        return self.info.url(path) if isinstance(path, str) and path else None

    def close(self) -> None:
        with suppress(CdpError):
            self._drop_worker()


__all__ = ["ExtensionContext", "ExtensionInfo", "UNDEFINED", "wrap_expression"]
