"""Raw CDP transport.

- CdpConnection: synchronous command/response channel to one target.
- CdpEventBus: background reader that fans events out to subscribers.

Chrome accepts several websocket clients per target, so a page or worker can
have one connection for commands and a separate bus for events.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket

from .http_client import HttpClientError

logger = logging.getLogger("mcp.crx.cdp")

EventListener = Callable[[dict[str, Any]], None]


class CdpError(HttpClientError):
    """CDP command failed, timed out, or the socket went away."""


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, socket.timeout, websocket.WebSocketTimeoutException)):
        return True
    return "timed out" in str(exc).lower()


def describe_exception(details: dict[str, Any], default: str = "Evaluation error") -> str:
    """Human message from Runtime exceptionDetails: description, then text."""
    exception = details.get("exception")
    if isinstance(exception, dict):
        desc = exception.get("description")
        if isinstance(desc, str) and desc:
            return desc
    text = details.get("text")
    if isinstance(text, str) and text:
        return text
    return default


def remote_object_text(obj: Any) -> str:
    """Display value of a console argument (RemoteObject)."""
    if not isinstance(obj, dict):
        return str(obj)
    value = obj.get("value")
    if value is not None:
        return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    for k in ("unserializableValue", "description"):
        v = obj.get(k)
        if isinstance(v, str):
            return v
    return ""


class CdpConnection:
    """Low-level CDP WebSocket connection."""

    def __init__(self, ws_url: str, timeout: float = 30.0):
        try:
            self.ws = websocket.create_connection(ws_url, timeout=min(timeout, 10.0), suppress_origin=True)
        except (OSError, websocket.WebSocketException) as exc:
            raise CdpError(f"Cannot connect to {ws_url}: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._lock = threading.RLock()
        # Events must not be dropped while waiting for command responses.
        self._event_queue: list[dict[str, Any]] = []
        self._max_event_queue = 2000
        self.closed = False

    def _push_event(self, event: dict[str, Any]) -> None:
        self._event_queue.append(event)
        if len(self._event_queue) > self._max_event_queue:
            del self._event_queue[: len(self._event_queue) - self._max_event_queue]

    def _recv(self, remaining: float) -> dict[str, Any] | None:
        """Receive one frame; None on a soft timeout."""
        try:
            self.ws.settimeout(max(0.05, min(0.5, remaining)))
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            if _is_timeout(exc):
                return None
            self.closed = True
            raise CdpError(str(exc) or "CDP connection closed") from exc
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        if self.closed:
            raise CdpError("CDP connection is closed")
        with self._lock:
            msg_id = self._next_id
            self._next_id += 1
            msg: dict[str, Any] = {"id": msg_id, "method": method}
            if params:
                msg["params"] = params
            try:
                self.ws.send(json.dumps(msg))
            except Exception as exc:  # noqa: BLE001
                self.closed = True
                raise CdpError(str(exc) or "CDP send failed") from exc
            return self._recv_until(msg_id, self.timeout if timeout is None else timeout, method)

    def _recv_until(self, expected_id: int, timeout: float, method: str) -> dict[str, Any]:
        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise CdpError(f"CDP response timed out ({method})")
            data = self._recv(remaining)
            if data is None:
                continue
            if isinstance(data.get("method"), str) and "id" not in data:
                self._push_event(data)
                continue
            if data.get("id") == expected_id:
                if "error" in data:
                    err = data["error"]
                    message = err.get("message") if isinstance(err, dict) else str(err)
                    raise CdpError(f"{method}: {message}")
                result = data.get("result")
                return result if isinstance(result, dict) else {}

    def take_events(self, predicate: Callable[[dict[str, Any]], bool] | None = None) -> list[dict[str, Any]]:
        """Remove and return queued events matching ``predicate`` (all when None)."""
        if predicate is None:
            taken, self._event_queue = self._event_queue, []
            return taken
        taken = [ev for ev in self._event_queue if predicate(ev)]
        if taken:
            self._event_queue = [ev for ev in self._event_queue if not predicate(ev)]
        return taken

    def wait_for(
        self,
        predicate: Callable[[dict[str, Any]], bool],
        timeout: float = 10.0,
    ) -> dict[str, Any] | None:
        """Wait for the first event (queued or incoming) matching ``predicate``."""
        with self._lock:
            for i, ev in enumerate(self._event_queue):
                if predicate(ev):
                    return self._event_queue.pop(i)

            deadline = time.time() + timeout
            while True:
                remaining = deadline - time.time()
                if remaining <= 0:
                    return None
                data = self._recv(remaining)
                if data is None or not isinstance(data.get("method"), str) or "id" in data:
                    continue
                if predicate(data):
                    return data
                self._push_event(data)

    def close(self) -> None:
        """Close the WebSocket connection."""
        self.closed = True
        # Raw socket shutdown; a graceful close handshake can hang on a dead target.
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(OSError):
                sock.close()


class CdpEventBus:
    """Background CDP event reader for one target.

    Opens its own connection, runs the setup commands (domain enables), then
    delivers every event to the listeners registered for its method. Listener
    failures are logged and never stop the reader.
    """

    def __init__(
        self,
        ws_url: str,
        *,
        name: str,
        setup: list[tuple[str, dict[str, Any]]] | None = None,
        max_reconnects: int = 0,
        connect: Callable[[str], CdpConnection] | None = None,
    ) -> None:
        self.ws_url = ws_url
        self.name = name
        self._setup = list(setup or [])
        self._max_reconnects = max(0, int(max_reconnects))
        self._connect = connect or (lambda url: CdpConnection(url, timeout=5.0))
        self._listeners: dict[str, list[EventListener]] = {}
        self._listeners_lock = threading.Lock()
        self._stop = threading.Event()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._start_lock = threading.Lock()
        self._started = False
        self._conn: CdpConnection | None = None

    def on(self, method: str, listener: EventListener) -> None:
        """Subscribe ``listener`` to events named ``method`` (``*`` for all)."""
        with self._listeners_lock:
            self._listeners.setdefault(method, []).append(listener)

    def start(self, wait: float = 5.0) -> bool:
        """Start the reader; block until setup finished or ``wait`` elapsed."""
        with self._start_lock:
            if not self._started and not self._stop.is_set():
                self._started = True
                self._thread.start()
        if wait > 0:
            return self._ready.wait(wait)
        return self._ready.is_set()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()
        conn = self._conn
        if conn is not None:
            conn.close()

    def dispatch(self, event: dict[str, Any]) -> None:
        method = event.get("method")
        if not isinstance(method, str):
            return
        with self._listeners_lock:
            listeners = [*self._listeners.get(method, ()), *self._listeners.get("*", ())]
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.debug("listener failed bus=%s method=%s", self.name, method, exc_info=True)

    def _run(self) -> None:
        attempts = 0
        backoff = 0.2
        while not self._stop.is_set():
            conn: CdpConnection | None = None
            try:
                conn = self._connect(self.ws_url)
                self._conn = conn
                for method, params in self._setup:
                    try:
                        conn.send(method, params)
                    except CdpError as exc:
                        logger.debug("setup failed bus=%s method=%s err=%s", self.name, method, exc)
                # Events that arrived during setup.
                queued = conn.take_events()
                self._ready.set()
                for ev in queued:
                    self.dispatch(ev)
                backoff = 0.2

                while not self._stop.is_set():
                    data = conn._recv(0.5)  # noqa: SLF001
                    if data is not None and isinstance(data.get("method"), str) and "id" not in data:
                        self.dispatch(data)
            except CdpError as exc:
                if not self._stop.is_set():
                    logger.debug("bus disconnected bus=%s err=%s", self.name, exc)
            finally:
                if conn is not None:
                    conn.close()
                self._conn = None

            attempts += 1
            if self._stop.is_set() or attempts > self._max_reconnects:
                break
            time.sleep(backoff)
            backoff = min(backoff * 1.5, 2.0)

        self._ready.set()
        self._stop.set()


__all__ = [
    "CdpConnection",
    "CdpError",
    "CdpEventBus",
    "EventListener",
    "describe_exception",
    "remote_object_text",
]
