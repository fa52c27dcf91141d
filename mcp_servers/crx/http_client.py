"""DevTools HTTP endpoint helpers (/json/version, /json/list)."""

from __future__ import annotations

import json
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen


class HttpClientError(Exception):
    pass


def _request_json(url: str, *, timeout: float = 2.0) -> Any:
    req = Request(url, headers={"User-Agent": "crx-mcp/0.1"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (OSError, TimeoutError, URLError, json.JSONDecodeError) as exc:
        raise HttpClientError(str(exc)) from exc


class DevToolsEndpoint:
    """HTTP side of a Chrome remote-debugging port."""

    def __init__(self, port: int, host: str = "127.0.0.1") -> None:
        self.host = host
        self.port = int(port)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def version(self, timeout: float = 2.0) -> dict[str, Any]:
        data = _request_json(f"{self.base_url}/json/version", timeout=timeout)
        return data if isinstance(data, dict) else {}

    def ready(self, timeout: float = 0.4) -> bool:
        try:
            return bool(self.version(timeout=timeout).get("webSocketDebuggerUrl"))
        except HttpClientError:
            return False

    def browser_ws_url(self) -> str:
        ws = self.version().get("webSocketDebuggerUrl")
        if not isinstance(ws, str) or not ws:
            raise HttpClientError("DevTools endpoint did not report a browser websocket URL")
        return ws

    def list_targets(self, timeout: float = 2.0) -> list[dict[str, Any]]:
        data = _request_json(f"{self.base_url}/json/list", timeout=timeout)
        return [t for t in data if isinstance(t, dict)] if isinstance(data, list) else []


__all__ = ["DevToolsEndpoint", "HttpClientError"]
