"""Network activity recorder (completed responses only)."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .browser import Page

MAX_ENTRIES = 1000
# requestId -> method, per page.
MAX_PENDING_REQUESTS = 500


@dataclass(frozen=True, slots=True)
class NetworkEntry:
    timestamp: float
    method: str
    url: str
    status: int | None = None
    mime_type: str | None = None
    size: int | None = None


class ActivityRecorder:
    def __init__(self, max_entries: int = MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._entries: list[NetworkEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(self, entry: NetworkEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.max_entries:
                del self._entries[: len(self._entries) - self.max_entries]

    def get_entries(self, filter: str | None = None, limit: int | None = None, clear: bool = False) -> list[NetworkEntry]:
        with self._lock:
            result = list(self._entries)
            if clear:
                self._entries.clear()
        if filter:
            needle = filter.lower()
            result = [e for e in result if needle in e.url.lower()]
        if limit is not None and limit > 0:
            result = result[-limit:]
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def attach_to_page(self, page: Page) -> None:
        methods: OrderedDict[str, str] = OrderedDict()
        methods_lock = threading.Lock()

        def _on_request(event: dict[str, Any]) -> None:
            params = event.get("params") or {}
            request_id = params.get("requestId")
            method = (params.get("request") or {}).get("method")
            if not isinstance(request_id, str) or not isinstance(method, str):
                return
            with methods_lock:
                methods[request_id] = method
                while len(methods) > MAX_PENDING_REQUESTS:
                    methods.popitem(last=False)

        def _on_response(event: dict[str, Any]) -> None:
            params = event.get("params") or {}
            response = params.get("response") or {}
            with methods_lock:
                method = methods.pop(str(params.get("requestId")), None)
            if method is None:
                headers = response.get("requestHeaders") or {}
                method = headers.get(":method") if isinstance(headers, dict) else None
            status = response.get("status")
            size = response.get("encodedDataLength")
            self.add(
                NetworkEntry(
                    timestamp=time.time() * 1000,
                    method=str(method or "GET"),
                    url=str(response.get("url") or ""),
                    status=int(status) if isinstance(status, (int, float)) else None,
                    mime_type=response.get("mimeType") or None,
                    size=int(size) if isinstance(size, (int, float)) else None,
                )
            )

        page.on("Network.requestWillBeSent", _on_request)
        page.on("Network.responseReceived", _on_response)


__all__ = ["ActivityRecorder", "MAX_ENTRIES", "NetworkEntry"]
