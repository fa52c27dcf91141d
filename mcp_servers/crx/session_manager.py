"""Session subsystem.

One SessionManager per server process owns at most one launched browser and the
extension context that belongs to it. The two are replaced together by
``launch`` and dropped together by ``close``. The log collector and activity
recorder outlive relaunches.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .browser import Browser, Page
from .config import CrxConfig, expand_path
from .console import LogCollector
from .discovery import discover_extension_id
from .errors import BrowserNotLaunched, ChromeNotFound, CrxError, InvalidExtensionPath, TargetPageNotFound
from .extension import ExtensionContext, ExtensionInfo
from .http_client import HttpClientError
from .network import ActivityRecorder

logger = logging.getLogger("mcp.crx.session")

BrowserFactory = Callable[[CrxConfig, str, str, "list[str] | None"], Browser]
Discover = Callable[..., str]


def read_manifest(extension_dir: str | Path) -> tuple[Path, dict[str, Any]]:
    """Absolute manifest path + parsed manifest; InvalidExtensionPath otherwise."""
    root = Path(expand_path(str(extension_dir))).resolve()
    if not root.is_dir():
        raise InvalidExtensionPath(f"Extension path does not exist: {root}")
    manifest_path = root / "manifest.json"
    if not manifest_path.is_file():
        raise InvalidExtensionPath(f"manifest.json not found in: {root}")
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidExtensionPath(f"Cannot read {manifest_path}: {exc}") from exc
    if not isinstance(manifest, dict):
        raise InvalidExtensionPath(f"{manifest_path} is not a JSON object")
    return manifest_path, manifest


class SessionManager:
    def __init__(
        self,
        config: CrxConfig | None = None,
        *,
        collector: LogCollector | None = None,
        recorder: ActivityRecorder | None = None,
        browser_factory: BrowserFactory | None = None,
        discover: Discover | None = None,
    ) -> None:
        self.config = config or CrxConfig.from_env()
        self.collector = collector or LogCollector()
        self.recorder = recorder or ActivityRecorder()
        self._browser_factory = browser_factory or Browser.launch
        self._discover = discover or discover_extension_id
        self._browser: Browser | None = None
        self._extension: ExtensionContext | None = None
        self._attached: set[str] = set()
        self._lock = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def launch(
        self,
        extension_dir: str,
        extra_flags: list[str] | None = None,
        initial_url: str | None = None,
    ) -> ExtensionInfo:
        manifest_path, manifest = read_manifest(extension_dir)
        ext_dir = str(manifest_path.parent)

        # At most one browser per process.
        self.close()

        chrome_path = self.config.resolve_chrome()
        if not chrome_path:
            raise ChromeNotFound()

        browser = self._browser_factory(self.config, chrome_path, ext_dir, extra_flags)
        try:
            info = self._start_session(browser, manifest_path, manifest)
        except (CrxError, HttpClientError):
            self.close()
            browser.close()
            raise
        logger.info("extension loaded id=%s name=%s version=%s", info.id, info.name, info.version)

        # The session stays up when the first page fails to load.
        if initial_url:
            self.get_active_page().goto(initial_url, wait_until="domcontentloaded")
        return info

    def _start_session(
        self,
        browser: Browser,
        manifest_path: Path,
        manifest: dict[str, Any],
    ) -> ExtensionInfo:
        ext_id = self._discover(browser, timeout=self.config.discovery_timeout)
        info = ExtensionInfo(
            id=ext_id,
            name=str(manifest.get("name") or "Unknown"),
            version=str(manifest.get("version") or "0.0.0"),
            manifest_path=str(manifest_path),
        )
        extension = ExtensionContext(
            browser, info, self.collector, attach_timeout=self.config.discovery_timeout, open_page=self.new_page
        )
        if (manifest.get("background") or {}).get("service_worker"):
            extension.attach_service_worker()

        self._browser = browser
        self._extension = extension

        browser.on_target_created(self._attach_page)
        for page in browser.pages():
            self._attach_page(page, wait=2.0)
        return info

    def _attach_page(self, page: Page, wait: float = 0.0) -> None:
        """Wire collectors to a page once; later calls only wait for its event bus."""
        ext = self._extension
        with self._lock:
            fresh = page.target_id not in self._attached
            self._attached.add(page.target_id)
        if fresh:
            self.collector.attach_to_page(page, extension_id=ext.id if ext else None)
            self.recorder.attach_to_page(page)
        page.start_events(wait=wait)

    def close(self) -> None:
        browser, extension = self._browser, self._extension
        self._browser = None
        self._extension = None
        with self._lock:
            self._attached.clear()
        if extension is not None:
            extension.close()
        if browser is not None:
            try:
                browser.close()
            except (HttpClientError, OSError) as exc:
                logger.debug("browser close failed err=%s", exc)
            logger.info("session closed")

    @property
    def is_launched(self) -> bool:
        return self._browser is not None and self._browser.connected

    @property
    def extension_info(self) -> ExtensionInfo | None:
        return self._extension.info if self._extension is not None else None

    # ─────────────────────────────────────────────────────────────────────────
    # Accessors
    # ─────────────────────────────────────────────────────────────────────────

    def get_browser(self) -> Browser:
        if self._browser is None or not self._browser.connected:
            raise BrowserNotLaunched()
        return self._browser

    def get_extension(self) -> ExtensionContext:
        if self._extension is None:
            raise BrowserNotLaunched()
        return self._extension

    def get_active_page(self) -> Page:
        pages = self.get_browser().pages()
        if not pages:
            return self.new_page()
        return pages[-1]

    def get_target_page(self, target: str | None = None) -> Page:
        if target in (None, "page"):
            return self.get_active_page()

        prefix = f"{self.get_extension().info.origin}/"
        pages = self.get_browser().pages()
        if target == "popup":
            match = next((p for p in pages if p.url.startswith(prefix) and "popup" in p.url), None)
        elif target in ("sidepanel", "side-panel"):
            target = "sidepanel"
            match = next(
                (p for p in pages if p.url.startswith(prefix) and ("sidepanel" in p.url or "side_panel" in p.url)),
                None,
            )
        else:
            match = None
        if match is None:
            raise TargetPageNotFound(str(target))
        return match

    def new_page(self, url: str | None = None) -> Page:
        page = self.get_browser().new_page()
        self._attach_page(page, wait=2.0)
        if url:
            page.goto(url, wait_until="domcontentloaded")
        return page


__all__ = ["SessionManager", "read_manifest"]
