"""Extension lifecycle and inspection tools."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..cdp import CdpError
from ..config import expand_path
from ..errors import ServiceWorkerEvalError, ServiceWorkerNotFound
from ..manifest import summarize, validate_manifest
from .formatting import format_tree, iso_time

if TYPE_CHECKING:
    from ..session_manager import SessionManager

logger = logging.getLogger("mcp.crx.tools")

RELOAD_SETTLE_SECONDS = 2.0

POPUP_VIEWPORT = (400, 600)
SIDEPANEL_VIEWPORT = (400, 800)

_EXTENSION_ERRORS_JS = """(() => {
  const extId = %s;
  const mgr = document.querySelector('extensions-manager');
  if (!mgr || !mgr.shadowRoot) return { error: 'Cannot access extensions-manager shadow DOM' };
  const list = mgr.shadowRoot.querySelector('extensions-item-list');
  if (!list || !list.shadowRoot) return { error: 'Cannot access extensions-item-list shadow DOM' };
  for (const item of list.shadowRoot.querySelectorAll('extensions-item')) {
    if (item.id !== extId) continue;
    const sr = item.shadowRoot;
    if (!sr) return { error: 'Cannot access extension item shadow DOM' };
    const errors = [];
    sr.querySelectorAll('.warnings-list li, .error-message, [class*="error"], [class*="warning"]').forEach((el) => {
      const text = (el.textContent || '').trim();
      if (text) errors.push(text);
    });
    return { extensionId: extId, errors };
  }
  return { error: 'Extension ' + extId + ' not found on chrome://extensions page' };
})()"""


def extension_load(
    session: SessionManager,
    extension_path: str,
    *,
    chrome_flags: list[str] | None = None,
    url: str | None = None,
) -> dict[str, Any]:
    info = session.launch(extension_path, chrome_flags, url)
    return {
        "extensionId": info.id,
        "name": info.name,
        "version": info.version,
        "message": f'Extension "{info.name}" loaded successfully.',
    }


def reload_extension(session: SessionManager) -> dict[str, Any]:
    ext = session.get_extension()
    try:
        ext.eval_in_service_worker("chrome.runtime.reload()")
    except (ServiceWorkerEvalError, ServiceWorkerNotFound) as exc:
        # The worker dies mid-call; this is the normal outcome.
        logger.debug("reload trigger ended with err=%s", exc)
    time.sleep(RELOAD_SETTLE_SECONDS)
    ext.attach_service_worker()
    return {
        "success": True,
        "message": "Extension reloaded. Service Worker re-attached.",
        "extensionId": ext.id,
    }


def _open_as_tab(session: SessionManager, url: str, viewport: tuple[int, int], note: str) -> dict[str, Any]:
    page = session.get_extension().open_extension_page(url)
    page.set_viewport(*viewport)
    tree = page.accessibility_snapshot()
    return {
        "url": url,
        "title": page.title(),
        "note": note,
        "accessibilityTree": format_tree(tree) if tree else "(empty)",
    }


def open_popup(session: SessionManager) -> dict[str, Any]:
    url = session.get_extension().popup_url()
    if not url:
        return {"error": "No popup defined in manifest action.default_popup"}
    return _open_as_tab(session, url, POPUP_VIEWPORT, "Popup opened in a new tab (not as actual popup overlay)")


def open_sidepanel(session: SessionManager) -> dict[str, Any]:
    url = session.get_extension().sidepanel_url()
    if not url:
        return {"error": "No side_panel.default_path defined in manifest"}
    return _open_as_tab(
        session,
        url,
        SIDEPANEL_VIEWPORT,
        "Side panel opened in a new tab (chrome.sidePanel.open requires user gesture)",
    )


def manifest_validate(session: SessionManager, extension_path: str | None = None) -> dict[str, Any]:
    """Static checks on manifest.json; defaults to the loaded extension."""
    if extension_path:
        manifest_path: Path | None = Path(expand_path(extension_path)).resolve() / "manifest.json"
    else:
        info = session.extension_info
        manifest_path = Path(info.manifest_path) if info else None

    if manifest_path is None or not manifest_path.is_file():
        return {"error": "manifest.json not found. Provide extensionPath or load an extension first."}
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        return {"error": f"Failed to parse manifest.json: {exc}"}
    if not isinstance(manifest, dict):
        return {"error": "Failed to parse manifest.json: top level is not an object"}
    return {"manifestPath": str(manifest_path), **summarize(validate_manifest(manifest))}


def extension_errors(session: SessionManager) -> dict[str, Any]:
    """chrome://extensions warnings for this extension plus recent worker errors."""
    ext = session.get_extension()
    page = session.new_page()
    try:
        page.goto("chrome://extensions", wait_until="load", timeout=10.0)
        time.sleep(1.5)
        page_errors = page.evaluate(_EXTENSION_ERRORS_JS % json.dumps(ext.id))
    except CdpError as exc:
        page_errors = {"error": f"Failed to evaluate chrome://extensions page: {exc}"}
    finally:
        page.close()

    recent = session.collector.get_entries(source="background-worker", level="error", limit=20)
    return {
        "chromeExtensionsPage": page_errors,
        "recentServiceWorkerErrors": [{"timestamp": iso_time(e.timestamp), "message": e.text} for e in recent],
    }


__all__ = [
    "extension_errors",
    "extension_load",
    "manifest_validate",
    "open_popup",
    "open_sidepanel",
    "reload_extension",
]
