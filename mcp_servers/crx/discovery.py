"""Extension id discovery.

Strategies run in order; the first one that yields an id wins. A strategy
that raises counts as a miss. Each one bounds its own wait.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from .errors import ExtensionIdentityUnresolvable

if TYPE_CHECKING:
    from .browser import Browser

logger = logging.getLogger("mcp.crx.discovery")

EXTENSION_URL_RE = re.compile(r"chrome-extension://([a-z]{32})/")
EXTENSION_ID_RE = re.compile(r"^[a-z]{32}$")

Strategy = Callable[["Browser", float], "str | None"]

_EXTENSIONS_PAGE_JS = """(() => {
  const mgr = document.querySelector('extensions-manager');
  if (!mgr || !mgr.shadowRoot) return null;
  const list = mgr.shadowRoot.querySelector('extensions-item-list');
  if (!list || !list.shadowRoot) return null;
  return Array.from(list.shadowRoot.querySelectorAll('extensions-item')).map((item) => item.id);
})()"""


def extension_id_from_url(url: Any) -> str | None:
    m = EXTENSION_URL_RE.search(str(url or ""))
    return m.group(1) if m else None


def _first_id(targets: Sequence[dict[str, Any]]) -> str | None:
    for target in targets:
        ext_id = extension_id_from_url(target.get("url"))
        if ext_id:
            return ext_id
    return None


def wait_for_target(browser: Browser, timeout: float) -> str | None:
    """Wait on the discovery bus for the extension's worker or one of its pages."""
    target = browser.wait_for_target(
        lambda t: str(t.get("url") or "").startswith("chrome-extension://")
        and t.get("type") in {"service_worker", "page"},
        timeout=timeout,
    )
    return extension_id_from_url(target.get("url")) if target else None


def known_targets(browser: Browser, timeout: float) -> str | None:
    """Targets already listed by the DevTools HTTP endpoint."""
    return _first_id(browser.http_targets())


def protocol_targets(browser: Browser, timeout: float) -> str | None:
    """Target.getTargets over the browser websocket (includes workers)."""
    return _first_id(browser.protocol_targets())


def extensions_page(browser: Browser, timeout: float) -> str | None:
    """Read the id off chrome://extensions (shadow DOM of extensions-item)."""
    pages = browser.pages()
    page = pages[0] if pages else browser.new_page()
    page.goto("chrome://extensions", wait_until="load", timeout=timeout)
    time.sleep(1.0)
    ids = page.evaluate(_EXTENSIONS_PAGE_JS)
    for item_id in ids if isinstance(ids, list) else []:
        if isinstance(item_id, str) and EXTENSION_ID_RE.match(item_id):
            return item_id
    return None


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (wait_for_target, known_targets, protocol_targets, extensions_page)


def discover_extension_id(
    browser: Browser,
    *,
    timeout: float = 10.0,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> str:
    for strategy in strategies:
        name = getattr(strategy, "__name__", repr(strategy))
        try:
            ext_id = strategy(browser, timeout)
        except Exception as exc:  # noqa: BLE001
            logger.debug("discovery strategy failed strategy=%s err=%s", name, exc)
            continue
        if ext_id:
            logger.info("extension id discovered id=%s strategy=%s", ext_id, name)
            return ext_id
        logger.debug("discovery strategy missed strategy=%s", name)
    raise ExtensionIdentityUnresolvable()


__all__ = [
    "DEFAULT_STRATEGIES",
    "EXTENSION_URL_RE",
    "discover_extension_id",
    "extension_id_from_url",
    "extensions_page",
    "known_targets",
    "protocol_targets",
    "wait_for_target",
]
