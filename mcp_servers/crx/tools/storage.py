"""chrome.storage access (local / sync / session).

Reads go through the service worker by default. ``direct`` reads use a
throwaway extension page instead, which still works while the worker is
crashed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import extension_scratch_page, js

if TYPE_CHECKING:
    from ..session_manager import SessionManager

STORAGE_AREAS = ("local", "sync", "session")


def _keys_arg(keys: str | list[str] | None) -> str:
    if keys is None:
        return "null"
    return js([keys] if isinstance(keys, str) else list(keys))


def _check_area(area: str) -> str:
    if area not in STORAGE_AREAS:
        raise ValueError(f"Unknown storage area: {area}")
    return area


def storage_get(
    session: SessionManager,
    keys: str | list[str] | None = None,
    *,
    area: str = "local",
    direct: bool = False,
) -> Any:
    area = _check_area(area)
    if direct:
        return _storage_get_direct(session, keys, area)
    ext = session.get_extension()
    return ext.eval_in_service_worker_raw(
        f"(async () => {{ const keys = {_keys_arg(keys)}; return await chrome.storage.{area}.get(keys); }})()"
    )


def _storage_get_direct(session: SessionManager, keys: str | list[str] | None, area: str) -> Any:
    expression = f"""(async () => {{
  try {{
    const storage = globalThis.chrome && chrome.storage && chrome.storage[{js(area)}];
    if (!storage) return {{ error: 'chrome.storage.' + {js(area)} + ' not available' }};
    return await storage.get({_keys_arg(keys)});
  }} catch (e) {{
    return {{ error: e.message }};
  }}
}})()"""
    with extension_scratch_page(session) as page:
        return page.evaluate(expression)


def storage_set(session: SessionManager, data: dict[str, Any], *, area: str = "local") -> dict[str, Any]:
    area = _check_area(area)
    ext = session.get_extension()
    ext.eval_in_service_worker_raw(f"(async () => {{ await chrome.storage.{area}.set({js(data)}); return 'ok'; }})()")
    return {"success": True, "area": area, "keys": list(data)}


__all__ = ["STORAGE_AREAS", "storage_get", "storage_set"]
