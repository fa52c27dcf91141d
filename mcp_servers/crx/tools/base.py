"""
Shared helpers for extension debugging tools.

Provides:
- display_value: render an evaluation result as tool text
- evaluate_for_display: evaluate user code in a page and render the value
- extension_scratch_page: throwaway page on the extension origin
"""

from __future__ import annotations

import json
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from ..cdp import describe_exception
from ..extension import UNDEFINED, wrap_expression

if TYPE_CHECKING:
    from ..browser import Page
    from ..session_manager import SessionManager


def display_value(value: Any) -> str:
    """Strings verbatim, everything else as indented JSON."""
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


def js(value: Any) -> str:
    """Python value as a JavaScript literal."""
    return json.dumps(value, ensure_ascii=False)


def evaluate_for_display(page: Page, expression: str) -> str:
    """Evaluate wrapped user code in ``page``; errors come back as a JSON error object."""
    res = page.evaluate_raw(wrap_expression(expression))
    details = res.get("exceptionDetails")
    if isinstance(details, dict):
        return js({"error": describe_exception(details)})
    result = res.get("result") or {}
    if result.get("type") == "undefined":
        return "(undefined)"
    return display_value(result.get("value"))


@contextmanager
def extension_scratch_page(session: SessionManager) -> Generator[Page, None, None]:
    """Open the extension's manifest.json in a new tab, close it afterwards.

    Scripts there run with full ``chrome.*`` access even while the service
    worker is stopped or crashed.
    """
    page = session.get_extension().open_extension_page("manifest.json")
    try:
        yield page
    finally:
        page.close()


__all__ = ["display_value", "evaluate_for_display", "extension_scratch_page", "js"]
