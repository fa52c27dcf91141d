"""Error taxonomy for the extension session layer.

Every error carries a short machine-readable ``code`` plus a human message.
Tool handlers never catch these; the server boundary turns them into
structured ``isError`` results.
"""

from __future__ import annotations

from typing import Any


class CrxError(Exception):
    code = "CRX_ERROR"
    default_message = "Extension session error"
    default_suggestion: str | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.suggestion = suggestion if suggestion is not None else self.default_suggestion
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class BrowserNotLaunched(CrxError):
    code = "BROWSER_NOT_LAUNCHED"
    default_message = "Browser not launched. Call extension_load first."


class InvalidExtensionPath(CrxError):
    code = "INVALID_EXTENSION_PATH"
    default_message = "Extension path is not a directory with a readable manifest.json"


class ChromeNotFound(CrxError):
    code = "CHROME_NOT_FOUND"
    default_message = "Chrome not found."
    default_suggestion = (
        "Install Chrome for Testing (npx playwright install chromium), "
        "pass --chrome-path, or set the CHROME_PATH environment variable"
    )


class BrowserLaunchFailed(CrxError):
    code = "BROWSER_LAUNCH_FAILED"
    default_message = "Chrome started but its DevTools endpoint never became reachable"


class ExtensionIdentityUnresolvable(CrxError):
    code = "EXTENSION_ID_UNRESOLVABLE"
    default_message = "Could not detect extension ID. Make sure the extension loads correctly."


class TargetPageNotFound(CrxError):
    code = "TARGET_PAGE_NOT_FOUND"
    default_message = "Target page not found"

    def __init__(self, target: str) -> None:
        super().__init__(
            f"No {target} page found. Use open_{target} first.",
            suggestion="Extension popups and side panels need a real user gesture; open them as tabs instead",
            details={"target": target},
        )


class ServiceWorkerNotFound(CrxError):
    code = "SW_NOT_FOUND"
    default_message = "Service Worker not found or inactive."
    default_suggestion = "Check that manifest.background.service_worker is set and the worker registers without errors"


class ServiceWorkerEvalError(CrxError):
    code = "SW_EVAL_ERROR"
    default_message = "SW evaluation error"


__all__ = [
    "BrowserLaunchFailed",
    "BrowserNotLaunched",
    "ChromeNotFound",
    "CrxError",
    "ExtensionIdentityUnresolvable",
    "InvalidExtensionPath",
    "ServiceWorkerEvalError",
    "ServiceWorkerNotFound",
    "TargetPageNotFound",
]
