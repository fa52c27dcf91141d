"""Tool input models and descriptions.

Each tool's ``inputSchema`` is generated from its model, so the schema and the
validation applied before the handler runs can never drift apart.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Target = Literal["page", "popup", "sidepanel"]
StorageArea = Literal["local", "sync", "session"]
LogSource = Literal["page", "background-worker", "popup", "side-panel", "content-script", "service-worker", "sidepanel"]
LogLevel = Literal["debug", "log", "info", "warn", "error"]


def _target_field() -> Any:
    return Field(default="page", description="Which context to use: page, popup or sidepanel")


class ToolInput(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, alias_generator=to_camel)


class NoInput(ToolInput):
    pass


# Core


class ExtensionLoadInput(ToolInput):
    extension_path: str = Field(description="Path to the unpacked extension directory")
    chrome_flags: list[str] | None = Field(default=None, description="Additional Chrome flags")
    url: str | None = Field(default=None, description="Initial URL to navigate to after loading")


class NavigateInput(ToolInput):
    url: str = Field(description="URL to navigate to")
    wait_until: Literal["load", "domcontentloaded", "networkidle0", "networkidle2"] = Field(
        default="domcontentloaded", description="When to consider navigation complete"
    )
    clear_network: bool = Field(default=False, description="Clear captured network requests before navigating")
    clear_console: bool = Field(default=False, description="Clear captured console logs before navigating")


class SnapshotInput(ToolInput):
    target: Target = _target_field()


class StorageGetInput(ToolInput):
    keys: str | list[str] | None = Field(default=None, description="Key(s) to retrieve. Omit to get all.")
    area: StorageArea = Field(default="local", description="Storage area")
    direct: bool = Field(
        default=False,
        description="Read via an extension page instead of the Service Worker (works even if the worker crashed)",
    )


class StorageSetInput(ToolInput):
    data: dict[str, Any] = Field(description="Key-value pairs to store")
    area: StorageArea = Field(default="local", description="Storage area")


class EvalServiceWorkerInput(ToolInput):
    expression: str = Field(description="JavaScript to evaluate in the Service Worker; the last statement is returned")


class ConsoleLogsInput(ToolInput):
    source: LogSource | None = Field(default=None, description="Filter by source")
    level: LogLevel | None = Field(default=None, description="Minimum log level")
    limit: int = Field(default=50, description="Max entries to return (newest)")
    clear: bool = Field(default=False, description="Clear logs after reading")
    since: float | None = Field(default=None, description="Only entries at or after this timestamp (ms epoch)")


class ClickInput(ToolInput):
    selector: str = Field(description="CSS selector of the element to click")
    double_click: bool = Field(default=False, description="Double-click instead of single click")
    target: Target = _target_field()


class TypeInput(ToolInput):
    selector: str = Field(description="CSS selector of the input element")
    text: str = Field(description="Text to type")
    clear: bool = Field(default=False, description="Clear existing value before typing")
    submit: bool = Field(default=False, description="Press Enter after typing")
    target: Target = _target_field()


class WaitForInput(ToolInput):
    selector: str = Field(description="CSS selector to wait for")
    state: Literal["visible", "hidden", "attached", "detached"] = Field(
        default="visible", description="Wait until element is visible/hidden/attached/detached"
    )
    timeout: int = Field(default=10000, ge=0, description="Timeout in milliseconds")
    target: Target = _target_field()


# Extension


class ManifestValidateInput(ToolInput):
    extension_path: str | None = Field(
        default=None, description="Path to extension directory. Uses loaded extension if omitted."
    )


class DnrRulesInput(ToolInput):
    rule_type: Literal["dynamic", "session", "static", "all"] = Field(
        default="all", description="Type of DNR rules to retrieve"
    )


class DnrMatchedRulesInput(ToolInput):
    tab_id: int | None = Field(default=None, description="Tab ID to filter matched rules. Omit for all tabs.")


class PermissionsCheckInput(ToolInput):
    permissions: list[str] | None = Field(default=None, description="Specific permissions to check. Omit to list all.")


class EvalExtensionPageInput(ToolInput):
    expression: str = Field(description="JavaScript to evaluate in the extension page context")
    target: Literal["popup", "sidepanel"] = Field(description="Which extension page to evaluate in")


class SendMessageInput(ToolInput):
    message: Any = Field(description="Message to send via chrome.runtime.sendMessage()")
    expect_response: bool = Field(default=True, description="Whether to wait for a response")
    timeout: int = Field(default=5000, ge=0, description="Timeout in milliseconds")


# Advanced


class ScreenshotInput(ToolInput):
    target: Target = _target_field()
    full_page: bool = Field(default=False, description="Capture full scrollable page")


class NetworkRequestsInput(ToolInput):
    filter: str | None = Field(default=None, description="Filter URLs containing this string (case-insensitive)")
    limit: int = Field(default=50, description="Max entries to return (newest)")
    clear: bool = Field(default=False, description="Clear entries after reading")


class ContentScriptEvalInput(ToolInput):
    expression: str = Field(description="JavaScript expression to evaluate in the active tab")
    world: Literal["ISOLATED", "MAIN"] = Field(
        default="ISOLATED", description="Execution world. MAIN accesses page JS context, ISOLATED is sandboxed."
    )


# name -> (description, input model), in tools/list order
TOOL_DEFINITIONS: dict[str, tuple[str, type[ToolInput]]] = {
    "extension_load": (
        "Load a Chrome extension and launch the browser. Returns extension ID.",
        ExtensionLoadInput,
    ),
    "navigate": ("Navigate to a URL in the browser.", NavigateInput),
    "snapshot": ("Get an accessibility snapshot of the page, popup, or side panel.", SnapshotInput),
    "storage_get": ("Read from chrome.storage (local/sync/session).", StorageGetInput),
    "storage_set": ("Write to chrome.storage (local/sync/session).", StorageSetInput),
    "eval_service_worker": ("Execute JavaScript in the extension Service Worker context.", EvalServiceWorkerInput),
    "console_logs": (
        "Read console logs from the page, service worker, popup, side panel, or content scripts.",
        ConsoleLogsInput,
    ),
    "click": ("Click an element by CSS selector.", ClickInput),
    "type": ("Type text into an input element.", TypeInput),
    "wait_for": ("Wait for an element to reach a state.", WaitForInput),
    "manifest_validate": ("Validate manifest.json against Manifest V3 rules.", ManifestValidateInput),
    "open_popup": ("Open the extension popup in a new tab and return its accessibility tree.", NoInput),
    "open_sidepanel": ("Open the extension side panel in a new tab and return its accessibility tree.", NoInput),
    "dnr_rules": ("List declarativeNetRequest rules with permission warnings.", DnrRulesInput),
    "dnr_matched_rules": ("List declarativeNetRequest rules that matched requests.", DnrMatchedRulesInput),
    "permissions_check": ("Compare declared and granted extension permissions.", PermissionsCheckInput),
    "eval_extension_page": ("Execute JavaScript in an open popup or side panel page.", EvalExtensionPageInput),
    "extension_errors": ("Read errors shown on chrome://extensions plus recent Service Worker errors.", NoInput),
    "send_message": ("Send a chrome.runtime message from an extension page.", SendMessageInput),
    "screenshot": ("Take a PNG screenshot of the page, popup, or side panel.", ScreenshotInput),
    "network_requests": ("List captured network responses.", NetworkRequestsInput),
    "content_script_eval": ("Execute JavaScript in the active tab (isolated or main world).", ContentScriptEvalInput),
    "reload_extension": ("Reload the extension and re-attach to its Service Worker.", NoInput),
}

__all__ = ["TOOL_DEFINITIONS", "ToolInput"]
