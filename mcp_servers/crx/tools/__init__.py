"""
Extension debugging tools organized by domain.

Each module provides focused functionality:
- base: shared evaluation helpers and the scratch extension page
- formatting: text renderers (accessibility tree, log lines)
- page: navigation, snapshot, screenshot, click/type/wait
- storage: chrome.storage read/write
- service_worker: worker / extension page / content script evaluation, DNR, permissions
- extension: load, reload, popup/side panel, manifest checks, chrome://extensions errors
- logs: console and network buffers
"""

from .extension import (
    extension_errors,
    extension_load,
    manifest_validate,
    open_popup,
    open_sidepanel,
    reload_extension,
)
from .logs import console_logs, network_requests
from .page import click, image_size, navigate, screenshot, snapshot, type_text, wait_for
from .service_worker import (
    content_script_eval,
    dnr_matched_rules,
    dnr_rules,
    eval_extension_page,
    eval_service_worker,
    permissions_check,
    send_message,
)
from .storage import storage_get, storage_set

__all__ = [
    "click",
    "console_logs",
    "content_script_eval",
    "dnr_matched_rules",
    "dnr_rules",
    "eval_extension_page",
    "eval_service_worker",
    "extension_errors",
    "extension_load",
    "image_size",
    "manifest_validate",
    "navigate",
    "network_requests",
    "open_popup",
    "open_sidepanel",
    "permissions_check",
    "reload_extension",
    "screenshot",
    "send_message",
    "snapshot",
    "storage_get",
    "storage_set",
    "type_text",
    "wait_for",
]
