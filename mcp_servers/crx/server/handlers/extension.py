"""
Extension-specific tool handlers - manifest, popup/side panel, DNR, permissions, messaging.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import tools
from ..types import ToolResult

if TYPE_CHECKING:
    from ...session_manager import SessionManager
    from ..definitions import (
        DnrMatchedRulesInput,
        DnrRulesInput,
        EvalExtensionPageInput,
        ManifestValidateInput,
        PermissionsCheckInput,
        SendMessageInput,
    )


def handle_manifest_validate(session: SessionManager, args: ManifestValidateInput) -> ToolResult:
    return ToolResult.json(tools.manifest_validate(session, args.extension_path))


def handle_open_popup(session: SessionManager, args: Any) -> ToolResult:
    return ToolResult.json(tools.open_popup(session))


def handle_open_sidepanel(session: SessionManager, args: Any) -> ToolResult:
    return ToolResult.json(tools.open_sidepanel(session))


def handle_dnr_rules(session: SessionManager, args: DnrRulesInput) -> ToolResult:
    return ToolResult.json(tools.dnr_rules(session, args.rule_type))


def handle_dnr_matched_rules(session: SessionManager, args: DnrMatchedRulesInput) -> ToolResult:
    return ToolResult.json(tools.dnr_matched_rules(session, args.tab_id))


def handle_permissions_check(session: SessionManager, args: PermissionsCheckInput) -> ToolResult:
    return ToolResult.json(tools.permissions_check(session, args.permissions))


def handle_eval_extension_page(session: SessionManager, args: EvalExtensionPageInput) -> ToolResult:
    return ToolResult.text(tools.eval_extension_page(session, args.expression, target=args.target))


def handle_extension_errors(session: SessionManager, args: Any) -> ToolResult:
    return ToolResult.json(tools.extension_errors(session))


def handle_send_message(session: SessionManager, args: SendMessageInput) -> ToolResult:
    result = tools.send_message(
        session,
        args.message,
        expect_response=args.expect_response,
        timeout_ms=args.timeout,
    )
    return ToolResult.json(result)


EXTENSION_HANDLERS: dict[str, tuple] = {
    "manifest_validate": (handle_manifest_validate, False),
    "open_popup": (handle_open_popup, True),
    "open_sidepanel": (handle_open_sidepanel, True),
    "dnr_rules": (handle_dnr_rules, True),
    "dnr_matched_rules": (handle_dnr_matched_rules, True),
    "permissions_check": (handle_permissions_check, True),
    "eval_extension_page": (handle_eval_extension_page, True),
    "extension_errors": (handle_extension_errors, True),
    "send_message": (handle_send_message, True),
}
