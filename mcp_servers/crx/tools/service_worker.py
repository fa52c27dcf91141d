"""Tools that run code in extension contexts (worker, extension pages, content scripts)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from .base import display_value, evaluate_for_display, extension_scratch_page, js

if TYPE_CHECKING:
    from ..session_manager import SessionManager


def _maybe_json(value: Any) -> Any:
    """Scripts that return JSON.stringify(...) come back as strings."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def eval_service_worker(session: SessionManager, expression: str) -> str:
    ext = session.get_extension()
    return display_value(ext.eval_in_service_worker(expression))


def _active_tab_id(session: SessionManager) -> int | None:
    tab_id = session.get_extension().eval_in_service_worker_raw(
        "(async () => { const tabs = await chrome.tabs.query({ active: true, currentWindow: true });"
        " return (tabs[0] && tabs[0].id) || null; })()"
    )
    return tab_id if isinstance(tab_id, int) else None


def content_script_eval(session: SessionManager, expression: str, *, world: str = "ISOLATED") -> str:
    """Evaluate in the active tab.

    Extension pages are evaluated directly. MAIN runs in the page's own JS
    context. ISOLATED goes through ``chrome.scripting.executeScript`` from the
    worker, so it needs the ``scripting`` permission and host access.
    """
    ext = session.get_extension()
    page = session.get_active_page()

    if page.url.startswith("chrome-extension://"):
        return evaluate_for_display(page, expression)

    if world == "MAIN":
        result = page.evaluate(
            f"(() => {{ try {{ return JSON.stringify(eval({js(expression)})); }}"
            " catch (e) { return JSON.stringify({ error: e.message }); } })()"
        )
        return display_value(result)

    tab_id = _active_tab_id(session)
    if tab_id is None:
        return js({"error": "No active tab found to execute script on"})

    result = ext.eval_in_service_worker_raw(
        f"""(async () => {{
  const results = await chrome.scripting.executeScript({{
    target: {{ tabId: {tab_id} }},
    world: "ISOLATED",
    func: (expr) => {{
      try {{
        return JSON.stringify(eval(expr));
      }} catch (e) {{
        return JSON.stringify({{ error: e.message }});
      }}
    }},
    args: [{js(expression)}],
  }});
  return (results[0] && results[0].result) || null;
}})()"""
    )
    return display_value(result)


def eval_extension_page(session: SessionManager, expression: str, *, target: str) -> str:
    page = session.get_target_page(target)
    return evaluate_for_display(page, expression)


def send_message(
    session: SessionManager,
    message: Any,
    *,
    expect_response: bool = True,
    timeout_ms: int = 5000,
) -> Any:
    """chrome.runtime.sendMessage from a throwaway extension page."""
    expression = f"""(async () => {{
  const msg = {js(message)};
  try {{
    if (!{js(expect_response)}) {{
      chrome.runtime.sendMessage(msg);
      return {{ sent: true, response: null }};
    }}
    const response = await Promise.race([
      chrome.runtime.sendMessage(msg),
      new Promise((_, reject) => setTimeout(() => reject(new Error('Timeout waiting for response')), {int(timeout_ms)})),
    ]);
    return {{ sent: true, response: response === undefined ? null : response }};
  }} catch (e) {{
    return {{ sent: false, error: e.message }};
  }}
}})()"""
    with extension_scratch_page(session) as page:
        return page.evaluate(expression, timeout=timeout_ms / 1000 + 5.0)


_DNR_RULES_JS = """(async () => {
  const ruleType = %s;
  const result = {};
  if (!chrome.declarativeNetRequest) {
    return { error: 'declarativeNetRequest API not available. Check permissions.' };
  }
  try {
    if (ruleType === 'dynamic' || ruleType === 'all') {
      result.dynamic = await chrome.declarativeNetRequest.getDynamicRules();
    }
    if (ruleType === 'session' || ruleType === 'all') {
      result.session = await chrome.declarativeNetRequest.getSessionRules();
    }
    if (ruleType === 'static' || ruleType === 'all') {
      try {
        result.enabledRulesets = await chrome.declarativeNetRequest.getEnabledRulesets();
      } catch (e) {
        result.enabledRulesets = [];
      }
    }
  } catch (e) {
    return { error: e.message };
  }
  const manifest = chrome.runtime.getManifest();
  const perms = new Set(manifest.permissions || []);
  const hostPerms = manifest.host_permissions || [];
  const hasHostAccess = perms.has('declarativeNetRequestWithHostAccess') || hostPerms.length > 0;
  const needsHost = new Set(['redirect', 'modifyHeaders']);
  const rules = [
    ...(result.dynamic || []).map((r) => ({ ...r, source: 'dynamic' })),
    ...(result.session || []).map((r) => ({ ...r, source: 'session' })),
  ];
  const warnings = [];
  for (const rule of rules) {
    const action = rule.action && rule.action.type;
    if (needsHost.has(action) && !hasHostAccess) {
      warnings.push('Rule ' + rule.id + ' (' + rule.source + '): "' + action + '" action requires ' +
        'declarativeNetRequestWithHostAccess permission or host_permissions. ' +
        'Without it, this rule will be silently ignored.');
    }
  }
  if (warnings.length > 0) result.warnings = warnings;
  return result;
})()"""


def dnr_rules(session: SessionManager, rule_type: str = "all") -> Any:
    return _maybe_json(session.get_extension().eval_in_service_worker_raw(_DNR_RULES_JS % js(rule_type)))


_DNR_MATCHED_JS = """(async () => {
  if (!chrome.declarativeNetRequest || !chrome.declarativeNetRequest.getMatchedRules) {
    return { error: 'declarativeNetRequest.getMatchedRules not available. Add declarativeNetRequestFeedback permission.' };
  }
  try {
    const filter = {};
    const tabId = %s;
    if (tabId !== null) filter.tabId = tabId;
    const { rulesMatchedInfo } = await chrome.declarativeNetRequest.getMatchedRules(filter);
    return {
      count: rulesMatchedInfo.length,
      rules: rulesMatchedInfo.map((r) => ({
        ruleId: r.rule.ruleId,
        rulesetId: r.rule.rulesetId,
        tabId: r.tabId,
        timeStamp: r.timeStamp,
      })),
    };
  } catch (e) {
    return { error: e.message };
  }
})()"""


def dnr_matched_rules(session: SessionManager, tab_id: int | None = None) -> Any:
    return _maybe_json(session.get_extension().eval_in_service_worker_raw(_DNR_MATCHED_JS % js(tab_id)))


_PERMISSIONS_JS = """(async () => {
  const manifest = chrome.runtime.getManifest();
  const declared = {
    permissions: manifest.permissions || [],
    hostPermissions: manifest.host_permissions || [],
    optionalPermissions: manifest.optional_permissions || [],
  };
  const granted = await chrome.permissions.getAll();
  const toCheck = %s;
  if (toCheck === null) return { declared, granted };
  const checks = {};
  for (const p of toCheck) {
    const isHost = p.includes('://') || p === '<all_urls>';
    if (isHost) {
      checks[p] = {
        declared: declared.hostPermissions.some((h) => h === p || h === '<all_urls>'),
        granted: (granted.origins || []).includes(p),
      };
    } else {
      checks[p] = {
        declared: declared.permissions.includes(p) || declared.optionalPermissions.includes(p),
        granted: (granted.permissions || []).includes(p),
      };
    }
  }
  return { declared, granted, checks };
})()"""


def permissions_check(session: SessionManager, permissions: list[str] | None = None) -> Any:
    return _maybe_json(session.get_extension().eval_in_service_worker_raw(_PERMISSIONS_JS % js(permissions)))


__all__ = [
    "content_script_eval",
    "dnr_matched_rules",
    "dnr_rules",
    "eval_extension_page",
    "eval_service_worker",
    "permissions_check",
    "send_message",
]
