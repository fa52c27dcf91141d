from __future__ import annotations

import base64
import io
import json

import pytest
from PIL import Image

from mcp_servers.crx import tools
from mcp_servers.crx.cdp import CdpError
from mcp_servers.crx.console import LogEntry
from mcp_servers.crx.errors import TargetPageNotFound
from mcp_servers.crx.network import NetworkEntry
from mcp_servers.crx.tools import extension as extension_tools
from mcp_servers.crx.tools.formatting import format_log_line, format_network_line, format_tree

EXT = "abcdefghijklmnopabcdefghijklmnop"


def _worker_value(launched, value, *, by_expression=None):
    """Script worker Runtime.evaluate; the liveness probe always succeeds."""
    seen: list[str] = []

    def evaluate(params):
        expr = params.get("expression", "")
        if expr == "1":
            return {"result": {"type": "number", "value": 1}}
        seen.append(expr)
        if by_expression:
            for needle, result in by_expression.items():
                if needle in expr:
                    return result if isinstance(result, Exception) else {"result": {"type": "object", "value": result}}
        return {"result": {"type": "object", "value": value}}

    launched.responses["Runtime.evaluate"] = evaluate
    return seen


def _png(width: int, height: int) -> str:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode()


# formatting


def test_format_tree_skips_role_none() -> None:
    tree = {
        "role": "RootWebArea",
        "name": "Popup",
        "children": [
            {"role": "none", "children": [{"role": "button", "name": "Save"}]},
            {"role": "textbox", "name": "Email", "value": "a@b.c"},
        ],
    }
    assert format_tree(tree) == (
        '[RootWebArea] "Popup"\n' '    [button] "Save"\n' '  [textbox] "Email" value="a@b.c"\n'
    )
    assert format_tree(None) == ""


def test_log_and_network_lines() -> None:
    entry = LogEntry(timestamp=1_000, source="popup", level="warn", text="careful", url="chrome-extension://x/popup.html")
    assert format_log_line(entry) == "[00:00:01.000] [popup] WARN: careful (chrome-extension://x/popup.html)"

    ok = NetworkEntry(timestamp=61_500, method="POST", url="https://api/x", status=201, mime_type="application/json")
    assert format_network_line(ok) == "[00:01:01.500] POST 201 https://api/x (application/json)"
    pending = NetworkEntry(timestamp=0, method="GET", url="https://api/y")
    assert format_network_line(pending) == "[00:00:00.000] GET --- https://api/y"


# page tools


def test_navigate_clears_buffers_first(launched) -> None:
    session = launched.session
    session.collector.add(LogEntry(timestamp=1, source="page", level="log", text="old"))
    session.recorder.add(NetworkEntry(timestamp=1, method="GET", url="https://old/"))

    result = tools.navigate(session, "https://example.org/", clear_console=True, clear_network=True)
    assert result == {"url": "https://example.org/", "title": "Fake title", "status": 200}
    assert len(session.collector) == 0
    assert len(session.recorder) == 0
    assert launched.page.goto_calls[-1] == "https://example.org/"


def test_snapshot_formats_tree(launched) -> None:
    launched.page.tree = {"role": "RootWebArea", "name": "Example", "children": [{"role": "link", "name": "More"}]}
    result = tools.snapshot(launched.session)
    assert result["url"] == "https://example.com/"
    assert result["accessibilityTree"] == '[RootWebArea] "Example"\n  [link] "More"\n'

    launched.page.tree = None
    assert tools.snapshot(launched.session)["accessibilityTree"] == "(empty page)"


def test_snapshot_of_missing_popup(launched) -> None:
    with pytest.raises(TargetPageNotFound):
        tools.snapshot(launched.session, "popup")


def test_screenshot_reports_size_and_falls_back(launched) -> None:
    launched.page.screenshot_data = _png(3, 2)
    shot = tools.screenshot(launched.session, "popup", full_page=True)
    assert (shot["width"], shot["height"]) == (3, 2)
    assert shot["mimeType"] == "image/png"
    assert shot["url"] == "https://example.com/"
    assert launched.page.actions[-1] == ("screenshot", True)


def test_image_size_of_garbage() -> None:
    assert tools.image_size("not base64!!") is None
    assert tools.image_size(base64.b64encode(b"plain text").decode()) is None


def test_click_type_and_wait(launched) -> None:
    session, page = launched.session, launched.page
    assert tools.click(session, "#go", double_click=True)["doubleClick"] is True
    result = tools.type_text(session, "#q", "hello", clear=True, submit=True)
    assert result["typed"] == "5 chars"
    tools.wait_for(session, ".done", state="hidden", timeout_ms=2500)

    assert page.actions == [
        ("click", "#go", 2),
        ("click", "#q", 3),
        ("key", "Backspace"),
        ("type", "#q", "hello"),
        ("key", "Enter"),
        ("wait", ".done", "hidden", 2.5),
    ]


# worker and storage tools


def test_eval_service_worker_renders_value(launched) -> None:
    _worker_value(launched, {"a": [1, 2]})
    assert json.loads(tools.eval_service_worker(launched.session, "({a: [1, 2]})")) == {"a": [1, 2]}

    _worker_value(launched, "plain")
    assert tools.eval_service_worker(launched.session, "'plain'") == "plain"


def test_eval_service_worker_undefined(launched) -> None:
    launched.responses["Runtime.evaluate"] = {"result": {"type": "undefined"}}
    assert tools.eval_service_worker(launched.session, "void 0") == "undefined"


def test_storage_get_through_worker(launched) -> None:
    seen = _worker_value(launched, {"theme": "dark"})
    assert tools.storage_get(launched.session, "theme", area="sync") == {"theme": "dark"}
    assert 'const keys = ["theme"]' in seen[-1]
    assert "chrome.storage.sync.get(keys)" in seen[-1]

    tools.storage_get(launched.session)
    assert "const keys = null" in seen[-1]


def test_storage_get_direct_uses_scratch_page(launched) -> None:
    opened = []

    def hook(page):
        page.evaluate_result = {"count": 3}
        opened.append(page)

    launched.browser.new_page_hook = hook
    assert tools.storage_get(launched.session, ["count"], area="session", direct=True) == {"count": 3}
    [page] = opened
    assert page.goto_calls == [f"chrome-extension://{EXT}/manifest.json"]
    assert "chrome.storage[\"session\"]" in page.evaluated[-1]
    assert page.closed


def test_storage_set(launched) -> None:
    seen = _worker_value(launched, "ok")
    result = tools.storage_set(launched.session, {"a": 1, "b": "x"}, area="local")
    assert result == {"success": True, "area": "local", "keys": ["a", "b"]}
    assert 'chrome.storage.local.set({"a": 1, "b": "x"})' in seen[-1]


def test_unknown_storage_area(launched) -> None:
    with pytest.raises(ValueError):
        tools.storage_get(launched.session, area="managed")


def test_dnr_and_permissions_parse_json_strings(launched) -> None:
    seen = _worker_value(launched, json.dumps({"dynamic": []}))
    assert tools.dnr_rules(launched.session, "dynamic") == {"dynamic": []}
    assert 'const ruleType = "dynamic"' in seen[-1]

    _worker_value(launched, {"count": 0, "rules": []})
    assert tools.dnr_matched_rules(launched.session, 12) == {"count": 0, "rules": []}

    seen = _worker_value(launched, {"declared": {}, "granted": {}, "checks": {}})
    tools.permissions_check(launched.session, ["storage"])
    assert 'const toCheck = ["storage"]' in seen[-1]


# content scripts and extension pages


def test_content_script_eval_main_world(launched) -> None:
    launched.page.evaluate_result = '{"title":"Example"}'
    out = tools.content_script_eval(launched.session, "({title: document.title})", world="MAIN")
    assert out == '{"title":"Example"}'
    assert 'eval("({title: document.title})")' in launched.page.evaluated[-1]


def test_content_script_eval_isolated_world(launched) -> None:
    seen = _worker_value(launched, None, by_expression={"chrome.tabs.query": 42, "executeScript": '"done"'})
    assert tools.content_script_eval(launched.session, "1 + 1") == '"done"'
    assert "tabId: 42" in seen[-1]


def test_content_script_eval_without_tab(launched) -> None:
    _worker_value(launched, None)
    assert json.loads(tools.content_script_eval(launched.session, "1")) == {
        "error": "No active tab found to execute script on"
    }


def test_eval_extension_page(launched) -> None:
    popup = launched.session.new_page(f"chrome-extension://{EXT}/popup.html")
    popup.raw_result = {"result": {"type": "object", "value": {"ready": True}}}
    assert json.loads(tools.eval_extension_page(launched.session, "({ready: true})", target="popup")) == {"ready": True}
    assert popup.evaluated[-1].startswith("(async () =>")

    popup.raw_result = {
        "result": {"type": "object"},
        "exceptionDetails": {"text": "Uncaught", "exception": {"description": "ReferenceError: x"}},
    }
    assert json.loads(tools.eval_extension_page(launched.session, "x", target="popup")) == {"error": "ReferenceError: x"}

    popup.raw_result = {"result": {"type": "undefined"}}
    assert tools.eval_extension_page(launched.session, "void 0", target="popup") == "(undefined)"


def test_send_message(launched) -> None:
    launched.browser.new_page_hook = lambda page: setattr(page, "evaluate_result", {"sent": True, "response": "pong"})
    result = tools.send_message(launched.session, {"type": "ping"}, timeout_ms=1000)
    assert result == {"sent": True, "response": "pong"}


# extension tools


def test_open_popup_as_tab(launched) -> None:
    _worker_value(launched, {"action": {"default_popup": "popup.html"}})
    result = tools.open_popup(launched.session)
    assert result["url"] == f"chrome-extension://{EXT}/popup.html"
    assert result["accessibilityTree"] == '[RootWebArea] "Fake"\n'
    popup = launched.session.get_target_page("popup")
    assert popup.viewport == (400, 600)


def test_open_sidepanel_without_path(launched) -> None:
    _worker_value(launched, {"action": {}})
    assert "error" in tools.open_sidepanel(launched.session)


def test_manifest_validate_tool(launched, tmp_path) -> None:
    result = tools.manifest_validate(launched.session)
    assert result["valid"] is True
    assert result["manifestPath"].endswith("manifest.json")

    bad = tmp_path / "bad"
    bad.mkdir()
    (bad / "manifest.json").write_text(json.dumps({"manifest_version": 2, "name": "x", "version": "1"}))
    result = tools.manifest_validate(launched.session, str(bad))
    assert result["valid"] is False

    assert "error" in tools.manifest_validate(launched.session, str(tmp_path / "none"))


def test_extension_errors(launched, monkeypatch) -> None:
    monkeypatch.setattr(extension_tools.time, "sleep", lambda _s: None)
    launched.browser.new_page_hook = lambda page: setattr(page, "evaluate_result", {"extensionId": EXT, "errors": []})
    launched.session.collector.add(LogEntry(timestamp=0, source="background-worker", level="error", text="boom"))

    result = tools.extension_errors(launched.session)
    assert result["chromeExtensionsPage"] == {"extensionId": EXT, "errors": []}
    assert result["recentServiceWorkerErrors"] == [{"timestamp": "1970-01-01T00:00:00.000+00:00", "message": "boom"}]


def test_reload_extension_reattaches(launched, monkeypatch) -> None:
    monkeypatch.setattr(extension_tools.time, "sleep", lambda _s: None)
    _worker_value(launched, None, by_expression={"chrome.runtime.reload": CdpError("Target closed")})
    before = len(launched.connections)

    result = tools.reload_extension(launched.session)
    assert result["success"] is True
    assert result["extensionId"] == EXT
    assert len(launched.connections) == before + 1


def test_extension_load_result(fakes, tmp_path, monkeypatch) -> None:
    from mcp_servers.crx.config import CrxConfig
    from mcp_servers.crx.session_manager import SessionManager

    browser = fakes.Browser()
    session = SessionManager(
        CrxConfig(chrome_path="/fake/chrome"),
        browser_factory=lambda *args: browser,
        discover=lambda browser, timeout: EXT,
    )
    ext = fakes.write_extension(tmp_path / "ext", {"manifest_version": 3, "name": "Demo", "version": "2.0"})
    result = tools.extension_load(session, str(ext))
    assert result == {
        "extensionId": EXT,
        "name": "Demo",
        "version": "2.0",
        "message": 'Extension "Demo" loaded successfully.',
    }
