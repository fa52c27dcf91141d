from __future__ import annotations

from mcp_servers.crx.extension import UNDEFINED, wrap_expression


def test_single_expression_gets_return() -> None:
    assert wrap_expression("1 + 1") == "(async () => { return 1 + 1; })()"


def test_trailing_semicolon_is_dropped() -> None:
    assert wrap_expression("  chrome.runtime.id;  ") == "(async () => { return chrome.runtime.id; })()"


def test_multiple_statements_return_the_last() -> None:
    assert wrap_expression("const a = 1; const b = 2; a + b;") == (
        "(async () => { const a = 1;\nconst b = 2;\nreturn a + b; })()"
    )


def test_explicit_return_is_wrapped_verbatim() -> None:
    src = "const x = await chrome.storage.local.get(null); return x"
    assert wrap_expression(src) == f"(async () => {{ {src} }})()"


def test_existing_iife_passes_through() -> None:
    src = "(async () => { return 42; })()"
    assert wrap_expression(src) == src
    fn = "(function () { return 1; })()"
    assert wrap_expression(fn) == fn
    spaced = "(async\t() => 1)()"
    assert wrap_expression(spaced) == spaced


def test_returnvalue_identifier_is_not_a_return() -> None:
    assert wrap_expression("returnValue") == "(async () => { return returnValue; })()"


def test_undefined_sentinel() -> None:
    assert repr(UNDEFINED) == "undefined"
    assert not UNDEFINED
    assert UNDEFINED is type(UNDEFINED)()
