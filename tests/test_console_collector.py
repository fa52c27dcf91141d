from __future__ import annotations

from mcp_servers.crx.console import (
    SEVERITY_ORDER,
    LogCollector,
    LogEntry,
    map_level,
    page_source,
)

EXT = "abcdefghijklmnopabcdefghijklmnop"


def _entry(ts: float, level: str = "log", source: str = "page", text: str = "x") -> LogEntry:
    return LogEntry(timestamp=ts, source=source, level=level, text=text)


def test_buffer_keeps_newest_entries_in_order() -> None:
    c = LogCollector(max_entries=1000)
    for i in range(1005):
        c.add(_entry(i, text=str(i)))
    entries = c.get_entries()
    assert len(entries) == 1000
    assert entries[0].text == "5"
    assert entries[-1].text == "1004"
    assert [e.timestamp for e in entries] == sorted(e.timestamp for e in entries)


def test_level_filter_applies_before_limit() -> None:
    c = LogCollector()
    c.add(_entry(1, "debug"))
    c.add(_entry(2, "error"))
    c.add(_entry(3, "warn"))
    result = c.get_entries(level="warn", limit=1)
    assert [(e.level, e.timestamp) for e in result] == [("warn", 3)]


def test_level_is_a_minimum_severity() -> None:
    c = LogCollector()
    for i, level in enumerate(["debug", "log", "info", "warn", "error"]):
        c.add(_entry(i, level))
    assert [e.level for e in c.get_entries(level="info")] == ["info", "warn", "error"]
    assert len(c.get_entries(level="debug")) == 5
    assert SEVERITY_ORDER["debug"] < SEVERITY_ORDER["log"] < SEVERITY_ORDER["info"]
    assert SEVERITY_ORDER["info"] < SEVERITY_ORDER["warn"] < SEVERITY_ORDER["error"]


def test_unknown_level_keeps_everything() -> None:
    c = LogCollector()
    c.add(_entry(1, "debug"))
    c.add(_entry(2, "error"))
    assert len(c.get_entries(level="verbose")) == 2


def test_since_and_source_filters() -> None:
    c = LogCollector()
    c.add(_entry(10, source="page"))
    c.add(_entry(20, source="background-worker"))
    c.add(_entry(30, source="background-worker"))
    assert [e.timestamp for e in c.get_entries(since=20)] == [20, 30]
    assert [e.timestamp for e in c.get_entries(source="background-worker", since=25)] == [30]


def test_source_aliases_from_the_wire() -> None:
    c = LogCollector()
    c.add(_entry(1, source="background-worker"))
    c.add(_entry(2, source="side-panel"))
    assert len(c.get_entries(source="service-worker")) == 1
    assert len(c.get_entries(source="sidepanel")) == 1


def test_clear_empties_whole_buffer_but_returns_filtered_view() -> None:
    c = LogCollector()
    c.add(_entry(1, "debug"))
    c.add(_entry(2, "error"))
    result = c.get_entries(level="error", clear=True)
    assert [e.level for e in result] == ["error"]
    assert c.get_entries() == []


def test_level_map() -> None:
    assert map_level("warning") == "warn"
    assert map_level("assert") == "error"
    assert map_level("trace") == "debug"
    assert map_level("verbose") == "debug"
    assert map_level("table") == "log"
    assert map_level("dir") == "log"
    assert map_level("startGroup") == "log"
    assert map_level(None) == "log"


def test_page_source_from_url() -> None:
    assert page_source(f"chrome-extension://{EXT}/popup.html", EXT) == "popup"
    assert page_source(f"chrome-extension://{EXT}/side_panel/index.html", EXT) == "side-panel"
    assert page_source(f"chrome-extension://{EXT}/options.html", EXT) == "page"
    assert page_source("https://example.com/popup", EXT) == "page"


def test_attach_to_page_collects_console_and_exceptions(fakes) -> None:
    c = LogCollector()
    page = fakes.Page("p1", url="https://example.com/")
    c.attach_to_page(page, extension_id=EXT)

    page.emit(
        "Runtime.consoleAPICalled",
        {"type": "warning", "args": [{"type": "string", "value": "hello"}, {"type": "number", "value": 3}]},
    )
    page.emit(
        "Runtime.exceptionThrown",
        {"exceptionDetails": {"text": "Uncaught", "exception": {"description": "TypeError: boom"}}},
    )

    entries = c.get_entries()
    assert [(e.source, e.level, e.text) for e in entries] == [
        ("page", "warn", "hello 3"),
        ("page", "error", "TypeError: boom"),
    ]
    assert entries[0].url == "https://example.com/"


def test_attach_to_page_tracks_url_at_event_time(fakes) -> None:
    c = LogCollector()
    page = fakes.Page("p1")
    c.attach_to_page(page, extension_id=EXT)
    page.url = f"chrome-extension://{EXT}/popup.html"
    page.emit("Runtime.consoleAPICalled", {"type": "log", "args": [{"type": "object", "description": "Object"}]})
    [entry] = c.get_entries()
    assert entry.source == "popup"
    assert entry.text == "Object"


def test_isolated_world_output_is_content_script(fakes) -> None:
    c = LogCollector()
    page = fakes.Page("p1", url="https://example.com/")
    c.attach_to_page(page, extension_id=EXT)
    page.emit(
        "Runtime.executionContextCreated",
        {"context": {"id": 7, "origin": f"chrome-extension://{EXT}", "auxData": {"type": "isolated"}}},
    )
    page.emit("Runtime.consoleAPICalled", {"type": "info", "executionContextId": 7, "args": [{"value": "cs"}]})
    page.emit("Runtime.consoleAPICalled", {"type": "info", "executionContextId": 1, "args": [{"value": "main"}]})
    assert [(e.source, e.text) for e in c.get_entries()] == [("content-script", "cs"), ("page", "main")]


def test_attach_to_worker(fakes) -> None:
    c = LogCollector()
    bus = fakes.Bus()
    c.attach_to_worker(bus, f"chrome-extension://{EXT}/background.js")
    bus.emit("Runtime.consoleAPICalled", {"type": "error", "args": [{"value": "sw failed"}]})
    bus.emit("Runtime.exceptionThrown", {"exceptionDetails": {"text": "Uncaught ReferenceError"}})
    entries = c.get_entries(source="background-worker")
    assert [(e.level, e.text) for e in entries] == [("error", "sw failed"), ("error", "Uncaught ReferenceError")]
