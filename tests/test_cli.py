from __future__ import annotations

import pytest

from mcp_servers.crx.main import parse_args


def test_parses_known_flags(monkeypatch) -> None:
    monkeypatch.delenv("CHROME_PATH", raising=False)
    args = parse_args(["--extension-path", "./ext", "--no-sandbox", "--verbose", "--user-data-dir", "/tmp/p"])
    assert args.extension_path == "./ext"
    assert args.no_sandbox is True
    assert args.verbose is True
    assert args.user_data_dir == "/tmp/p"
    assert args.chrome_path is None


def test_chrome_path_falls_back_to_env(monkeypatch) -> None:
    monkeypatch.setenv("CHROME_PATH", "/env/chrome")
    assert parse_args([]).chrome_path == "/env/chrome"
    assert parse_args(["--chrome-path", "/cli/chrome"]).chrome_path == "/cli/chrome"


def test_unknown_option_exits_1(capsys) -> None:
    with pytest.raises(SystemExit) as info:
        parse_args(["--bogus"])
    assert info.value.code == 1
    assert "Unknown option: --bogus" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [["--verb"], ["--ext", "/p"]])
def test_abbreviated_options_are_unknown(capsys, argv) -> None:
    with pytest.raises(SystemExit) as info:
        parse_args(argv)
    assert info.value.code == 1
    assert f"Unknown option: {argv[0]}" in capsys.readouterr().err


def test_help_exits_0(capsys) -> None:
    with pytest.raises(SystemExit) as info:
        parse_args(["--help"])
    assert info.value.code == 0
    assert "--extension-path" in capsys.readouterr().err


def test_missing_value_exits_1(capsys) -> None:
    with pytest.raises(SystemExit) as info:
        parse_args(["--extension-path"])
    assert info.value.code == 1
