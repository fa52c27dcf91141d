from __future__ import annotations

from mcp_servers.crx.config import CrxConfig
from mcp_servers.crx.launcher import BrowserLauncher, extension_flags


def test_extension_flags() -> None:
    assert extension_flags("/ext") == ["--disable-extensions-except=/ext", "--load-extension=/ext"]


def test_launch_command() -> None:
    config = CrxConfig(no_sandbox=True, headless=True, cdp_port=9333, extra_flags=["--lang=en"])
    cmd = BrowserLauncher(config, "/usr/bin/chromium").build_launch_command("/ext", "/tmp/profile", ["--mute-audio"])

    assert cmd[0] == "/usr/bin/chromium"
    assert cmd[-1] == "about:blank"
    assert "--load-extension=/ext" in cmd
    assert "--remote-debugging-port=9333" in cmd
    assert "--user-data-dir=/tmp/profile" in cmd
    assert "--no-sandbox" in cmd
    assert "--headless=new" in cmd
    assert cmd.index("--lang=en") < cmd.index("--mute-audio")


def test_default_command_is_headful_with_ephemeral_port() -> None:
    cmd = BrowserLauncher(CrxConfig(), "chrome").build_launch_command("/ext", "/tmp/p")
    assert "--remote-debugging-port=0" in cmd
    assert not any(flag.startswith("--headless") for flag in cmd)
    assert "--no-sandbox" not in cmd


def test_active_port_file(tmp_path) -> None:
    launcher = BrowserLauncher(CrxConfig(), "chrome")
    assert launcher._read_active_port(str(tmp_path)) is None
    (tmp_path / "DevToolsActivePort").write_text("41234\n/devtools/browser/abc\n", encoding="utf-8")
    assert launcher._read_active_port(str(tmp_path)) == 41234


def test_start_reports_spawn_failure(tmp_path) -> None:
    config = CrxConfig(user_data_dir=str(tmp_path / "profile"), launch_timeout=0.5)
    result = BrowserLauncher(config, str(tmp_path / "no-such-chrome")).start("/ext")
    assert result.started is False
    assert result.port is None
    assert (tmp_path / "profile").is_dir()


def test_stop_without_process() -> None:
    launcher = BrowserLauncher(CrxConfig(), "chrome")
    assert launcher.stop() is False
    assert not launcher.running
