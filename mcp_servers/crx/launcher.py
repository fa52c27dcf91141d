from __future__ import annotations

import contextlib
import logging
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from .config import CrxConfig, expand_path
from .http_client import DevToolsEndpoint

logger = logging.getLogger("mcp.crx.launcher")


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str
    port: int | None = None
    user_data_dir: str | None = None


def extension_flags(extension_dir: str) -> list[str]:
    return [
        f"--disable-extensions-except={extension_dir}",
        f"--load-extension={extension_dir}",
    ]


class BrowserLauncher:
    """Owns one Chrome child process with a remote-debugging endpoint."""

    def __init__(self, config: CrxConfig, chrome_path: str) -> None:
        self.config = config
        self.chrome_path = chrome_path
        self.process: subprocess.Popen | None = None
        self.user_data_dir: str | None = None
        self.port: int | None = None

    def build_launch_command(self, extension_dir: str, user_data_dir: str, extra: list[str] | None = None) -> list[str]:
        flags = [
            *extension_flags(extension_dir),
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-default-apps",
            "--disable-popup-blocking",
            f"--remote-debugging-port={self.config.cdp_port}",
            "--remote-allow-origins=*",
            f"--user-data-dir={user_data_dir}",
        ]
        if self.config.no_sandbox:
            flags.append("--no-sandbox")
        if self.config.headless:
            # Only the new headless mode loads extensions.
            flags.append("--headless=new")
        flags.extend(self.config.extra_flags)
        if extra:
            flags.extend(extra)
        return [self.chrome_path, *flags, "about:blank"]

    def _read_active_port(self, user_data_dir: str) -> int | None:
        """Chrome writes the bound port to DevToolsActivePort when started with port 0."""
        path = Path(user_data_dir) / "DevToolsActivePort"
        try:
            first = path.read_text(encoding="utf-8").splitlines()[0].strip()
            return int(first)
        except (OSError, IndexError, ValueError):
            return None

    def start(self, extension_dir: str, extra_flags: list[str] | None = None) -> LaunchResult:
        if self.config.user_data_dir:
            user_data_dir = expand_path(self.config.user_data_dir)
            Path(user_data_dir).mkdir(parents=True, exist_ok=True)
        else:
            user_data_dir = tempfile.mkdtemp(prefix="crx-mcp-")
        self.user_data_dir = user_data_dir

        # A stale port file from a previous run would point at a dead endpoint.
        with contextlib.suppress(OSError):
            (Path(user_data_dir) / "DevToolsActivePort").unlink()

        cmd = self.build_launch_command(extension_dir, user_data_dir, extra_flags)
        logger.info("launching chrome=%s user_data_dir=%s", self.chrome_path, user_data_dir)
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            return LaunchResult(cmd, False, str(exc), user_data_dir=user_data_dir)

        deadline = time.time() + self.config.launch_timeout
        while time.time() < deadline:
            if self.process.poll() is not None:
                return LaunchResult(
                    cmd, False, f"Chrome exited early with code {self.process.returncode}", user_data_dir=user_data_dir
                )
            port = self.config.cdp_port or self._read_active_port(user_data_dir)
            if port and DevToolsEndpoint(port).ready():
                self.port = port
                return LaunchResult(cmd, True, "Chrome launched", port=port, user_data_dir=user_data_dir)
            time.sleep(0.1)

        self.stop()
        return LaunchResult(cmd, False, "Chrome launch timed out", user_data_dir=user_data_dir)

    def stop(self, *, timeout: float = 3.0) -> bool:
        """Best-effort stop of the launcher-owned Chrome process."""
        proc = self.process
        if proc is None:
            return False
        self.process = None
        if proc.poll() is not None:
            return True

        with contextlib.suppress(OSError):
            proc.terminate()
        try:
            proc.wait(timeout=max(0.1, float(timeout)))
        except subprocess.TimeoutExpired:
            # Escalate to kill.
            with contextlib.suppress(OSError):
                proc.kill()
        return True

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.poll() is None
