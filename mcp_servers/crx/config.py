from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name) or default)
    except ValueError:
        return default


def _playwright_cache_dir(platform: str | None = None, home: Path | None = None) -> Path:
    platform = platform or sys.platform
    home = home or Path.home()
    if platform == "win32":
        return Path(os.environ.get("LOCALAPPDATA", "")) / "ms-playwright"
    if platform == "darwin":
        return home / "Library" / "Caches" / "ms-playwright"
    return home / ".cache" / "ms-playwright"


def chrome_for_testing_candidates(platform: str | None = None, home: Path | None = None) -> list[str]:
    """Chrome for Testing builds from the Playwright cache, newest first.

    These builds honour --load-extension / --disable-extensions-except; branded
    Chrome stable may ignore them.
    """
    platform = platform or sys.platform
    cache = _playwright_cache_dir(platform, home)
    if not cache.is_dir():
        return []
    try:
        dirs = sorted((d.name for d in cache.iterdir() if d.name.startswith("chromium-")), reverse=True)
    except OSError:
        return []

    out: list[str] = []
    for name in dirs:
        if platform == "win32":
            out.append(str(cache / name / "chrome-win64" / "chrome.exe"))
        elif platform == "darwin":
            out.append(str(cache / name / "chrome-mac" / "Chromium.app" / "Contents" / "MacOS" / "Chromium"))
        else:
            out.append(str(cache / name / "chrome-linux" / "chrome"))
    return out


def platform_chrome_candidates(platform: str | None = None) -> list[str]:
    platform = platform or sys.platform
    if platform == "win32":
        roots = [os.environ.get("PROGRAMFILES"), os.environ.get("PROGRAMFILES(X86)"), os.environ.get("LOCALAPPDATA")]
        return [f"{root}\\Google\\Chrome\\Application\\chrome.exe" for root in roots if root]
    if platform == "darwin":
        return [
            "/Applications/Google Chrome for Testing.app/Contents/MacOS/Google Chrome for Testing",
            "/Applications/Chromium.app/Contents/MacOS/Chromium",
            "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        ]
    return [
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
    ]


@dataclass
class CrxConfig:
    chrome_path: str | None = None
    user_data_dir: str | None = None
    extension_path: str | None = None
    no_sandbox: bool = False
    headless: bool = False
    verbose: bool = False
    cdp_port: int = 0
    extra_flags: list[str] = field(default_factory=list)
    discovery_timeout: float = 10.0
    cdp_timeout: float = 30.0
    launch_timeout: float = 20.0

    @classmethod
    def from_env(cls) -> CrxConfig:
        flags_raw = os.environ.get("MCP_CRX_FLAGS", "")
        try:
            port = int(os.environ.get("MCP_CRX_PORT") or 0)
        except ValueError:
            port = 0
        return cls(
            chrome_path=os.environ.get("CHROME_PATH") or None,
            headless=os.environ.get("MCP_CRX_HEADLESS", "0") == "1",
            cdp_port=max(0, port),
            extra_flags=[flag.strip() for flag in flags_raw.split(",") if flag.strip()],
            discovery_timeout=max(1.0, _env_float("MCP_CRX_DISCOVERY_TIMEOUT", 10.0)),
            cdp_timeout=max(1.0, _env_float("MCP_CRX_CDP_TIMEOUT", 30.0)),
        )

    def with_cli(
        self,
        *,
        chrome_path: str | None = None,
        user_data_dir: str | None = None,
        extension_path: str | None = None,
        no_sandbox: bool = False,
        verbose: bool = False,
    ) -> CrxConfig:
        """Overlay CLI options; explicit CLI values win over the environment."""
        return replace(
            self,
            chrome_path=chrome_path or self.chrome_path,
            user_data_dir=user_data_dir or self.user_data_dir,
            extension_path=extension_path or self.extension_path,
            no_sandbox=no_sandbox or self.no_sandbox,
            verbose=verbose or self.verbose,
        )

    def resolve_chrome(self) -> str | None:
        """Return the first existing Chrome executable, or None."""
        if self.chrome_path:
            return expand_path(self.chrome_path)
        env_path = os.environ.get("CHROME_PATH")
        if env_path:
            return expand_path(env_path)
        for candidate in [*chrome_for_testing_candidates(), *platform_chrome_candidates()]:
            if candidate and Path(candidate).exists():
                return candidate
        return None
