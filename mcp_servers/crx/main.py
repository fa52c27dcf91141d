"""
MCP server for Chrome extension debugging over the Chrome DevTools Protocol.

This module provides the CLI entry point and protocol handling.
Tool dispatch is handled via registry pattern in server/registry.py.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
from typing import Any

from pydantic import ValidationError

from .config import CrxConfig
from .errors import CrxError
from .http_client import HttpClientError
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
)
from .server.registry import ToolRegistry, create_default_registry
from .server.types import ToolResult
from .session_manager import SessionManager

logger = logging.getLogger("mcp.crx")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "LATEST_PROTOCOL_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "main",
    "parse_args",
]

HELP = """
crx-mcp - MCP server for Chrome extension testing

Usage: crx-mcp [options]

Options:
  --extension-path <path>   Pre-load extension at startup
  --chrome-path <path>      Path to Chrome executable
  --user-data-dir <path>    Chrome user data directory
  --no-sandbox              Disable Chrome sandbox (for CI)
  --verbose                 Enable debug logging to stderr
  -h, --help                Show this help
"""


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    data = json.dumps(payload, ensure_ascii=False, default=str)
    sys.stdout.buffer.write((data + "\n").encode())
    sys.stdout.buffer.flush()


def _read_message() -> dict[str, Any] | None:
    """Read one JSON-RPC message from stdin; None at EOF, {} for a blank or bad line."""
    line = sys.stdin.buffer.readline()
    if not line:
        return None
    line = line.strip()
    if not line:
        return {}
    try:
        msg = json.loads(line.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("bad frame: %s", exc)
        _write_message({"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}})
        return {}
    if os.environ.get("MCP_TRACE"):
        logger.info("recv %s", msg)
    return msg if isinstance(msg, dict) else {}


class McpServer:
    """MCP Server with registry-based tool dispatch."""

    def __init__(
        self,
        config: CrxConfig | None = None,
        *,
        session: SessionManager | None = None,
        registry: ToolRegistry | None = None,
    ) -> None:
        self.config = config or CrxConfig.from_env()
        self.session = session or SessionManager(self.config)
        self.registry = registry or create_default_registry()

    def preload(self, extension_path: str) -> None:
        """Load an extension at startup; failures are logged, never fatal."""
        try:
            info = self.session.launch(extension_path)
        except (CrxError, HttpClientError) as exc:
            logger.error("preload failed path=%s err=%s", extension_path, exc)
            return
        logger.info("preloaded extension id=%s", info.id)

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> None:
        """Handle initialize request."""
        requested = (params or {}).get("protocolVersion") if isinstance(params, dict) else None
        protocol = select_protocol(requested)
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": initialize_result(protocol)})

    def handle_list_tools(self, request_id: Any) -> None:
        """Handle tools/list request."""
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": {"tools": self.registry.definitions()}})

    def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run one tool; every failure becomes an error result."""
        logger.info("tool=%s args=%s", name, sorted(arguments))
        try:
            if not name:
                return ToolResult.error("Missing tool name")
            if not self.registry.has(name):
                return ToolResult.error(f"Unknown tool: {name}", tool=name)
            return self.registry.dispatch(name, self.session, arguments)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '(root)'}: {err['msg']}" for err in exc.errors()
            )
            logger.info("invalid_arguments tool=%s %s", name, problems)
            return ToolResult.error(problems, code="INVALID_ARGUMENTS", tool=name)
        except CrxError as e:
            logger.info("tool_error tool=%s code=%s message=%s", name, e.code, e.message)
            return ToolResult.error(e.message, code=e.code, tool=name, suggestion=e.suggestion, details=e.details)
        except HttpClientError as e:
            logger.info("cdp_error tool=%s %s", name, e)
            return ToolResult.error(str(e), code="CDP_ERROR", tool=name)
        except Exception as exc:
            logger.exception("tool_call_failed tool=%s", name)
            return ToolResult.error(str(exc) or type(exc).__name__, tool=name)

    def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> None:
        result = self.call_tool(name, arguments)
        _write_message(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": {"content": result.to_content_list(), "isError": result.is_error},
            }
        )

    def dispatch(self, message: dict[str, Any]) -> None:
        """Dispatch incoming JSON-RPC message to appropriate handler."""
        if not message:
            return

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if method == "initialize":
            self.handle_initialize(request_id, params)
        elif method == "notifications/initialized" or (isinstance(method, str) and method.startswith("notifications/")):
            return
        elif method == "tools/list":
            self.handle_list_tools(request_id)
        elif method == "tools/call":
            name = params.get("name")
            arguments = params.get("arguments") or {}
            self.handle_call_tool(request_id, name or "", arguments if isinstance(arguments, dict) else {})
        elif method == "ping":
            _write_message({"jsonrpc": "2.0", "id": request_id, "result": {}})
        elif request_id is not None:
            _write_message(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32601, "message": f"Method {method} not found"},
                }
            )

    def close(self) -> None:
        self.session.close()


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        print(f"crx-mcp: {message}", file=sys.stderr)
        sys.exit(1)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI flags; unknown options print ``Unknown option: <flag>`` and exit 1."""
    parser = _ArgumentParser(prog="crx-mcp", add_help=False, allow_abbrev=False)
    parser.add_argument("--extension-path")
    parser.add_argument("--chrome-path")
    parser.add_argument("--user-data-dir")
    parser.add_argument("--no-sandbox", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("-h", "--help", action="store_true")

    args, unknown = parser.parse_known_args(argv)
    if args.help:
        print(HELP, file=sys.stderr)
        sys.exit(0)
    for extra in unknown:
        if extra.startswith("-"):
            print(f"Unknown option: {extra}", file=sys.stderr)
            sys.exit(1)
    if not args.chrome_path and os.environ.get("CHROME_PATH"):
        args.chrome_path = os.environ["CHROME_PATH"]
    return args


def _raise_exit(signum: int, frame: Any) -> None:
    raise SystemExit(0)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for MCP server."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    config = CrxConfig.from_env().with_cli(
        chrome_path=args.chrome_path,
        user_data_dir=args.user_data_dir,
        extension_path=args.extension_path,
        no_sandbox=args.no_sandbox,
        verbose=args.verbose,
    )
    server = McpServer(config)
    signal.signal(signal.SIGTERM, _raise_exit)
    try:
        if config.extension_path:
            server.preload(config.extension_path)
        if args.verbose:
            logger.debug("server started on stdio")
        while True:
            message = _read_message()
            if message is None:
                break
            server.dispatch(message)
    except KeyboardInterrupt:
        pass
    finally:
        server.close()


if __name__ == "__main__":
    main()
