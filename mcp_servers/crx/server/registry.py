"""
Tool registry with dispatch table for MCP server.

Every call is validated against the tool's input model before its handler
runs; tools that need a browser fail fast with BROWSER_NOT_LAUNCHED.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from ..errors import BrowserNotLaunched
from .types import ToolResult, ToolSpec

if TYPE_CHECKING:
    from ..session_manager import SessionManager

logger = logging.getLogger("mcp.crx.registry")

# Type alias for handler function
HandlerFunc = Callable[["SessionManager", Any], ToolResult]


class ToolRegistry:
    """Registry for tool handlers keyed by tool name."""

    def __init__(self) -> None:
        self._specs: dict[str, ToolSpec] = {}

    def register(
        self,
        name: str,
        handler: HandlerFunc,
        model: type[BaseModel],
        *,
        description: str = "",
        requires_browser: bool = True,
    ) -> None:
        """Register a tool handler."""
        self._specs[name] = ToolSpec(name, description, model, handler, requires_browser)

    def get(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def has(self, name: str) -> bool:
        """Check if handler exists."""
        return name in self._specs

    def dispatch(self, name: str, session: SessionManager, arguments: dict[str, Any]) -> ToolResult:
        """
        Validate arguments and run the tool.

        Raises:
            KeyError: If tool not found
            pydantic.ValidationError: If arguments do not match the input model
            BrowserNotLaunched: If the tool needs a browser and none is running
        """
        spec = self._specs.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")

        args = spec.model.model_validate(arguments or {})
        if spec.requires_browser and not session.is_launched:
            raise BrowserNotLaunched()
        logger.debug("dispatch tool=%s", name)
        return spec.handler(session, args)

    def definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self._specs.values()]

    @property
    def tool_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._specs.keys())

    def __len__(self) -> int:
        return len(self._specs)


def create_default_registry() -> ToolRegistry:
    """Create registry with every tool in definition order."""
    from .definitions import TOOL_DEFINITIONS
    from .handlers import ALL_HANDLERS

    registry = ToolRegistry()
    for name, (description, model) in TOOL_DEFINITIONS.items():
        handler, requires_browser = ALL_HANDLERS[name]
        registry.register(name, handler, model, description=description, requires_browser=requires_browser)
    return registry


__all__ = ["HandlerFunc", "ToolRegistry", "create_default_registry"]
