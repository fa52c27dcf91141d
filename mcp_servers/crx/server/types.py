"""
Type definitions for MCP server responses and handlers.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from ..session_manager import SessionManager


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # Raw payload for tests and logging; not part of the wire format.
    data: Any | None = None

    @classmethod
    def text(cls, text: str) -> ToolResult:
        return cls(content=[ToolContent(type="text", text=text or "")])

    @classmethod
    def error(
        cls,
        message: str,
        *,
        code: str | None = None,
        tool: str | None = None,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Error result: ``[CODE] message`` plus an optional suggestion line."""
        payload: dict[str, Any] = {"ok": False, "error": message}
        if code:
            payload["code"] = code
        if tool:
            payload["tool"] = tool
        if suggestion:
            payload["suggestion"] = suggestion
        if details:
            payload["details"] = details
        text = f"[{code}] {message}" if code else message
        if suggestion:
            text += f"\nSuggestion: {suggestion}"
        return cls(content=[ToolContent(type="text", text=text)], is_error=True, data=payload)

    @classmethod
    def json(cls, data: Any) -> ToolResult:
        """Pretty-printed JSON text content."""
        return cls(
            content=[ToolContent(type="text", text=json.dumps(data, indent=2, ensure_ascii=False, default=str))],
            data=data,
        )

    @classmethod
    def with_image(cls, text: str, data_b64: str, mime_type: str = "image/png", data: Any | None = None) -> ToolResult:
        """Create result with text and image content. Omits image if data is empty."""
        content = [ToolContent(type="text", text=text or "")]
        if data_b64:
            content.append(ToolContent(type="image", data=data_b64, mime_type=mime_type))
        return cls(content=content, data=data)

    def to_content_list(self) -> list[dict[str, Any]]:
        """Convert to MCP content list format."""
        return [c.to_dict() for c in self.content]


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a registered tool."""

    name: str
    description: str
    model: type[BaseModel]
    handler: Callable[[SessionManager, Any], ToolResult]
    requires_browser: bool = True  # BrowserNotLaunched before the handler runs

    def definition(self) -> dict[str, Any]:
        schema = self.model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return {"name": self.name, "description": self.description, "inputSchema": schema}
