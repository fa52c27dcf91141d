"""
Tool handlers organized by domain.

All handlers follow the signature: (session, validated_args) -> ToolResult
"""

from .advanced import ADVANCED_HANDLERS
from .core import CORE_HANDLERS
from .extension import EXTENSION_HANDLERS

# Aggregate all handlers
ALL_HANDLERS: dict[str, tuple] = {
    **CORE_HANDLERS,
    **EXTENSION_HANDLERS,
    **ADVANCED_HANDLERS,
}

__all__ = [
    "ADVANCED_HANDLERS",
    "ALL_HANDLERS",
    "CORE_HANDLERS",
    "EXTENSION_HANDLERS",
]
