"""Tool handlers and their registry."""

from toolrun.tools.base import Tool, ToolRisk
from toolrun.tools.registry import ToolRegistry
from toolrun.tools.validation import ToolValidator

__all__ = ["Tool", "ToolRegistry", "ToolRisk", "ToolValidator"]
