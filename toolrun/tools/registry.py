from __future__ import annotations

import logging

from toolrun.constants import DEFAULT_PAGE_SIZE
from toolrun.pagination import paginate_array
from toolrun.tools.base import Tool, ToolRisk

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name-keyed set of tools, listed in name order."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug("Registered tool %s (%s)", tool.name, tool.risk_level.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise KeyError(name)
        return tool

    def list(self, max_risk: ToolRisk | None = None) -> list[Tool]:
        """Registered tools sorted by name, optionally capped at *max_risk*."""
        ordered = [self._tools[name] for name in sorted(self._tools)]
        if max_risk is None:
            return ordered
        return [t for t in ordered if t.risk_level <= max_risk]

    def to_mcp_schema(self) -> list[dict]:
        return [t.to_mcp_schema() for t in self.list()]

    def list_tools(self, cursor: str | None = None, page_size: int = DEFAULT_PAGE_SIZE) -> dict:
        """
        One page of a ``tools/list`` result.

        Returns ``{"tools": [...]}`` plus ``nextCursor`` while more remain.
        An invalid cursor raises ``InvalidCursorError``.
        """
        page = paginate_array(self.to_mcp_schema(), page_size, cursor)
        result: dict = {"tools": page.items}
        if page.next_cursor is not None:
            result["nextCursor"] = page.next_cursor
        return result
