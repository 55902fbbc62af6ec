from __future__ import annotations

from enum import IntEnum
from abc import ABC, abstractmethod
from typing import Any

from toolrun.elicitation import ElicitationRequest


class ToolRisk(IntEnum):
    READ_ONLY = 10
    WRITE = 20
    IDEMPOTENT_WRITE = 25
    DESTRUCTIVE = 30


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("additionalProperties", False)
    return s


class Tool(ABC):
    """
    A tool handler that reaches out to a backend.

    ``execute`` returns raw result data; shaping it into an envelope, bounding
    its latency and normalizing its failures is the executor's job.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.READ_ONLY

    @property
    def timeout_ms(self) -> int | None:
        """Per-tool budget; ``None`` uses the executor default."""
        return None

    @property
    def format(self) -> str | None:
        """Response format mode; ``None`` uses the formatter default."""
        return None

    @property
    def elicitation(self) -> ElicitationRequest | None:
        """Prompt used to collect missing required parameters, if any."""
        return None

    @abstractmethod
    async def execute(self, **kwargs) -> Any: ...

    def annotations(self) -> dict:
        risk = self.risk_level
        return {
            "readOnlyHint": risk == ToolRisk.READ_ONLY,
            "destructiveHint": risk == ToolRisk.DESTRUCTIVE,
            "idempotentHint": risk != ToolRisk.WRITE,
        }

    def to_mcp_schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": normalize_schema(self.parameters),
            "annotations": self.annotations(),
        }
