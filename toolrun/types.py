from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class TextContent:
    text: str
    type: str = "text"

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolResponse:
    """Envelope handed to the protocol host.

    ``structured_content`` is only ever set on successful responses.
    """

    content: list[TextContent] = field(default_factory=list)
    structured_content: Any = None
    is_error: bool = False

    @classmethod
    def text(cls, text: str, *, structured_content: Any = None) -> ToolResponse:
        return cls(content=[TextContent(text)], structured_content=structured_content)

    @classmethod
    def error(cls, text: str) -> ToolResponse:
        return cls(content=[TextContent(text)], is_error=True)

    @property
    def first_text(self) -> str:
        return self.content[0].text if self.content else ""

    def payload(self) -> Any:
        """Parse the first text block back into JSON, or return it raw."""
        try:
            return json.loads(self.first_text)
        except ValueError:
            return self.first_text

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"content": [c.to_dict() for c in self.content]}
        if self.structured_content is not None and not self.is_error:
            d["structuredContent"] = self.structured_content
        if self.is_error:
            d["isError"] = True
        return d


@dataclass
class VerifyResult:
    ok: bool
    verified: bool
    verify_status: int | None = None
    etag: str | None = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"ok": self.ok, "verified": self.verified}
        if self.verify_status is not None:
            d["verifyStatus"] = self.verify_status
        if self.etag is not None:
            d["etag"] = self.etag
        if self.details:
            d["details"] = self.details
        return d


class ErrorKind:
    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED = "unauthorized"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    UNKNOWN_ERROR = "unknown_error"

    ALL = (
        INVALID_REQUEST,
        UNAUTHORIZED,
        RESOURCE_NOT_FOUND,
        CONFLICT,
        RATE_LIMITED,
        SERVER_ERROR,
        UNKNOWN_ERROR,
    )


class FormatMode:
    FULL = "full"
    SUMMARY = "summary"
    MINIMAL = "minimal"
