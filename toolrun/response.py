"""
Response shaping: keep tool output under a size budget.

``format_response`` decides whether a result is returned whole, as a
truncated preview, or as a summary.  Size is measured as the UTF-8 byte
length of the pretty-printed JSON text.

Known limitation: an object that is over budget, has none of the recognized
large sub-fields (``executionHistory``, ``value``, ``errors``) and comes with
no summarizer (or a failing one) is returned untruncated.  Callers that can
hit this should pass a smaller budget, a summarizer, or paginate upstream.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Mapping

from toolrun import constants
from toolrun.errors import error_payload, format_mcp_error
from toolrun.timeouts import with_timeout
from toolrun.types import FormatMode, ToolResponse

logger = logging.getLogger(__name__)

Summarizer = Callable[[str, int], Awaitable[str]]

_DEFAULT = object()


def to_text(data: Any) -> str:
    if isinstance(data, str):
        return data
    return json.dumps(data, indent=2, default=str)


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


def truncate_large_arrays(obj: Any, max_size: int) -> Any:
    """
    Cap the well-known large arrays of an oversized object.

    Returns *obj* unchanged when it already fits or is not a mapping.
    The input is never mutated.
    """
    if not isinstance(obj, Mapping):
        return obj
    if byte_size(to_text(obj)) <= max_size:
        return obj

    result = dict(obj)

    history = obj.get("executionHistory")
    if isinstance(history, list) and len(history) > constants.HISTORY_ITEM_LIMIT:
        result["executionHistory"] = history[: constants.HISTORY_ITEM_LIMIT]
        result["executionHistoryTruncated"] = True
        result["totalExecutions"] = len(history)

    value = obj.get("value")
    if isinstance(value, list) and len(value) > constants.PREVIEW_ITEM_LIMIT:
        result["value"] = value[: constants.PREVIEW_ITEM_LIMIT]
        result["truncated"] = True
        result["totalResults"] = len(value)

    errors = obj.get("errors")
    if isinstance(errors, list) and len(errors) > constants.ERRORS_ITEM_LIMIT:
        result["errors"] = errors[: constants.ERRORS_ITEM_LIMIT]
        result["errorsTruncated"] = True
        result["totalErrors"] = len(errors)

    return result


def _identity_fields(item: Any) -> Any:
    if not isinstance(item, Mapping):
        return item
    minimal = {k: item[k] for k in constants.MINIMAL_FIELDS if k in item}
    return minimal or item


def minimal_view(data: Any) -> Any:
    """Reduce *data* to its first few entries and their identity-like fields."""
    limit = constants.MINIMAL_ITEM_LIMIT
    if isinstance(data, list):
        items = [_identity_fields(item) for item in data[:limit]]
        if len(data) <= limit:
            return items
        return {
            "items": items,
            "totalCount": len(data),
            "format": FormatMode.MINIMAL,
            "note": f"Showing first {limit} items with essential fields only",
        }
    if isinstance(data, Mapping) and isinstance(data.get("value"), list):
        return {
            **data,
            "value": data["value"][:limit],
            "format": FormatMode.MINIMAL,
            "note": f"Minimal format - showing first {limit} items",
        }
    return data


async def _summarize(summarizer: Summarizer, text: str, max_tokens: int, timeout_ms: int | None) -> str:
    return await with_timeout(
        lambda: summarizer(text, max_tokens), timeout_ms, "summarize", cancel_on_timeout=True
    )


async def format_response(
    data: Any,
    *,
    max_size: int | None = None,
    summarizer: Summarizer | None = None,
    summary_max_tokens: int | None = None,
    structured_content: Any = None,
    format: str = FormatMode.FULL,
    summarizer_timeout_ms: int | None = None,
) -> ToolResponse:
    """
    Format any data into a text envelope that respects *max_size*.

    Modes:
      - ``full``: return the data whole when it fits; otherwise arrays become a
        10-item preview, objects are summarized (if a summarizer is given) or
        have their large arrays truncated.
      - ``summary``: summarize unconditionally when a summarizer is given.
      - ``minimal``: first 5 entries, identity fields only.
    """
    if max_size is None:
        max_size = constants.MAX_RESPONSE_SIZE_BYTES
    if summary_max_tokens is None:
        summary_max_tokens = constants.DEFAULT_SUMMARY_MAX_TOKENS

    formatted = data
    summary_handled = False
    summarizer_failed = False
    if format == FormatMode.MINIMAL:
        formatted = minimal_view(data)
    elif format == FormatMode.SUMMARY and summarizer is not None:
        full_text = to_text(data)
        try:
            summary = await _summarize(summarizer, full_text, summary_max_tokens, summarizer_timeout_ms)
            formatted = {
                "format": FormatMode.SUMMARY,
                "summary": summary,
                "originalSize": byte_size(full_text),
                "message": "Response summarized as requested",
            }
            summary_handled = True
        except Exception as e:
            logger.debug("Summarizer failed, falling back to truncation: %s", e)
            summarizer_failed = True
            formatted = truncate_large_arrays(data, max_size // 2)

    text = to_text(formatted)

    if byte_size(text) > max_size and not summary_handled:
        if isinstance(data, list):
            payload = {
                "message": "Response truncated due to size. Use pagination parameters (skip/top) to retrieve data in chunks.",
                "totalItems": len(data),
                "truncated": True,
                "firstItems": data[: constants.PREVIEW_ITEM_LIMIT],
                "recommendation": "Use skip and top parameters to paginate through results",
            }
            return ToolResponse.text(to_text(payload))

        if isinstance(data, Mapping):
            if summarizer is not None and not summarizer_failed:
                try:
                    summary = await _summarize(summarizer, text, summary_max_tokens, summarizer_timeout_ms)
                    payload = {
                        "summarized": True,
                        "originalSize": byte_size(text),
                        "summary": summary,
                        "message": "Response was too large and has been summarized.",
                        "hint": "To see specific sections, use targeted queries or pagination parameters.",
                    }
                    return ToolResponse.text(to_text(payload))
                except Exception as e:
                    logger.debug("Summarizer failed, falling back to truncation: %s", e)

            truncated = truncate_large_arrays(data, max_size)
            if truncated is data:
                logger.info("Response of %d bytes exceeds %d and has no truncatable fields", byte_size(text), max_size)
            return ToolResponse.text(to_text(truncated))

    response = ToolResponse.text(text)
    # The mirror only accompanies the untransformed result.
    if structured_content is not None and formatted is data and byte_size(text) <= max_size:
        response.structured_content = structured_content
    return response


def format_tool_error(insight: str | Mapping[str, Any]) -> ToolResponse:
    """Wrap an error message or insight dict in an ``is_error`` envelope."""
    return ToolResponse.error(to_text(insight if isinstance(insight, str) else dict(insight)))


class ResponseFormatter:
    """
    Standard response formatter for tool operations.

    Every public method returns a ``ToolResponse``; failures are normalized,
    never raised.
    """

    def __init__(
        self,
        get_summarizer: Callable[[], Summarizer | None] | None = None,
        *,
        max_size: int = constants.MAX_RESPONSE_SIZE_BYTES,
        summary_max_tokens: int = constants.DEFAULT_SUMMARY_MAX_TOKENS,
        timeout_ms: int = constants.DEFAULT_TIMEOUT_MS,
        default_format: str = FormatMode.FULL,
    ) -> None:
        self._get_summarizer = get_summarizer
        self.max_size = max_size
        self.summary_max_tokens = summary_max_tokens
        self.timeout_ms = timeout_ms
        self.default_format = default_format

    def _resolve_summarizer(self, explicit: Any) -> Summarizer | None:
        # An explicit None disables summarization for this call.
        if explicit is not _DEFAULT:
            return explicit
        return self._get_summarizer() if self._get_summarizer else None

    async def format_success(
        self,
        result: Any,
        *,
        summarizer: Any = _DEFAULT,
        structured_content: Any = _DEFAULT,
        format: str | None = None,
    ) -> ToolResponse:
        if structured_content is _DEFAULT:
            structured_content = result if isinstance(result, (dict, list)) else None
        try:
            return await format_response(
                result,
                max_size=self.max_size,
                summarizer=self._resolve_summarizer(summarizer),
                summary_max_tokens=self.summary_max_tokens,
                structured_content=structured_content,
                format=format or self.default_format,
                summarizer_timeout_ms=self.timeout_ms,
            )
        except Exception as e:
            logger.exception("Response formatting failed")
            return format_mcp_error(e)

    def format_error(self, error: Any, context: Mapping[str, Any] | None = None) -> ToolResponse:
        try:
            return format_tool_error(error_payload(error, context=context))
        except Exception:
            logger.exception("Error diagnosis failed")
            return format_mcp_error(error)

    async def execute_with_timeout(
        self,
        operation: Any,
        timeout_ms: int | None = None,
        operation_name: str = "operation",
        error_context: Mapping[str, Any] | None = None,
    ) -> ToolResponse:
        """Run *operation* (thunk preferred, or started awaitable) and format the outcome."""
        try:
            result = await with_timeout(operation, timeout_ms or self.timeout_ms, operation_name)
        except Exception as e:
            logger.debug("Operation '%s' failed: %s", operation_name, e)
            return self.format_error(e, {**(error_context or {}), "operation": operation_name})
        return await self.format_success(result)

    def create_tool_executor(self, tool_name: str, timeout_ms: int | None = None):
        """Return ``run(params, operation, extra_context=None)`` bound to *tool_name*."""

        async def run(
            params: Mapping[str, Any],
            operation: Callable[[Mapping[str, Any]], Awaitable[Any]],
            extra_context: Mapping[str, Any] | None = None,
        ) -> ToolResponse:
            context = {"tool": tool_name, **params, **(extra_context or {})}
            try:
                result = await with_timeout(lambda: operation(params), timeout_ms or self.timeout_ms, tool_name)
            except Exception as e:
                return self.format_error(e, context)
            return await self.format_success(result)

        return run
