"""
Tool executor -- runs a single tool invocation end to end.

For each call the executor:
1. Looks the tool up in the registry
2. Elicits missing required parameters from the caller (when the host can)
3. Validates arguments against the tool schema
4. Runs the tool under the timeout guard
5. Shapes the result through the response formatter
6. Normalizes any failure into an error envelope

``invoke`` never raises: the protocol host always receives a ToolResponse.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Mapping

from toolrun.config import ToolrunConfig
from toolrun.constants import (
    DEFAULT_ELICITATION_TIMEOUT_MS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_TIMEOUT_MS,
    DEFAULT_TIMEOUT_MS,
    MAX_PAGE_SIZE,
)
from toolrun.elicitation import elicit_if_needed, merge_elicited_params, needs_elicitation
from toolrun.errors import format_mcp_error
from toolrun.logs import set_log_level
from toolrun.poller import poll_job_completion
from toolrun.response import ResponseFormatter, Summarizer
from toolrun.timeouts import OperationTimeoutError, with_timeout
from toolrun.tools.registry import ToolRegistry
from toolrun.tools.validation import ToolValidator
from toolrun.types import ToolResponse

logger = logging.getLogger(__name__)


class InvalidRequestError(Exception):
    """Caller-side problem detected before the backend was contacted."""

    status = 400


class ToolExecutor:
    """
    Runs tool invocations through the full contract.

    Parameters
    ----------
    registry : ToolRegistry
        Registered tools.
    formatter : ResponseFormatter
        Shapes successful results and error insights.
    tool_timeout_ms : int
        Budget for a tool without its own ``timeout_ms``.
    elicitation_timeout_ms : int
        Budget for one elicitation round trip.
    cancel_on_timeout : bool
        Cancel the tool's task when its budget is exceeded instead of letting
        it finish in the background.
    poll_interval_ms, poll_timeout_ms : int
        Defaults for ``poll``.
    page_size, max_page_size : int
        Default and ceiling for ``list_tools`` pages.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        formatter: ResponseFormatter | None = None,
        *,
        tool_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        elicitation_timeout_ms: int = DEFAULT_ELICITATION_TIMEOUT_MS,
        cancel_on_timeout: bool = False,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self.registry = registry
        self.formatter = formatter or ResponseFormatter(timeout_ms=tool_timeout_ms)
        self.tool_timeout_ms = tool_timeout_ms
        self.elicitation_timeout_ms = elicitation_timeout_ms
        self.cancel_on_timeout = cancel_on_timeout
        self.poll_interval_ms = poll_interval_ms
        self.poll_timeout_ms = poll_timeout_ms
        self.page_size = page_size
        self.max_page_size = max_page_size

    @classmethod
    def from_config(
        cls,
        registry: ToolRegistry,
        config: ToolrunConfig,
        get_summarizer: Callable[[], Summarizer | None] | None = None,
    ) -> ToolExecutor:
        """Build an executor from layered config and apply its log level."""
        set_log_level(config.logging.level)
        formatter = ResponseFormatter(
            get_summarizer,
            max_size=config.response.max_size_bytes,
            summary_max_tokens=config.response.summary_max_tokens,
            timeout_ms=config.timeouts.default_ms,
            default_format=config.response.default_format,
        )
        return cls(
            registry,
            formatter,
            tool_timeout_ms=config.timeouts.default_ms,
            elicitation_timeout_ms=config.timeouts.elicitation_ms,
            cancel_on_timeout=config.timeouts.cancel_on_timeout,
            poll_interval_ms=config.polling.interval_ms,
            poll_timeout_ms=config.polling.timeout_ms,
            page_size=config.pagination.default_page_size,
            max_page_size=config.pagination.max_page_size,
        )

    async def invoke(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        context: Any = None,
        *,
        request_id: str | None = None,
        format: str | None = None,
    ) -> ToolResponse:
        """Run tool *name* with *arguments*; *context* is the host's server context."""
        try:
            return await self._invoke(name, dict(arguments or {}), context, request_id, format)
        except Exception as e:
            logger.exception("Unhandled failure invoking %s", name)
            return format_mcp_error(e, request_id)

    async def _invoke(
        self,
        name: str,
        arguments: dict,
        context: Any,
        request_id: str | None,
        format: str | None,
    ) -> ToolResponse:
        # 1. Registry lookup
        tool = self.registry.get(name)
        if tool is None:
            return format_mcp_error(InvalidRequestError(f"Unknown tool: {name}"), request_id)

        # 2. Elicitation
        missing = ToolValidator.missing_required(tool, arguments)
        if missing and tool.elicitation is not None and context is not None:
            elicited = await elicit_if_needed(
                context, tool.elicitation, timeout_ms=self.elicitation_timeout_ms
            )
            arguments = merge_elicited_params(arguments, elicited)
            if elicited:
                logger.debug("Elicited %s for %s", sorted(elicited), name)

        if needs_elicitation(arguments, missing):
            missing = ToolValidator.missing_required(tool, arguments)
            return format_mcp_error(
                InvalidRequestError(f"Missing required parameters: {', '.join(missing)}"),
                request_id,
            )

        # 3. Validate args
        valid, error_msg = ToolValidator.validate(tool, arguments)
        if not valid:
            return format_mcp_error(InvalidRequestError(f"Validation error: {error_msg}"), request_id)

        # 4. Execute with timeout
        timeout_ms = tool.timeout_ms or self.tool_timeout_ms
        start = time.monotonic()
        try:
            result = await with_timeout(
                lambda: tool.execute(**arguments),
                timeout_ms,
                name,
                cancel_on_timeout=self.cancel_on_timeout,
            )
        except OperationTimeoutError as e:
            return format_mcp_error(e, request_id)
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info("Tool %s failed after %dms: %s", name, duration_ms, e)
            return format_mcp_error(e, request_id)

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Tool %s finished in %dms", name, duration_ms)

        # 5. Format
        return await self.formatter.format_success(result, format=format or tool.format)

    async def poll(
        self,
        operation_name: str,
        get_status: Callable[[], Awaitable[Any]],
        *,
        interval_ms: int | None = None,
        timeout_ms: int | None = None,
        request_id: str | None = None,
    ) -> ToolResponse:
        """Wait for a long-running backend job and format the verification result."""
        try:
            outcome = await poll_job_completion(
                get_status,
                interval_ms=interval_ms or self.poll_interval_ms,
                timeout_ms=timeout_ms or self.poll_timeout_ms,
            )
        except Exception as e:
            logger.info("Polling %s failed: %s", operation_name, e)
            return format_mcp_error(e, request_id)
        return await self.formatter.format_success(outcome.to_dict())

    def list_tools(self, cursor: str | None = None, page_size: int | None = None) -> dict:
        """One ``tools/list`` page; raises ``InvalidCursorError`` for a bad cursor."""
        size = min(page_size or self.page_size, self.max_page_size)
        return self.registry.list_tools(cursor, size)
