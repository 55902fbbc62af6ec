"""Execution and response contract layer for tool-call handlers."""

from toolrun.elicitation import (
    ElicitationField,
    ElicitationHost,
    ElicitationRequest,
    ElicitationResult,
    elicit_if_needed,
    merge_elicited_params,
    needs_elicitation,
)
from toolrun.errors import ErrorEnvelope, format_mcp_error, to_error_envelope
from toolrun.executor import ToolExecutor
from toolrun.pagination import Page, decode_cursor, encode_cursor, paginate_array, stream_paginate
from toolrun.poller import poll_job_completion
from toolrun.response import ResponseFormatter, format_response, truncate_large_arrays
from toolrun.timeouts import OperationTimeoutError, with_timeout
from toolrun.types import ErrorKind, FormatMode, ToolResponse, VerifyResult

__all__ = [
    "ElicitationField",
    "ElicitationHost",
    "ElicitationRequest",
    "ElicitationResult",
    "ErrorEnvelope",
    "ErrorKind",
    "FormatMode",
    "OperationTimeoutError",
    "Page",
    "ResponseFormatter",
    "ToolExecutor",
    "ToolResponse",
    "VerifyResult",
    "decode_cursor",
    "elicit_if_needed",
    "encode_cursor",
    "format_mcp_error",
    "format_response",
    "merge_elicited_params",
    "needs_elicitation",
    "paginate_array",
    "poll_job_completion",
    "stream_paginate",
    "to_error_envelope",
    "truncate_large_arrays",
    "with_timeout",
]
