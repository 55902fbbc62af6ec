"""
Error normalization.

Caught errors arrive in many shapes: HTTP client exceptions with a
``status``/``status_code`` attribute, nested ``response`` objects, plain dicts
decoded from a backend body, timeouts, or anything else.  ``classify_failure``
folds them into a small tagged union first; everything downstream works on
that union only.

Every function here is total: it never raises for any input.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from toolrun.constants import REQUEST_ID_HEADERS
from toolrun.timeouts import OperationTimeoutError
from toolrun.types import ErrorKind, ToolResponse

_STATUS_KINDS: dict[int, str] = {
    400: ErrorKind.INVALID_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.RESOURCE_NOT_FOUND,
    409: ErrorKind.CONFLICT,
    412: ErrorKind.CONFLICT,
    429: ErrorKind.RATE_LIMITED,
}


# ---------------------------------------------------------------------------
# Tagged union of caught failures
# ---------------------------------------------------------------------------

@dataclass
class HttpFailure:
    status: int
    message: str
    request_id: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    kind: str = "http"


@dataclass
class TimeoutFailure:
    operation: str
    timeout_ms: int | None
    message: str
    kind: str = "timeout"


@dataclass
class UnknownFailure:
    raw: Any
    message: str
    request_id: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    kind: str = "unknown"


Failure = Union[HttpFailure, TimeoutFailure, UnknownFailure]


def _get(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    try:
        return getattr(obj, name, None)
    except Exception:
        return None


def _status_of(err: Any) -> int | None:
    for candidate in (
        _get(err, "status"),
        _get(err, "status_code"),
        _get(err, "statusCode"),
        _get(_get(err, "response"), "status"),
        _get(_get(err, "response"), "status_code"),
    ):
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str) and candidate.isdigit():
            return int(candidate)
    return None


def _headers_of(err: Any) -> dict[str, str]:
    headers: dict[str, str] = {}
    for source in (_get(_get(err, "response"), "headers"), _get(err, "headers")):
        if source is None:
            continue
        try:
            items = source.items()
        except Exception:
            continue
        for k, v in items:
            headers[str(k).lower()] = str(v)
    return headers


def _message_of(err: Any) -> str:
    msg = _get(err, "message")
    if msg is not None:
        return str(msg)
    try:
        return str(err)
    except Exception:
        return repr(err)


def _request_id_of(err: Any, headers: dict[str, str]) -> str | None:
    for name in ("requestId", "request_id"):
        value = _get(err, name)
        if value:
            return str(value)
    for header in REQUEST_ID_HEADERS:
        if headers.get(header):
            return headers[header]
    return None


def classify_failure(err: Any) -> Failure:
    """Normalize a caught error of unknown shape into a ``Failure``."""
    if isinstance(err, (HttpFailure, TimeoutFailure, UnknownFailure)):
        return err
    if isinstance(err, OperationTimeoutError):
        return TimeoutFailure(operation=err.operation, timeout_ms=err.timeout_ms, message=str(err))
    if isinstance(err, TimeoutError):
        return TimeoutFailure(operation="operation", timeout_ms=None, message=_message_of(err) or "Operation timed out")

    headers = _headers_of(err)
    message = _message_of(err)
    request_id = _request_id_of(err, headers)
    status = _status_of(err)
    if status is not None:
        return HttpFailure(status=status, message=message, request_id=request_id, headers=headers)
    return UnknownFailure(raw=err, message=message, request_id=request_id, headers=headers)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

@dataclass
class ErrorEnvelope:
    error: str
    message: str
    status: int | None = None
    request_id: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"error": self.error}
        if self.status is not None:
            d["status"] = self.status
        d["message"] = self.message
        if self.request_id is not None:
            d["requestId"] = self.request_id
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


def kind_for_status(status: int | None) -> str:
    if status is None:
        return ErrorKind.UNKNOWN_ERROR
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN_ERROR


def to_error_envelope(err: Any, request_id: str | None = None) -> ErrorEnvelope:
    """Map a caught error to the fixed error taxonomy."""
    failure = classify_failure(err)
    if isinstance(failure, HttpFailure):
        return ErrorEnvelope(
            error=kind_for_status(failure.status),
            status=failure.status,
            message=failure.message,
            request_id=request_id or failure.request_id,
        )
    if isinstance(failure, TimeoutFailure):
        return ErrorEnvelope(
            error=ErrorKind.UNKNOWN_ERROR,
            message=failure.message,
            request_id=request_id,
        )
    return ErrorEnvelope(
        error=ErrorKind.UNKNOWN_ERROR,
        message=failure.message,
        request_id=request_id or failure.request_id,
    )


def format_mcp_error(err: Any, request_id: str | None = None) -> ToolResponse:
    return ToolResponse.error(to_error_envelope(err, request_id).to_json())


# ---------------------------------------------------------------------------
# Diagnostic insights
# ---------------------------------------------------------------------------

class InsightCode:
    AUTH = "ERR_AUTH"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT = "ERR_CONFLICT"
    RATE_LIMIT = "ERR_RATE_LIMIT"
    INVALID_REQUEST = "ERR_INVALID_REQUEST"
    SERVER = "ERR_SERVER"
    TIMEOUT = "ERR_TIMEOUT"
    NETWORK = "ERR_NETWORK"


_RECOMMENDATIONS = {
    InsightCode.AUTH: "Check the credentials and role assignments used for this operation.",
    InsightCode.NOT_FOUND: "List resources first and correct the name; the resource likely does not exist.",
    InsightCode.CONFLICT: "Serialize management operations and retry with exponential backoff.",
    InsightCode.RATE_LIMIT: "Back off with jitter and reduce the request rate.",
    InsightCode.INVALID_REQUEST: "Check the request parameters against the tool schema.",
    InsightCode.SERVER: "The backend failed; retry later or check service health.",
    InsightCode.TIMEOUT: "Narrow the request (filters, smaller pages) or raise the timeout.",
    InsightCode.NETWORK: "Check connectivity, endpoint, or service availability.",
}


@dataclass
class Insight:
    ok: bool
    code: str
    message: str
    recommendation: str | None = None
    retry_after_sec: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"ok": self.ok, "code": self.code, "message": self.message}
        if self.recommendation:
            d["recommendation"] = self.recommendation
        if self.retry_after_sec is not None:
            d["retryAfterSec"] = self.retry_after_sec
        if self.extras:
            d["extras"] = self.extras
        return d


def retry_after_seconds(headers: Mapping[str, str]) -> int | None:
    """Parse ``Retry-After`` (seconds) or ``retry-after-ms`` into whole seconds."""
    raw = headers.get("retry-after")
    in_ms = False
    if raw is None:
        raw = headers.get("retry-after-ms")
        in_ms = raw is not None
    if raw is None:
        return None
    s = str(raw).strip().lower()
    if s.endswith("ms"):
        in_ms = True
        s = s[:-2]
    try:
        n = float(s)
    except ValueError:
        return None
    if not math.isfinite(n):
        return None
    return math.ceil(n / 1000) if in_ms else math.ceil(n)


def _insight_code(failure: Failure) -> str:
    if isinstance(failure, TimeoutFailure):
        return InsightCode.TIMEOUT
    if isinstance(failure, UnknownFailure):
        return InsightCode.NETWORK
    status = failure.status
    if status in (401, 403):
        return InsightCode.AUTH
    if status == 404:
        return InsightCode.NOT_FOUND
    if status in (409, 412):
        return InsightCode.CONFLICT
    if status in (429, 503):
        return InsightCode.RATE_LIMIT
    if status == 400:
        return InsightCode.INVALID_REQUEST
    if status >= 500:
        return InsightCode.SERVER
    return InsightCode.NETWORK


def diagnose(err: Any, context: Mapping[str, Any] | None = None) -> Insight:
    """Build an actionable insight for a caught error."""
    failure = classify_failure(err)
    code = _insight_code(failure)
    extras: dict[str, Any] = dict(context or {})

    retry_after = None
    if code == InsightCode.RATE_LIMIT and not isinstance(failure, TimeoutFailure):
        retry_after = retry_after_seconds(failure.headers)

    return Insight(
        ok=False,
        code=code,
        message=failure.message,
        recommendation=_RECOMMENDATIONS[code],
        retry_after_sec=retry_after,
        extras=extras,
    )


def error_payload(
    err: Any,
    request_id: str | None = None,
    context: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """The error envelope fields, extended with the insight code and recommendation."""
    payload = to_error_envelope(err, request_id).to_dict()
    insight = diagnose(err, context)
    payload["code"] = insight.code
    payload["recommendation"] = insight.recommendation
    if insight.retry_after_sec is not None:
        payload["retryAfterSec"] = insight.retry_after_sec
    if insight.extras:
        payload["context"] = insight.extras
    return payload
