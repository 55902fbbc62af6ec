"""Wait for asynchronous backend jobs and verify resource state."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping

from toolrun.constants import DEFAULT_POLL_INTERVAL_MS, DEFAULT_POLL_TIMEOUT_MS
from toolrun.errors import classify_failure, HttpFailure
from toolrun.types import VerifyResult

logger = logging.getLogger(__name__)


class JobStatus:
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    RESET = "reset"
    TRANSIENT_FAILURE = "transient_failure"
    PERSISTENT_FAILURE = "persistent_failure"

    TERMINAL = (SUCCESS, RESET, TRANSIENT_FAILURE, PERSISTENT_FAILURE)


_STATUS_ALIASES = {
    "success": JobStatus.SUCCESS,
    "reset": JobStatus.RESET,
    "transientfailure": JobStatus.TRANSIENT_FAILURE,
    "persistentfailure": JobStatus.PERSISTENT_FAILURE,
}


def classify_status(status: str | None) -> str:
    """Map a backend status string to a ``JobStatus``; unknown values are in progress."""
    key = "".join(ch for ch in str(status or "").lower() if ch.isalnum())
    return _STATUS_ALIASES.get(key, JobStatus.IN_PROGRESS)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_last_status(snapshot: Any) -> tuple[str, Any]:
    """Return ``(raw_status, last_result)`` from a job status snapshot."""
    last = _field(snapshot, "lastResult")
    if last is None:
        last = _field(snapshot, "executionResult")
    if last is None:
        last = {}
    status = _field(last, "status")
    return ("" if status is None else str(status)), last


async def poll_job_completion(
    get_status: Callable[[], Awaitable[Any]],
    *,
    interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS,
) -> VerifyResult:
    """
    Poll *get_status* until the job reaches a terminal state or the deadline passes.

    Polls are spaced by at least *interval_ms*.  The loop gives up as soon as
    the next poll would fall past the deadline, so the deadline is only
    overrun by the duration of an in-flight status fetch.  Exceptions from
    *get_status* propagate.
    """
    started = time.monotonic()
    deadline = started + timeout_ms / 1000
    polls = 0

    while time.monotonic() < deadline:
        snapshot = await get_status()
        polls += 1
        raw, last = extract_last_status(snapshot)
        status = classify_status(raw)
        if status in JobStatus.TERMINAL:
            logger.debug("Job reached %s after %d polls", status, polls)
            return VerifyResult(
                ok=status == JobStatus.SUCCESS,
                verified=True,
                verify_status=200,
                details={"lastResult": last, "status": status, "polls": polls},
            )
        # No point sleeping if the next poll would land past the deadline.
        if deadline - time.monotonic() < interval_ms / 1000:
            break
        await asyncio.sleep(interval_ms / 1000)

    logger.info("Job polling timed out after %sms (%d polls)", timeout_ms, polls)
    return VerifyResult(ok=False, verified=False, details={"reason": "timeout", "polls": polls})


def extract_etag(obj: Any) -> str | None:
    for name in ("@odata.etag", "etag", "ETag"):
        value = _field(obj, name)
        if value:
            return str(value)
    return None


async def verify_exists(get: Callable[[], Awaitable[Any]]) -> VerifyResult:
    """Fetch a resource after a write; exceptions propagate."""
    res = await get()
    details = dict(res) if isinstance(res, Mapping) else {"resource": res}
    return VerifyResult(ok=True, verified=True, verify_status=200, etag=extract_etag(res), details=details)


async def verify_deleted(get: Callable[[], Awaitable[Any]]) -> VerifyResult:
    """Confirm a resource is gone: a 404 from *get* is the success case."""
    try:
        await get()
    except Exception as e:
        failure = classify_failure(e)
        status = failure.status if isinstance(failure, HttpFailure) else None
        if status == 404:
            return VerifyResult(ok=True, verified=True, verify_status=404)
        return VerifyResult(ok=False, verified=False, verify_status=status)
    return VerifyResult(ok=False, verified=False, verify_status=200)
