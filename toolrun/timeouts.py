"""
Timeout guard for backend operations.

``with_timeout`` races an operation against a timer.  Whichever settles first
decides the outcome; the timer is always released.

By default a timed-out operation is *not* cancelled: it keeps running in the
background and its eventual result or exception is discarded.  Callers must
make sure the operation is cheap to abandon or internally bounded.  Pass
``cancel_on_timeout=True`` to cancel the underlying task instead, for
operations that handle ``asyncio.CancelledError`` cooperatively.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from toolrun.constants import DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationTimeoutError(TimeoutError):
    """An operation did not finish within its budget."""

    def __init__(self, operation: str, timeout_ms: int) -> None:
        super().__init__(f"Operation '{operation}' timed out after {timeout_ms}ms")
        self.operation = operation
        self.timeout_ms = timeout_ms


def _discard_result(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned operation finished with %s: %s", type(exc).__name__, exc)


def _start(op: Awaitable[T] | Callable[[], Awaitable[T]]) -> asyncio.Future:
    if callable(op) and not inspect.isawaitable(op):
        op = op()
    return asyncio.ensure_future(op)


async def with_timeout(
    op: Awaitable[T] | Callable[[], Awaitable[T]],
    timeout_ms: int | None = None,
    operation: str = "operation",
    *,
    cancel_on_timeout: bool = False,
) -> T:
    """
    Run *op* with a wall-clock budget.

    Parameters
    ----------
    op : zero-argument callable returning an awaitable (preferred, so the
        work starts inside the timeout window) or an already-started awaitable.
    timeout_ms : budget in milliseconds; defaults to ``DEFAULT_TIMEOUT_MS``.
    operation : name used in the timeout error message.
    cancel_on_timeout : cancel the underlying task when the budget is exceeded.

    Raises
    ------
    OperationTimeoutError
        When the budget elapses first.  Exceptions raised by *op* itself
        propagate unchanged.
    """
    if timeout_ms is None:
        timeout_ms = DEFAULT_TIMEOUT_MS
    task = _start(op)
    try:
        done, _pending = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    if cancel_on_timeout:
        task.cancel()
    task.add_done_callback(_discard_result)
    logger.warning("Operation '%s' timed out after %sms", operation, timeout_ms)
    raise OperationTimeoutError(operation, timeout_ms)


def timed(
    timeout_ms: int | None = None,
    operation: str | None = None,
    *,
    cancel_on_timeout: bool = False,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorate an async function so every call runs under ``with_timeout``."""

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = operation or fn.__name__

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_timeout(
                lambda: fn(*args, **kwargs),
                timeout_ms,
                name,
                cancel_on_timeout=cancel_on_timeout,
            )

        return wrapper

    return decorator
