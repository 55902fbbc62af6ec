"""
Elicitation bridge: ask the caller for missing tool parameters mid-invocation.

The host runtime may or may not expose an input-request capability.
``resolve_elicitation_host`` is the single place that knows where to look for
it; everything else talks to the ``ElicitationHost`` protocol.

A round trip moves through::

    IDLE -> PROBING -> NOT_SUPPORTED
                    -> REQUESTING -> TIMED_OUT
                                  -> RESPONDED -> VALIDATED
                                               -> REJECTED

Only ``VALIDATED`` yields data.  Every other terminal state means "no value
obtained", and the tool proceeds with the parameters it already has.
"""

from __future__ import annotations

import enum
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, runtime_checkable

import jsonschema

from toolrun.constants import DEFAULT_ELICITATION_TIMEOUT_MS
from toolrun.timeouts import OperationTimeoutError, with_timeout

logger = logging.getLogger(__name__)

FIELD_TYPES = ("string", "number", "integer", "boolean")

# Sub-objects conventionally used by hosting runtimes to hang the capability on.
_HOST_ATTRIBUTES = ("server", "agent")
_METHOD_NAMES = ("elicit_input", "elicitInput")


# ---------------------------------------------------------------------------
# Request / result model
# ---------------------------------------------------------------------------

@dataclass
class ElicitationField:
    type: str = "string"
    title: str = ""
    description: str = ""
    enum: list[Any] | None = None
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    required: bool = False

    def __post_init__(self) -> None:
        if self.type not in FIELD_TYPES:
            raise ValueError(f"Unsupported elicitation field type: {self.type!r}")

    def to_json_schema(self) -> dict:
        s: dict[str, Any] = {"type": self.type}
        if self.title:
            s["title"] = self.title
        if self.description:
            s["description"] = self.description
        if self.enum is not None:
            s["enum"] = list(self.enum)
        if self.minimum is not None:
            s["minimum"] = self.minimum
        if self.maximum is not None:
            s["maximum"] = self.maximum
        if self.min_length is not None:
            s["minLength"] = self.min_length
        if self.max_length is not None:
            s["maxLength"] = self.max_length
        return s


@dataclass
class ElicitationRequest:
    message: str
    fields: dict[str, ElicitationField] = field(default_factory=dict)

    @property
    def required(self) -> list[str]:
        return [name for name, f in self.fields.items() if f.required]

    def requested_schema(self) -> dict:
        """The flat JSON-Schema object sent to the host as ``requestedSchema``."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {name: f.to_json_schema() for name, f in self.fields.items()},
        }
        if self.required:
            schema["required"] = self.required
        return schema

    def to_wire(self) -> dict:
        return {"message": self.message, "requestedSchema": self.requested_schema()}


class ElicitationAction:
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"


@dataclass
class ElicitationResult:
    action: str = ElicitationAction.CANCEL
    content: dict[str, Any] | None = None

    @classmethod
    def from_response(cls, response: Any) -> ElicitationResult:
        if isinstance(response, ElicitationResult):
            return response
        if isinstance(response, Mapping):
            action, content = response.get("action"), response.get("content")
        else:
            action, content = getattr(response, "action", None), getattr(response, "content", None)
        return cls(
            action=str(action) if action else ElicitationAction.CANCEL,
            content=dict(content) if isinstance(content, Mapping) else None,
        )


class ElicitationState(enum.Enum):
    IDLE = "idle"
    PROBING = "probing"
    NOT_SUPPORTED = "not_supported"
    REQUESTING = "requesting"
    TIMED_OUT = "timed_out"
    RESPONDED = "responded"
    VALIDATED = "validated"
    REJECTED = "rejected"


@dataclass
class ElicitationOutcome:
    state: ElicitationState
    data: dict[str, Any] | None = None
    reason: str = ""

    @property
    def obtained(self) -> bool:
        return self.state is ElicitationState.VALIDATED and self.data is not None


# ---------------------------------------------------------------------------
# Host capability
# ---------------------------------------------------------------------------

@runtime_checkable
class ElicitationHost(Protocol):
    async def elicit_input(self, request: dict) -> Any: ...


class _BoundHost:
    """Adapts a bare callable found on a host object to ``ElicitationHost``."""

    def __init__(self, method: Callable[[dict], Awaitable[Any]]) -> None:
        self._method = method

    async def elicit_input(self, request: dict) -> Any:
        result = self._method(request)
        if inspect.isawaitable(result):
            result = await result
        return result


def _lookup(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _method_on(obj: Any) -> Callable | None:
    for name in _METHOD_NAMES:
        method = _lookup(obj, name)
        if callable(method):
            return method
    return None


def resolve_elicitation_host(context: Any) -> ElicitationHost | None:
    """
    Find an input-request capability on a host context.

    Looks at the context itself, then ``context.server`` and ``context.agent``
    (attributes or mapping keys), accepting ``elicit_input`` or ``elicitInput``.
    """
    if context is None:
        return None
    for candidate in (context, *(_lookup(context, a) for a in _HOST_ATTRIBUTES)):
        method = _method_on(candidate)
        if method is not None:
            return _BoundHost(method)
    return None


# ---------------------------------------------------------------------------
# Validation and round trip
# ---------------------------------------------------------------------------

def validate_elicited_content(content: Any, request: ElicitationRequest) -> tuple[bool, str | None]:
    if not isinstance(content, Mapping):
        return False, "content must be an object"
    try:
        jsonschema.validate(instance=dict(content), schema=request.requested_schema())
        return True, None
    except jsonschema.ValidationError as e:
        return False, str(e.message)


async def elicit(
    context: Any,
    request: ElicitationRequest,
    *,
    timeout_ms: int | None = None,
) -> ElicitationOutcome:
    """Run one elicitation round trip. Never raises."""
    host = resolve_elicitation_host(context)
    if host is None:
        logger.debug("Host does not support elicitation")
        return ElicitationOutcome(ElicitationState.NOT_SUPPORTED, reason="no elicitation capability")

    try:
        response = await with_timeout(
            lambda: host.elicit_input(request.to_wire()),
            timeout_ms or DEFAULT_ELICITATION_TIMEOUT_MS,
            "elicitation",
            cancel_on_timeout=True,
        )
    except OperationTimeoutError as e:
        return ElicitationOutcome(ElicitationState.TIMED_OUT, reason=str(e))
    except Exception as e:
        logger.error("Elicitation failed: %s", e, extra={"details": {"context_type": type(context).__name__}})
        return ElicitationOutcome(ElicitationState.REJECTED, reason=str(e))

    result = ElicitationResult.from_response(response)
    if result.action != ElicitationAction.ACCEPT:
        return ElicitationOutcome(ElicitationState.REJECTED, reason=f"user chose {result.action}")

    valid, error = validate_elicited_content(result.content, request)
    if not valid:
        logger.info("Discarding elicited content: %s", error)
        return ElicitationOutcome(ElicitationState.REJECTED, reason=error or "invalid content")
    return ElicitationOutcome(ElicitationState.VALIDATED, data=dict(result.content or {}))


async def elicit_if_needed(
    context: Any,
    request: ElicitationRequest,
    *,
    timeout_ms: int | None = None,
) -> dict[str, Any] | None:
    """Elicited values, or ``None`` when nothing usable was obtained."""
    outcome = await elicit(context, request, timeout_ms=timeout_ms)
    return outcome.data if outcome.obtained else None


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def merge_elicited_params(provided: Mapping[str, Any], elicited: Mapping[str, Any] | None) -> dict[str, Any]:
    """Fill gaps in *provided* from *elicited*; supplied non-empty values always win."""
    merged = dict(provided)
    for key, value in (elicited or {}).items():
        if _is_missing(merged.get(key)):
            merged[key] = value
    return merged


def needs_elicitation(params: Mapping[str, Any], required: Sequence[str]) -> bool:
    return any(_is_missing(params.get(name)) for name in required)
