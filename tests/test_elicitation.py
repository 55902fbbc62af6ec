"""Tests for the elicitation bridge."""

import asyncio
from types import SimpleNamespace

import pytest

from toolrun.elicitation import (
    ElicitationField,
    ElicitationRequest,
    ElicitationResult,
    ElicitationState,
    elicit,
    elicit_if_needed,
    merge_elicited_params,
    needs_elicitation,
    resolve_elicitation_host,
    validate_elicited_content,
)


def _request():
    return ElicitationRequest(
        message="Configure the data source",
        fields={
            "name": ElicitationField(type="string", min_length=1, max_length=10, required=True),
            "strategy": ElicitationField(type="string", enum=["batch", "stream"]),
            "workers": ElicitationField(type="integer", minimum=1, maximum=8),
        },
    )


class RecordingHost:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def elicit_input(self, request):
        self.requests.append(request)
        return self.response


class TestNeedsElicitation:
    def test_empty_string_counts_as_missing(self):
        assert needs_elicitation({"name": "", "age": 5}, ["name", "age"]) is True

    def test_present(self):
        assert needs_elicitation({"name": "x"}, ["name"]) is False

    def test_absent_and_none(self):
        assert needs_elicitation({}, ["name"]) is True
        assert needs_elicitation({"name": None}, ["name"]) is True

    def test_falsy_non_empty_values_count_as_present(self):
        assert needs_elicitation({"n": 0, "flag": False}, ["n", "flag"]) is False


class TestMerge:
    def test_provided_wins(self):
        merged = merge_elicited_params({"name": "given"}, {"name": "elicited", "extra": 1})
        assert merged == {"name": "given", "extra": 1}

    def test_fills_none_and_empty(self):
        merged = merge_elicited_params({"a": None, "b": ""}, {"a": 1, "b": 2})
        assert merged == {"a": 1, "b": 2}

    def test_nothing_elicited(self):
        provided = {"a": 1}
        assert merge_elicited_params(provided, None) == provided

    def test_provided_not_mutated(self):
        provided = {"a": None}
        merge_elicited_params(provided, {"a": 1})
        assert provided == {"a": None}


class TestRequestSchema:
    def test_wire_shape(self):
        wire = _request().to_wire()
        assert wire["message"] == "Configure the data source"
        schema = wire["requestedSchema"]
        assert schema["type"] == "object"
        assert schema["required"] == ["name"]
        assert schema["properties"]["strategy"] == {"type": "string", "enum": ["batch", "stream"]}
        assert schema["properties"]["workers"] == {"type": "integer", "minimum": 1, "maximum": 8}
        assert schema["properties"]["name"]["maxLength"] == 10

    def test_unsupported_type_rejected(self):
        with pytest.raises(ValueError):
            ElicitationField(type="object")


class TestValidation:
    def test_valid(self):
        assert validate_elicited_content({"name": "src", "workers": 2}, _request()) == (True, None)

    @pytest.mark.parametrize(
        "content",
        [
            {"strategy": "batch"},
            {"name": ""},
            {"name": "x" * 11},
            {"name": "ok", "strategy": "other"},
            {"name": "ok", "workers": 9},
            {"name": "ok", "workers": "2"},
            {"name": 5},
        ],
    )
    def test_invalid(self, content):
        ok, err = validate_elicited_content(content, _request())
        assert ok is False
        assert err

    def test_non_mapping(self):
        assert validate_elicited_content(None, _request())[0] is False


class TestResolveHost:
    def test_none_context(self):
        assert resolve_elicitation_host(None) is None

    def test_no_capability(self):
        assert resolve_elicitation_host(SimpleNamespace(server=SimpleNamespace())) is None

    @pytest.mark.asyncio
    async def test_direct(self):
        host = RecordingHost({"action": "accept"})
        resolved = resolve_elicitation_host(host)
        await resolved.elicit_input({"message": "m"})
        assert host.requests == [{"message": "m"}]

    @pytest.mark.asyncio
    async def test_nested_server_camel_case(self):
        seen = []

        async def elicitInput(request):
            seen.append(request)
            return {"action": "decline"}

        ctx = SimpleNamespace(server=SimpleNamespace(elicitInput=elicitInput))
        resolved = resolve_elicitation_host(ctx)
        assert await resolved.elicit_input({"x": 1}) == {"action": "decline"}
        assert seen == [{"x": 1}]

    @pytest.mark.asyncio
    async def test_nested_agent_mapping(self):
        host = RecordingHost({"action": "cancel"})
        resolved = resolve_elicitation_host({"agent": host})
        assert resolved is not None

    @pytest.mark.asyncio
    async def test_sync_callable(self):
        ctx = SimpleNamespace(elicit_input=lambda request: {"action": "accept", "content": {}})
        resolved = resolve_elicitation_host(ctx)
        assert (await resolved.elicit_input({}))["action"] == "accept"


class TestElicitationResult:
    def test_defaults_to_cancel(self):
        assert ElicitationResult.from_response({}).action == "cancel"
        assert ElicitationResult.from_response(None).action == "cancel"

    def test_attribute_response(self):
        result = ElicitationResult.from_response(SimpleNamespace(action="accept", content={"a": 1}))
        assert result.action == "accept"
        assert result.content == {"a": 1}


class TestElicit:
    @pytest.mark.asyncio
    async def test_not_supported(self):
        outcome = await elicit(SimpleNamespace(), _request())
        assert outcome.state is ElicitationState.NOT_SUPPORTED
        assert outcome.data is None

    @pytest.mark.asyncio
    async def test_accepted_and_valid(self):
        host = RecordingHost({"action": "accept", "content": {"name": "src", "strategy": "batch"}})
        outcome = await elicit(host, _request())
        assert outcome.state is ElicitationState.VALIDATED
        assert outcome.data == {"name": "src", "strategy": "batch"}
        assert host.requests[0]["requestedSchema"]["required"] == ["name"]

    @pytest.mark.asyncio
    async def test_accepted_but_invalid(self):
        host = RecordingHost({"action": "accept", "content": {"name": "src", "workers": 100}})
        outcome = await elicit(host, _request())
        assert outcome.state is ElicitationState.REJECTED
        assert outcome.data is None

    @pytest.mark.parametrize("action", ["decline", "cancel"])
    @pytest.mark.asyncio
    async def test_not_accepted(self, action):
        host = RecordingHost({"action": action, "content": {"name": "src"}})
        assert await elicit_if_needed(host, _request()) is None

    @pytest.mark.asyncio
    async def test_missing_action_is_cancel(self):
        host = RecordingHost({"content": {"name": "src"}})
        outcome = await elicit(host, _request())
        assert outcome.state is ElicitationState.REJECTED

    @pytest.mark.asyncio
    async def test_timeout(self):
        class SlowHost:
            async def elicit_input(self, request):
                await asyncio.sleep(1)

        outcome = await elicit(SlowHost(), _request(), timeout_ms=20)
        assert outcome.state is ElicitationState.TIMED_OUT
        assert outcome.data is None

    @pytest.mark.asyncio
    async def test_host_error_is_swallowed(self):
        class BrokenHost:
            async def elicit_input(self, request):
                raise ConnectionError("transport closed")

        assert await elicit_if_needed(BrokenHost(), _request()) is None

    @pytest.mark.asyncio
    async def test_elicit_if_needed_returns_data(self):
        host = RecordingHost({"action": "accept", "content": {"name": "src"}})
        assert await elicit_if_needed(host, _request()) == {"name": "src"}
