"""Tests for the long-running job poller and verify helpers."""

import time
from types import SimpleNamespace

import pytest

from toolrun.poller import (
    JobStatus,
    classify_status,
    extract_etag,
    extract_last_status,
    poll_job_completion,
    verify_deleted,
    verify_exists,
)
from toolrun.types import VerifyResult
from tests.mock_tools import HttpError


def _status_source(statuses):
    """Return a get_status thunk replaying *statuses*, plus the call timestamps."""
    calls = []
    remaining = list(statuses)

    async def get_status():
        calls.append(time.monotonic())
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return {"name": "indexer-1", "lastResult": {"status": status}}

    return get_status, calls


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("success", JobStatus.SUCCESS),
            ("Success", JobStatus.SUCCESS),
            ("reset", JobStatus.RESET),
            ("transientFailure", JobStatus.TRANSIENT_FAILURE),
            ("persistent_failure", JobStatus.PERSISTENT_FAILURE),
            ("inProgress", JobStatus.IN_PROGRESS),
            ("", JobStatus.IN_PROGRESS),
            (None, JobStatus.IN_PROGRESS),
        ],
    )
    def test_classify(self, raw, expected):
        assert classify_status(raw) == expected


class TestExtractLastStatus:
    def test_last_result(self):
        assert extract_last_status({"lastResult": {"status": "success"}})[0] == "success"

    def test_execution_result_fallback(self):
        assert extract_last_status({"executionResult": {"status": "reset"}})[0] == "reset"

    def test_attribute_access(self):
        snap = SimpleNamespace(lastResult=SimpleNamespace(status="inProgress"))
        assert extract_last_status(snap)[0] == "inProgress"

    def test_missing(self):
        assert extract_last_status({}) == ("", {})


class TestPollJobCompletion:
    @pytest.mark.asyncio
    async def test_success_after_three_polls(self):
        get_status, calls = _status_source(["inProgress", "inProgress", "success"])
        result = await poll_job_completion(get_status, interval_ms=30, timeout_ms=5000)
        assert result.ok is True
        assert result.verified is True
        assert len(calls) == 3
        gaps = [b - a for a, b in zip(calls, calls[1:])]
        assert all(gap >= 0.025 for gap in gaps)
        assert result.details["polls"] == 3

    @pytest.mark.parametrize("terminal", ["transientFailure", "persistentFailure", "reset"])
    @pytest.mark.asyncio
    async def test_failure_states_stop_polling(self, terminal):
        get_status, calls = _status_source([terminal])
        result = await poll_job_completion(get_status, interval_ms=10, timeout_ms=1000)
        assert result.ok is False
        assert result.verified is True
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_deadline_returns_unverified(self):
        get_status, calls = _status_source(["inProgress"])
        started = time.monotonic()
        result = await poll_job_completion(get_status, interval_ms=20, timeout_ms=100)
        elapsed = time.monotonic() - started
        assert result.ok is False
        assert result.verified is False
        assert result.details["reason"] == "timeout"
        assert elapsed < 0.1 + 0.02 + 0.05
        assert 1 < len(calls) <= 6

    @pytest.mark.asyncio
    async def test_status_errors_propagate(self):
        async def get_status():
            raise HttpError(404, "indexer not found")

        with pytest.raises(HttpError):
            await poll_job_completion(get_status, interval_ms=10, timeout_ms=100)


class TestVerify:
    def test_extract_etag(self):
        assert extract_etag({"@odata.etag": "W/1"}) == "W/1"
        assert extract_etag({"etag": "e"}) == "e"
        assert extract_etag(SimpleNamespace(etag="attr")) == "attr"
        assert extract_etag({}) is None

    @pytest.mark.asyncio
    async def test_verify_exists(self):
        async def get():
            return {"name": "idx", "@odata.etag": "W/2"}

        result = await verify_exists(get)
        assert result.ok is True
        assert result.etag == "W/2"
        assert result.details["name"] == "idx"

    @pytest.mark.asyncio
    async def test_verify_deleted_on_404(self):
        async def get():
            raise HttpError(404)

        result = await verify_deleted(get)
        assert result.ok is True
        assert result.verify_status == 404

    @pytest.mark.asyncio
    async def test_verify_deleted_still_exists(self):
        async def get():
            return {"name": "idx"}

        result = await verify_deleted(get)
        assert result.ok is False
        assert result.verify_status == 200

    @pytest.mark.asyncio
    async def test_verify_deleted_other_error(self):
        async def get():
            raise HttpError(500)

        result = await verify_deleted(get)
        assert result.verified is False
        assert result.verify_status == 500

    def test_to_dict(self):
        d = VerifyResult(ok=True, verified=True, verify_status=200, details={"a": 1}).to_dict()
        assert d == {"ok": True, "verified": True, "verifyStatus": 200, "details": {"a": 1}}
