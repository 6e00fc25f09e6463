"""Unit tests for RequestExecutor — classification, retry and cooldown."""
from __future__ import annotations

import base64
import time

import httpx
import pytest

from lever_export.core.enums import FailureKind
from lever_export.fetchers.base import Request
from lever_export.fetchers.executor import backoff_delay, classify_status
from lever_export.fetchers.rate_gate import RateGate


class TestBackoffDelay:
    def test_quadratic(self):
        assert [backoff_delay(n, 1.0) for n in (1, 2, 3, 4)] == [1.0, 4.0, 9.0, 16.0]

    def test_scales_with_base(self):
        assert backoff_delay(3, 0.5) == 4.5


class TestClassifyStatus:
    def test_success(self):
        assert classify_status(200) is None
        assert classify_status(204) is None

    def test_throttled(self):
        assert classify_status(429) is FailureKind.THROTTLED

    def test_server_errors_are_transient(self):
        for code in (500, 502, 503, 504):
            assert classify_status(code) is FailureKind.TRANSIENT

    def test_other_client_errors_are_rejected(self):
        for code in (400, 401, 403, 404, 422):
            assert classify_status(code) is FailureKind.REJECTED


# ── execute() ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_success_returns_payload(fake_api, make_executor):
    fake_api.add_record("/archive_reasons/r1", {"id": "r1", "text": "Hired"})
    executor = make_executor()

    result = await executor.execute(Request("/archive_reasons/r1"))

    assert result.success
    assert result.data == {"id": "r1", "text": "Hired"}
    assert len(fake_api.calls) == 1


@pytest.mark.asyncio
async def test_attaches_basic_auth_and_query(fake_api, make_executor):
    executor = make_executor()

    await executor.execute(
        Request.build("/opportunities", expand=["stage", "owner"], limit=100),
    )

    call = fake_api.calls[0]
    expected = base64.b64encode(b"test-api-key:").decode()
    assert call.headers["Authorization"] == f"Basic {expected}"
    assert call.url.params.get_list("expand") == ["stage", "owner"]
    assert call.url.params["limit"] == "100"
    assert call.method == "GET"


@pytest.mark.asyncio
async def test_rejected_is_not_retried(fake_api, make_executor):
    fake_api.add_status("/opportunities/o1/notes", 404, {"code": "ResourceNotFound"})
    executor = make_executor()

    result = await executor.execute(Request("/opportunities/o1/notes"))

    assert not result.success
    assert result.failure.kind is FailureKind.REJECTED
    assert result.failure.status_code == 404
    assert result.failure.payload == {"code": "ResourceNotFound"}
    assert len(fake_api.calls) == 1


@pytest.mark.asyncio
async def test_rejected_does_not_trigger_cooldown(fake_api, make_executor):
    fake_api.add_status("/x", 403)
    gate = RateGate(requests_per_second=1000)
    executor = make_executor(gate=gate, cooldown=10.0)

    await executor.execute(Request("/x"))

    assert gate.cooldowns_triggered == 0
    assert gate.cooldown_remaining() == 0.0


@pytest.mark.asyncio
async def test_server_error_then_success(fake_api, make_executor, sleep_recorder):
    fake_api.add_responses("/x", [
        httpx.Response(503),
        httpx.Response(500),
        httpx.Response(200, json={"data": {"ok": True}}),
    ])
    gate = RateGate(requests_per_second=1000)
    executor = make_executor(gate=gate, backoff_base=0.5, sleep=sleep_recorder)

    result = await executor.execute(Request("/x"))

    assert result.success
    assert result.data == {"ok": True}
    assert sleep_recorder.delays == [0.5, 2.0]
    assert gate.cooldowns_triggered == 0


@pytest.mark.asyncio
async def test_backoff_is_quadratic_until_exhausted(fake_api, make_executor, sleep_recorder):
    fake_api.add_status("/x", 502)
    executor = make_executor(retry_count=4, backoff_base=1.0, sleep=sleep_recorder)

    result = await executor.execute(Request("/x"))

    assert not result.success
    assert result.failure.kind is FailureKind.EXHAUSTED
    assert result.failure.attempts == 5
    assert result.failure.status_code == 502
    assert sleep_recorder.delays == [1.0, 4.0, 9.0, 16.0]
    assert len(fake_api.calls) == 5


@pytest.mark.asyncio
async def test_network_error_is_retried(fake_api, make_executor, sleep_recorder):
    attempts = {"n": 0}
    original = fake_api.handler

    async def flaky(request):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return await original(request)

    fake_api.handler = flaky
    fake_api.add_record("/x", {"id": "x"})
    executor = make_executor(sleep=sleep_recorder)

    result = await executor.execute(Request("/x"))

    assert result.success
    assert attempts["n"] == 2
    assert sleep_recorder.delays == [0.0]


@pytest.mark.asyncio
async def test_network_error_exhausted(fake_api, make_executor, sleep_recorder):
    async def down(request):
        raise httpx.ReadTimeout("timed out", request=request)

    fake_api.handler = down
    executor = make_executor(retry_count=2, sleep=sleep_recorder)

    result = await executor.execute(Request("/x"))

    assert result.failure.kind is FailureKind.EXHAUSTED
    assert result.failure.status_code is None
    assert "ReadTimeout" in result.failure.message


@pytest.mark.asyncio
async def test_throttled_triggers_cooldown_then_succeeds(fake_api, make_executor):
    fake_api.add_responses("/x", [
        httpx.Response(429),
        httpx.Response(200, json={"data": {"ok": True}}),
    ])
    gate = RateGate(requests_per_second=1000)
    executor = make_executor(gate=gate, cooldown=0.1, backoff_base=0.0)

    t0 = time.monotonic()
    result = await executor.execute(Request("/x"))
    elapsed = time.monotonic() - t0

    assert result.success
    assert gate.cooldowns_triggered == 1
    # the retry could not launch before the cooldown expired
    assert elapsed >= 0.09
    assert len(fake_api.calls) == 2


@pytest.mark.asyncio
async def test_throttled_exhausted(fake_api, make_executor, sleep_recorder):
    fake_api.add_status("/x", 429)
    gate = RateGate(requests_per_second=1000)
    executor = make_executor(gate=gate, retry_count=2, sleep=sleep_recorder)

    result = await executor.execute(Request("/x"))

    assert result.failure.kind is FailureKind.EXHAUSTED
    assert result.failure.status_code == 429
    assert gate.cooldowns_triggered == 3


@pytest.mark.asyncio
async def test_invalid_json_is_rejected(fake_api, make_executor):
    fake_api.add_responses("/x", [httpx.Response(200, text="<html>oops</html>")])
    executor = make_executor()

    result = await executor.execute(Request("/x"))

    assert result.failure.kind is FailureKind.REJECTED
    assert result.failure.payload == "<html>oops</html>"
    assert len(fake_api.calls) == 1


@pytest.mark.asyncio
async def test_every_attempt_goes_through_the_gate(fake_api, make_executor):
    fake_api.add_responses("/x", [
        httpx.Response(500),
        httpx.Response(200, json={"data": {}}),
    ])
    gate = RateGate(requests_per_second=1000)
    executor = make_executor(gate=gate)

    await executor.execute(Request("/x"))

    assert gate.granted == 2


def _corrupt_gzip() -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Encoding": "gzip"},
        stream=httpx.ByteStream(b"not gzip"),
    )


@pytest.mark.asyncio
async def test_undecodable_body_is_retried_not_raised(fake_api, make_executor, sleep_recorder):
    async def corrupt(request):
        fake_api.calls.append(request)
        return _corrupt_gzip()

    fake_api.handler = corrupt
    executor = make_executor(retry_count=2, sleep=sleep_recorder)

    result = await executor.execute(Request("/x"))

    assert not result.success
    assert result.failure.kind is FailureKind.EXHAUSTED
    assert result.failure.status_code is None
    assert "DecodingError" in result.failure.message
    assert len(fake_api.calls) == 3


@pytest.mark.asyncio
async def test_undecodable_body_then_success(fake_api, make_executor, sleep_recorder):
    attempts = {"n": 0}
    original = fake_api.handler

    async def corrupt_once(request):
        attempts["n"] += 1
        if attempts["n"] == 1:
            return _corrupt_gzip()
        return await original(request)

    fake_api.handler = corrupt_once
    fake_api.add_record("/x", {"id": "x"})
    executor = make_executor(sleep=sleep_recorder)

    result = await executor.execute(Request("/x"))

    assert result.success
    assert result.data == {"id": "x"}
    assert attempts["n"] == 2
