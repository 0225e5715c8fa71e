"""
Unit Tests for the Request Executor

These tests verify that the RequestExecutor:
- Retries transient failures (5xx, 429, timeouts, connection errors)
- Fails fast on permanent 4xx errors
- Caches successful GET responses only
- Normalizes failures into typed errors or failure results

The aiohttp session is replaced by a scripted fake, so no network is used.

Run with:
    pytest tests/unit/test_request_executor.py -v
"""

import asyncio

import aiohttp
import pytest

from core.errors import HTTPError, NetworkError, RequestTimeoutError, UpstreamDataError, ValidationError
from core.request_executor import RequestExecutor


# ============================================
# Fakes
# ============================================

class FakeResponse:
    def __init__(self, status=200, payload=None, text="", json_error=None):
        self.status = status
        self._payload = payload
        self._text = text
        self._json_error = json_error

    async def json(self, content_type=None):
        if self._json_error is not None:
            raise self._json_error
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeSession:
    """Plays back one scripted outcome per request (a FakeResponse or an exception)."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self):
        pass


def make_executor(outcomes, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    kwargs.setdefault("max_retries", 2)
    executor = RequestExecutor("http://oracle.test/", source="oracle", **kwargs)
    executor.session = FakeSession(outcomes)
    return executor


# ============================================
# Tests
# ============================================

class TestSuccessAndCaching:
    """Successful requests and the GET cache"""

    @pytest.mark.asyncio
    async def test_success_returns_data(self):
        executor = make_executor([FakeResponse(payload={"status": "ok"})])

        result = await executor.request("/health")

        assert result.success is True
        assert result.data == {"status": "ok"}
        assert result.status == 200
        assert result.cached is False
        assert executor.session.calls[0]["url"] == "http://oracle.test/health"

    @pytest.mark.asyncio
    async def test_none_params_are_dropped(self):
        executor = make_executor([FakeResponse(payload={})])

        await executor.request("price", {"token": "0xabc", "pair": None})

        assert executor.session.calls[0]["params"] == {"token": "0xabc"}
        assert executor.session.calls[0]["url"] == "http://oracle.test/price"

    @pytest.mark.asyncio
    async def test_get_is_served_from_cache(self):
        executor = make_executor([FakeResponse(payload={"v": 1})])

        first = await executor.request("/price", {"token": "0xabc"})
        second = await executor.request("/price", {"token": "0xabc"})

        assert first.cached is False
        assert second.cached is True
        assert second.data == {"v": 1}
        assert len(executor.session.calls) == 1

    @pytest.mark.asyncio
    async def test_post_is_never_cached(self):
        executor = make_executor([FakeResponse(payload=[1]), FakeResponse(payload=[2])])

        await executor.request("/prices", method="POST", json_body=[{"tokenAddress": "0x1"}])
        result = await executor.request("/prices", method="POST", json_body=[{"tokenAddress": "0x1"}])

        assert result.data == [2]
        assert len(executor.session.calls) == 2
        assert executor.session.calls[0]["json"] == [{"tokenAddress": "0x1"}]

    def test_cache_key_is_order_independent(self):
        a = RequestExecutor.cache_key("price", {"token": "0xabc", "chainId": 56})
        b = RequestExecutor.cache_key("/price", {"chainId": 56, "token": "0xabc"})
        assert a == b == '/price:{"chainId": 56, "token": "0xabc"}'

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        executor = make_executor([FakeResponse(payload=1), FakeResponse(payload=2)])

        await executor.request("/oracle")
        executor.clear_cache()
        result = await executor.request("/oracle")

        assert result.data == 2
        assert executor.cache_statistics()["size"] == 1


class TestRetries:
    """Transient errors are retried, permanent ones are not"""

    @pytest.mark.asyncio
    async def test_server_error_then_success(self):
        executor = make_executor([FakeResponse(status=503, text="busy"), FakeResponse(payload={"ok": True})])

        result = await executor.request("/health")

        assert result.success is True
        assert len(executor.session.calls) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausts_retries(self):
        executor = make_executor([FakeResponse(status=429, text="slow down")] * 3)

        with pytest.raises(NetworkError) as exc_info:
            await executor.request("/health")

        assert exc_info.value.status == 429
        assert len(executor.session.calls) == 3

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self):
        executor = make_executor([asyncio.TimeoutError(), FakeResponse(payload={"ok": True})])

        result = await executor.request("/health")

        assert result.success is True
        assert len(executor.session.calls) == 2

    @pytest.mark.asyncio
    async def test_timeout_after_all_attempts(self):
        executor = make_executor([asyncio.TimeoutError()] * 3, timeout=1.5)

        with pytest.raises(RequestTimeoutError, match="1.5s"):
            await executor.request("/health")

    @pytest.mark.asyncio
    async def test_connection_error_after_all_attempts(self):
        executor = make_executor([aiohttp.ClientConnectionError("refused")] * 3)

        with pytest.raises(NetworkError):
            await executor.request("/health")

        assert len(executor.session.calls) == 3

    @pytest.mark.asyncio
    async def test_non_idempotent_post_is_not_retried(self):
        executor = make_executor([FakeResponse(status=500, text="boom")])

        with pytest.raises(NetworkError):
            await executor.request("/prices", method="POST", json_body=[])

        assert len(executor.session.calls) == 1

    @pytest.mark.asyncio
    async def test_idempotent_post_is_retried(self):
        executor = make_executor([FakeResponse(status=500), FakeResponse(payload=[])])

        result = await executor.request("/prices", method="POST", json_body=[], idempotent=True)

        assert result.success is True
        assert len(executor.session.calls) == 2

    @pytest.mark.asyncio
    async def test_backoff_doubles_between_attempts(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("core.request_executor.asyncio.sleep", fake_sleep)
        executor = make_executor([FakeResponse(status=503, text="busy")] * 3, retry_delay=0.5, max_retries=2)

        with pytest.raises(NetworkError):
            await executor.request("/health")

        assert delays == [0.5, 1.0]
        assert len(executor.session.calls) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, error_cls", [(400, ValidationError), (422, ValidationError), (404, HTTPError)])
    async def test_client_errors_fail_immediately(self, status, error_cls):
        executor = make_executor([FakeResponse(status=status, text="bad")])

        with pytest.raises(error_cls) as exc_info:
            await executor.request("/price")

        assert exc_info.value.status == status
        assert len(executor.session.calls) == 1


class TestFailureResults:
    """throw_on_error=False turns failures into RequestResult values"""

    @pytest.mark.asyncio
    async def test_failure_result(self):
        executor = make_executor([FakeResponse(status=404, text="missing")], throw_on_error=False)

        result = await executor.request("/price")

        assert result.success is False
        assert result.error.kind == "HTTPError"
        assert result.status == 404
        with pytest.raises(HTTPError):
            result.raise_for_error()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        executor = make_executor([FakeResponse(json_error=ValueError("not json"))], throw_on_error=False)

        result = await executor.request("/price")

        assert result.success is False
        assert result.error.kind == UpstreamDataError.kind

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        executor = make_executor(
            [FakeResponse(status=404), FakeResponse(payload={"v": 1})],
            throw_on_error=False,
        )

        await executor.request("/price")
        result = await executor.request("/price")

        assert result.success is True
        assert result.cached is False


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_request_outside_context_raises(self):
        executor = RequestExecutor("http://oracle.test")
        with pytest.raises(RuntimeError, match="async with"):
            await executor.request("/health")

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes_session(self):
        async with RequestExecutor("http://oracle.test") as executor:
            assert executor.session is not None
        assert executor.session is None
