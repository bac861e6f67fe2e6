"""Tests for the retry policy: only 429, 5xx and transport failures are retried."""

from __future__ import annotations

import pytest

from openaikit.core.errors import (
    APIConnectionError,
    BadRequestError,
    NotFoundError,
    error_from_response,
)
from openaikit.core.retry import RetryConfig, RetryHandler, with_retry


class Flaky:
    """Raises the queued errors in order, then returns ``result``."""

    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def make_handler(**config):
    sleeps = []
    config.setdefault("jitter_factor", 0.0)
    return RetryHandler(RetryConfig(**config), sleep=sleeps.append), sleeps


# ============================================================================
# Configuration
# ============================================================================

def test_config_values_are_clamped():
    config = RetryConfig(max_attempts=0, base_delay=0.0, max_delay=0.05, jitter_factor=3.0)
    assert config.max_attempts == 1
    assert config.base_delay == 0.1
    assert config.max_delay == 0.1
    assert config.jitter_factor == 1.0


def test_presets():
    default = RetryConfig.default()
    assert (default.max_attempts, default.base_delay, default.max_delay) == (3, 1.0, 60.0)

    patient = RetryConfig.rate_limit_optimized()
    assert (patient.max_attempts, patient.base_delay, patient.max_delay, patient.jitter_factor) == (5, 2.0, 120.0, 0.2)

    assert RetryConfig.from_max_retries(2).max_attempts == 3
    assert RetryConfig.from_max_retries(0).max_attempts == 1


# ============================================================================
# Delay computation
# ============================================================================

def test_exponential_backoff_without_jitter():
    handler, _ = make_handler(base_delay=1.0, max_delay=60.0)
    error = error_from_response(500, None)
    assert [handler.compute_delay(error, n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]


def test_delay_is_capped_at_max_delay():
    handler, _ = make_handler(base_delay=1.0, max_delay=5.0)
    assert handler.compute_delay(error_from_response(500, None), 10) == 5.0


def test_flat_backoff():
    handler, _ = make_handler(base_delay=2.0, use_exponential_backoff=False)
    error = error_from_response(503, None)
    assert handler.compute_delay(error, 0) == handler.compute_delay(error, 5) == 2.0


def test_jitter_stays_within_bounds():
    handler = RetryHandler(RetryConfig(base_delay=4.0, jitter_factor=0.25))
    error = error_from_response(500, None)
    for _ in range(50):
        assert 3.0 <= handler.compute_delay(error, 0) <= 5.0


def test_retry_after_header_wins_over_backoff():
    handler, _ = make_handler(base_delay=1.0, max_delay=60.0)
    error = error_from_response(429, None, {"retry-after": "12"})
    assert handler.compute_delay(error, 0) == 12.0


def test_custom_calculator_runs_first():
    handler, _ = make_handler(delay_calculator=lambda error, attempt: 0.5 * (attempt + 1))
    assert handler.compute_delay(error_from_response(500, None), 3) == 2.0


def test_negative_delays_are_clamped_to_zero():
    handler, sleeps = make_handler(max_attempts=2)
    error = error_from_response(429, None, {"retry-after": "-5"})
    assert handler.compute_delay(error, 0) == 0.0
    assert handler.perform(Flaky(error)) == "ok"
    assert sleeps == [0.0]

    handler, _ = make_handler(delay_calculator=lambda error, attempt: -1.0)
    assert handler.compute_delay(error_from_response(500, None), 0) == 0.0


# ============================================================================
# perform()
# ============================================================================

@pytest.mark.parametrize("status", [429, 500, 502, 503])
def test_retryable_status_is_retried_until_success(status):
    handler, sleeps = make_handler(max_attempts=3, base_delay=1.0)
    op = Flaky(error_from_response(status, None), error_from_response(status, None))
    assert handler.perform(op) == "ok"
    assert op.calls == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422])
def test_client_errors_are_never_retried(status):
    handler, sleeps = make_handler(max_attempts=5)
    op = Flaky(error_from_response(status, None))
    with pytest.raises(type(error_from_response(status, None))):
        handler.perform(op)
    assert op.calls == 1
    assert sleeps == []


def test_connection_errors_are_retried():
    handler, _ = make_handler(max_attempts=2)
    op = Flaky(APIConnectionError("reset by peer"))
    assert handler.perform(op) == "ok"
    assert op.calls == 2


def test_last_error_is_raised_when_attempts_run_out():
    handler, sleeps = make_handler(max_attempts=3)
    last = error_from_response(503, {"error": {"message": "third"}})
    op = Flaky(error_from_response(503, None), error_from_response(503, None), last)
    with pytest.raises(type(last)) as excinfo:
        handler.perform(op)
    assert excinfo.value is last
    assert len(sleeps) == 2


def test_non_api_exceptions_propagate_immediately():
    handler, sleeps = make_handler(max_attempts=3)
    op = Flaky(KeyError("nope"))
    with pytest.raises(KeyError):
        handler.perform(op)
    assert op.calls == 1


def test_on_retry_is_notified_before_each_sleep():
    handler, _ = make_handler(max_attempts=3, base_delay=1.0)
    seen = []
    handler.perform(Flaky(error_from_response(429, None)), on_retry=lambda attempt, delay: seen.append((attempt, delay)))
    assert seen == [(1, 1.0)]


@pytest.mark.asyncio
async def test_perform_async_retries():
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    handler = RetryHandler(RetryConfig(max_attempts=3, jitter_factor=0.0), async_sleep=fake_sleep)
    errors = [error_from_response(500, None)]

    async def op():
        if errors:
            raise errors.pop()
        return 42

    assert await handler.perform_async(op) == 42
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_perform_async_does_not_retry_bad_request():
    handler = RetryHandler(RetryConfig(max_attempts=3))
    calls = []

    async def op():
        calls.append(1)
        raise BadRequestError("bad", status_code=400)

    with pytest.raises(BadRequestError):
        await handler.perform_async(op)
    assert len(calls) == 1


# ============================================================================
# Decorator
# ============================================================================

def test_with_retry_decorator(sleeps):
    calls = []

    @with_retry(max_retries=2, backoff_factor=0.1)
    def fetch():
        calls.append(1)
        if len(calls) < 3:
            raise error_from_response(502, None)
        return "done"

    assert fetch() == "done"
    assert len(calls) == 3
    assert len(sleeps) == 2


def test_with_retry_decorator_passes_through_not_found(sleeps):
    @with_retry(max_retries=3)
    def fetch():
        raise NotFoundError("gone", status_code=404)

    with pytest.raises(NotFoundError):
        fetch()
    assert sleeps == []


@pytest.mark.asyncio
async def test_with_retry_decorator_on_coroutines(monkeypatch):
    async def no_sleep(delay):
        return None

    monkeypatch.setattr("asyncio.sleep", no_sleep)
    calls = []

    @with_retry(max_retries=1)
    async def fetch():
        calls.append(1)
        if len(calls) == 1:
            raise APIConnectionError("reset")
        return "done"

    assert await fetch() == "done"
    assert len(calls) == 2
