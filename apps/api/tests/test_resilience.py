import pytest

from services.llm_client import GenerationError, GenerationRateLimited, is_rate_limited
from services.resilience import RetryPolicy, call_with_retry, with_fallback


class FlakyOperation:
    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.mark.asyncio
async def test_with_fallback_returns_value_or_fallback():
    assert await with_fallback(FlakyOperation([]), "fallback") == "ok"
    assert await with_fallback(FlakyOperation([RuntimeError("down")]), "fallback") == "fallback"


def test_retry_policy_delays_double():
    policy = RetryPolicy(base_delay=1.0, backoff_factor=2.0, max_delay=3.0)
    assert [policy.delay_for(attempt) for attempt in range(3)] == [1.0, 2.0, 3.0]


@pytest.mark.asyncio
async def test_rate_limit_errors_are_retried_with_backoff():
    operation = FlakyOperation([GenerationRateLimited("429"), GenerationRateLimited("429")])
    sleep = RecordingSleep()

    result = await call_with_retry(operation, RetryPolicy(retryable=is_rate_limited), sleep=sleep)

    assert result == "ok"
    assert operation.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_other_errors_propagate_without_retry():
    operation = FlakyOperation([GenerationError("bad request")])
    sleep = RecordingSleep()

    with pytest.raises(GenerationError):
        await call_with_retry(operation, RetryPolicy(retryable=is_rate_limited), sleep=sleep)

    assert operation.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_last_rate_limit_error_propagates_when_attempts_run_out():
    operation = FlakyOperation([GenerationRateLimited(str(idx)) for idx in range(5)])
    sleep = RecordingSleep()

    with pytest.raises(GenerationRateLimited) as exc:
        await call_with_retry(operation, RetryPolicy(max_attempts=3, retryable=is_rate_limited), sleep=sleep)

    assert str(exc.value) == "2"
    assert operation.calls == 3
    assert sleep.delays == [1.0, 2.0]
