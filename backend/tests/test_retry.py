from __future__ import annotations

import pytest

from query.retry import RetryExhausted, RetryPolicy, retrying_fetch


class FlakyFetch:
    def __init__(self, failures: int, result: object = "ok", error: type[Exception] = ConnectionError):
        self.failures = failures
        self.result = result
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"attempt {self.calls} failed")
        return self.result


def test_delay_doubles_and_caps():
    policy = RetryPolicy()
    assert [policy.delay_for(i) for i in range(7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_jitter_stays_within_bounds():
    policy = RetryPolicy(jitter=0.5)
    for attempt in range(5):
        base = min(2**attempt, 30)
        assert base <= policy.delay_for(attempt) <= base * 1.5


@pytest.mark.parametrize(
    "kwargs", [{"max_retries": -1}, {"base_delay": -1}, {"jitter": 2}]
)
def test_policy_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


@pytest.mark.asyncio
async def test_two_failures_then_success(sleep_recorder):
    fetch = FlakyFetch(failures=2)
    retries: list[int] = []

    result = await retrying_fetch(
        fetch,
        RetryPolicy(),
        sleep=sleep_recorder,
        on_retry=lambda count, error, delay: retries.append(count),
    )

    assert result == "ok"
    assert fetch.calls == 3
    assert sleep_recorder.delays == [1.0, 2.0]
    assert retries == [1, 2]


@pytest.mark.asyncio
async def test_exhaustion_raises_with_last_error(sleep_recorder):
    fetch = FlakyFetch(failures=10)

    with pytest.raises(RetryExhausted) as excinfo:
        await retrying_fetch(fetch, RetryPolicy(max_retries=3), sleep=sleep_recorder)

    assert fetch.calls == 4
    assert excinfo.value.attempts == 4
    assert isinstance(excinfo.value.last_error, ConnectionError)
    assert sleep_recorder.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate_immediately(sleep_recorder):
    fetch = FlakyFetch(failures=1, error=KeyError)
    policy = RetryPolicy(retry_on=(ConnectionError,))

    with pytest.raises(KeyError):
        await retrying_fetch(fetch, policy, sleep=sleep_recorder)

    assert fetch.calls == 1
    assert sleep_recorder.delays == []


@pytest.mark.asyncio
async def test_disabled_policy_tries_once(sleep_recorder):
    fetch = FlakyFetch(failures=1)

    with pytest.raises(RetryExhausted):
        await retrying_fetch(fetch, RetryPolicy.disabled(), sleep=sleep_recorder)

    assert fetch.calls == 1
