from unittest.mock import AsyncMock

import pytest

from quotaflow.services.backoff import BackoffPolicy


class Flaky(Exception):
    pass


class Fatal(Exception):
    pass


async def run(policy: BackoffPolicy, outcomes: list, **kwargs) -> tuple[str, int]:
    calls = 0
    async for attempt in policy.retrying(**kwargs):
        with attempt:
            calls += 1
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome, calls
    raise AssertionError("retry loop ended without a result")


def test_default_delays() -> None:
    policy = BackoffPolicy()

    assert policy.max_attempts == 3
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.5, 3.0, 6.0]


def test_attempt_budget() -> None:
    policy = BackoffPolicy(max_attempts=3)

    assert policy.has_attempts_left(1) is True
    assert policy.has_attempts_left(2) is True
    assert policy.has_attempts_left(3) is False


@pytest.mark.asyncio
async def test_retrying_sleeps_between_attempts_with_injected_sleep() -> None:
    sleep = AsyncMock()
    policy = BackoffPolicy(base_delay_seconds=0.5, multiplier=3.0, sleep=sleep)

    result = await run(policy, [Flaky("1"), Flaky("2"), "ok"])

    assert result == ("ok", 3)
    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.5]


@pytest.mark.asyncio
async def test_retrying_reraises_last_error_when_budget_is_spent() -> None:
    sleep = AsyncMock()
    policy = BackoffPolicy(sleep=sleep)

    with pytest.raises(Flaky, match="3"):
        await run(policy, [Flaky("1"), Flaky("2"), Flaky("3"), "never"])

    assert [c.args[0] for c in sleep.await_args_list] == [1.5, 3.0]


@pytest.mark.asyncio
async def test_retrying_stops_at_once_when_error_is_not_retryable() -> None:
    sleep = AsyncMock()
    policy = BackoffPolicy(sleep=sleep)

    with pytest.raises(Fatal):
        await run(policy, [Fatal("bad input"), "never"], retry_if=lambda exc: not isinstance(exc, Fatal))

    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_resumed_run_continues_the_delay_curve() -> None:
    sleep = AsyncMock()
    policy = BackoffPolicy(max_attempts=4, sleep=sleep)

    with pytest.raises(Flaky):
        await run(policy, [Flaky("3"), Flaky("4")], attempts_used=2)

    assert [c.args[0] for c in sleep.await_args_list] == [6.0]


def test_retrying_without_attempts_left_is_rejected() -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(max_attempts=3).retrying(attempts_used=3)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"base_delay_seconds": -1},
        {"multiplier": 0.5},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(**kwargs)


def test_attempts_are_one_based() -> None:
    with pytest.raises(ValueError):
        BackoffPolicy().delay_for(0)
