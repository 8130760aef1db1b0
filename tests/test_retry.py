import pytest

from battlebook.common.errors import (
    ClientRequestError,
    RetryExhaustedError,
    TransientProviderError,
)
from battlebook.common.retry import RetryPolicy


def test_retry_until_success():
    attempts = []
    sleeps = []

    def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientProviderError("busy")
        return "done"

    policy = RetryPolicy(max_attempts=3, delay_seconds=5)
    assert policy.run(operation, description="op", sleep=sleeps.append) == "done"
    assert len(attempts) == 3
    assert sleeps == [5, 5]


def test_retry_exhausted_reports_attempts():
    retries = []

    def operation():
        raise TransientProviderError("still busy")

    policy = RetryPolicy(max_attempts=3, delay_seconds=0)
    with pytest.raises(RetryExhaustedError) as excinfo:
        policy.run(
            operation,
            description="Plan stage 'base'",
            on_retry=lambda attempt, error: retries.append(attempt),
            sleep=lambda seconds: None,
        )

    assert excinfo.value.attempts == 3
    assert "Plan stage 'base' failed after 3 attempts" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, TransientProviderError)
    assert retries == [1, 2]


def test_non_retryable_errors_propagate_immediately():
    calls = []

    def operation():
        calls.append(1)
        raise ClientRequestError("bad request", status_code=400)

    with pytest.raises(ClientRequestError):
        RetryPolicy().run(operation, description="op", sleep=lambda seconds: None)
    assert len(calls) == 1


def test_invalid_policy_values():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(delay_seconds=-1)
