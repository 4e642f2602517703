import pytest

from retry_utils import RetryPolicy, linear_backoff


class Flaky:
    def __init__(self, failures, exc=RuntimeError("boom")):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return value


class TestRetryPolicy:
    def test_succeeds_after_failures_with_linear_backoff(self):
        sleeps = []
        policy = RetryPolicy(max_attempts=5, backoff=linear_backoff(1.0), sleep=sleeps.append)
        fn = Flaky(failures=2)
        assert policy.call(fn, "ok") == "ok"
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_non_retryable_raised_immediately(self):
        sleeps = []
        policy = RetryPolicy(max_attempts=5, retryable=lambda e: not isinstance(e, KeyError), sleep=sleeps.append)
        fn = Flaky(failures=10, exc=KeyError("nope"))
        with pytest.raises(KeyError):
            policy.call(fn, 1)
        assert fn.calls == 1
        assert sleeps == []

    def test_gives_up_and_reraises_last_error(self):
        sleeps = []
        policy = RetryPolicy(max_attempts=3, backoff=linear_backoff(0.5), sleep=sleeps.append)
        fn = Flaky(failures=10)
        with pytest.raises(RuntimeError, match="boom"):
            policy.call(fn, 1)
        assert fn.calls == 3
        assert sleeps == [0.5, 1.0]
