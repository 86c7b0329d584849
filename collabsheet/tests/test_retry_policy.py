"""Tests for the tenacity-backed retry wrapper."""

import pytest
from unittest.mock import MagicMock

from collabsheet.enrichment.exceptions import (
    ApiError,
    ExtractionError,
    RetryExhaustedError,
    TransportError,
)
from collabsheet.enrichment.retry_policy import RetryPolicy, with_retries


class TestWithRetries:
    def test_fails_twice_then_succeeds(self, fake_clock):
        operation = MagicMock(side_effect=[
            TransportError("connection reset"),
            TransportError("connection reset"),
            "final text",
        ])

        result = with_retries(3, 2.0, operation, sleep=fake_clock.sleep)

        assert result == "final text"
        assert operation.call_count == 3
        assert fake_clock.sleeps == pytest.approx([2.0, 4.0])

    def test_first_try_success_does_not_sleep(self, fake_clock):
        assert with_retries(3, 2.0, lambda: "ok", sleep=fake_clock.sleep) == "ok"
        assert fake_clock.sleeps == []

    def test_exhaustion_wraps_last_error(self, fake_clock):
        last = ApiError("server error", status_code=503, body="busy")
        operation = MagicMock(side_effect=[ApiError("server error", status_code=500), TransportError("x"), last])

        with pytest.raises(RetryExhaustedError) as exc_info:
            with_retries(3, 1.0, operation, sleep=fake_clock.sleep)

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert operation.call_count == 3
        assert fake_clock.sleeps == pytest.approx([1.0, 2.0])

    def test_non_transient_error_is_not_retried(self, fake_clock):
        operation = MagicMock(side_effect=ExtractionError("no json"))

        with pytest.raises(ExtractionError):
            with_retries(3, 2.0, operation, sleep=fake_clock.sleep)

        assert operation.call_count == 1
        assert fake_clock.sleeps == []

    def test_single_attempt(self, fake_clock):
        operation = MagicMock(side_effect=TransportError("down"))
        with pytest.raises(RetryExhaustedError) as exc_info:
            with_retries(1, 2.0, operation, sleep=fake_clock.sleep)
        assert exc_info.value.attempts == 1
        assert fake_clock.sleeps == []


class TestRetryPolicy:
    def test_run_uses_policy_parameters(self, fake_clock):
        policy = RetryPolicy(max_attempts=2, base_delay=0.5, sleep=fake_clock.sleep)
        operation = MagicMock(side_effect=[TransportError("x"), 42])

        assert policy.run(operation) == 42
        assert fake_clock.sleeps == pytest.approx([0.5])
