"""
Tests for the retry policy and the with_retry wrapper.
"""

import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from tenacity import RetryCallState

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from judgment_analysis.analysis.retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry
from judgment_analysis.exceptions import AnalysisCancelled, GenerationError, MalformedResponseError


class TestRetryPolicy:
    """Tests for the backoff schedule."""

    def test_default_is_two_retries(self):
        assert DEFAULT_RETRY_POLICY.max_attempts == 3
        assert DEFAULT_RETRY_POLICY.retries == 2

    def test_delay_doubles(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=30.0)
        assert [policy.delay_for(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=5.0)
        assert policy.delay_for(10) == 5.0

    def test_wait_strategy_matches_delay_for(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=5.0)
        wait = policy.wait_strategy()
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})

        delays = []
        for attempt_number in range(1, 6):
            state.attempt_number = attempt_number
            delays.append(wait(state))

        assert delays == [policy.delay_for(a) for a in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_requires_at_least_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestWithRetry:
    """Tests for with_retry."""

    def test_success_first_time(self):
        sleep = MagicMock()
        assert with_retry(lambda: "ok", sleep=sleep) == "ok"
        sleep.assert_not_called()

    def test_recovers_after_transient_failures(self):
        operation = MagicMock(side_effect=[GenerationError("timeout"), MalformedResponseError("junk"), "ok"])
        sleep = MagicMock()

        assert with_retry(operation, RetryPolicy(), sleep=sleep) == "ok"
        assert operation.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_exhaustion_reraises_last_error(self):
        operation = MagicMock(side_effect=GenerationError("down"))
        sleep = MagicMock()

        with pytest.raises(GenerationError, match="down"):
            with_retry(operation, RetryPolicy(max_attempts=3), sleep=sleep)

        assert operation.call_count == 3
        assert sleep.call_count == 2

    def test_other_errors_are_not_retried(self):
        operation = MagicMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            with_retry(operation, sleep=MagicMock())

        assert operation.call_count == 1

    def test_cancel_during_backoff(self):
        cancel_event = threading.Event()

        def failing():
            cancel_event.set()
            raise GenerationError("down")

        with pytest.raises(AnalysisCancelled):
            with_retry(failing, RetryPolicy(base_delay=5.0), cancel_event=cancel_event)

    def test_logs_each_retry(self):
        operation = MagicMock(side_effect=[GenerationError("timeout"), "ok"])

        with patch("judgment_analysis.analysis.retry.warning") as mock_warning:
            with_retry(operation, description="Step 'facts'", sleep=MagicMock())

        message = mock_warning.call_args.args[0]
        assert "Step 'facts'" in message
        assert "attempt 1/3" in message
        assert "Retrying in 1.0s" in message

    def test_zero_delay_policy(self):
        operation = MagicMock(side_effect=[GenerationError("a"), GenerationError("b"), "ok"])
        sleep = MagicMock()

        assert with_retry(operation, RetryPolicy(base_delay=0.0, max_delay=0.0), sleep=sleep) == "ok"
        assert [c.args[0] for c in sleep.call_args_list] == [0.0, 0.0]
