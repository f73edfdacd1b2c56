"""Tests for the retry policy state machine."""

from affinity.engine.errors import ExtractionTimeout, PersistenceError, ValidationError
from affinity.engine.retry import RetryPolicy


class TestRetryPolicy:

    def test_fixed_delay_by_default(self):
        policy = RetryPolicy(base_delay=1.0)
        assert policy.calculate_delay(1) == 1.0
        assert policy.calculate_delay(3) == 1.0

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(base_delay=1.0, exponential_base=2.0, max_delay=5.0)
        assert policy.calculate_delay(1) == 1.0
        assert policy.calculate_delay(2) == 2.0
        assert policy.calculate_delay(3) == 4.0
        assert policy.calculate_delay(4) == 5.0

    def test_jitter_stays_in_range(self):
        policy = RetryPolicy(base_delay=2.0, jitter=True)
        for attempt in range(1, 5):
            assert 1.0 <= policy.calculate_delay(attempt) <= 3.0

    def test_retryable_errors(self):
        policy = RetryPolicy()
        assert policy.is_retryable(ExtractionTimeout("slow"))
        assert policy.is_retryable(ValidationError(["one"]))
        assert not policy.is_retryable(PersistenceError("a.md", OSError("disk full")))


class TestRetryState:

    def test_gives_up_after_max_attempts(self):
        state = RetryPolicy(max_attempts=3, base_delay=0.5).new_state()
        outcomes = []
        for _ in range(3):
            state.begin_attempt()
            outcomes.append(state.record_failure(ValidationError(["only"])))

        assert outcomes == [True, True, False]
        assert state.attempts == 3
        assert state.exhausted
        assert state.next_delay is None
        assert isinstance(state.last_error, ValidationError)

    def test_delay_set_between_attempts(self):
        state = RetryPolicy(base_delay=0.5).new_state()
        state.begin_attempt()
        assert state.record_failure(ExtractionTimeout("slow"))
        assert state.next_delay == 0.5
        state.begin_attempt()
        assert state.next_delay is None

    def test_non_retryable_stops_immediately(self):
        state = RetryPolicy().new_state()
        state.begin_attempt()
        assert not state.record_failure(PersistenceError("a.md"))
        assert state.attempts == 1
        assert state.exhausted

    def test_single_attempt_policy(self):
        state = RetryPolicy(max_attempts=1).new_state()
        state.begin_attempt()
        assert not state.record_failure(ExtractionTimeout("slow"))
