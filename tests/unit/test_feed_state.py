"""Tests for the feed connection state machine and reconnect backoff."""

import pytest

from arbitrage_detector.exceptions import ConfigurationError, IllegalTransition
from arbitrage_detector.feed_state import (
    ALLOWED_TRANSITIONS,
    FEED_STATE_CODES,
    BackoffPolicy,
    FeedState,
    FeedStateMachine,
)


class TestFeedStateMachine:
    def test_happy_path(self, clock):
        machine = FeedStateMachine("binance", time_provider=clock)
        assert machine.state is FeedState.DISCONNECTED
        for target in (FeedState.CONNECTING, FeedState.SUBSCRIBED, FeedState.STREAMING):
            machine.transition(target)
        assert machine.state is FeedState.STREAMING
        assert machine.history == [
            (FeedState.DISCONNECTED, FeedState.CONNECTING),
            (FeedState.CONNECTING, FeedState.SUBSCRIBED),
            (FeedState.SUBSCRIBED, FeedState.STREAMING),
        ]

    def test_failure_loop(self, clock):
        machine = FeedStateMachine("binance", time_provider=clock)
        machine.transition(FeedState.CONNECTING)
        machine.transition(FeedState.BACKOFF, "connect refused")
        machine.transition(FeedState.CONNECTING)
        assert machine.state is FeedState.CONNECTING

    @pytest.mark.parametrize(
        "path",
        [
            [FeedState.STREAMING],
            [FeedState.BACKOFF],
            [FeedState.CONNECTING, FeedState.STREAMING],
            [FeedState.CONNECTING, FeedState.SUBSCRIBED, FeedState.CONNECTING],
        ],
    )
    def test_illegal_transitions(self, clock, path):
        machine = FeedStateMachine("binance", time_provider=clock)
        for target in path[:-1]:
            machine.transition(target)
        with pytest.raises(IllegalTransition) as exc_info:
            machine.transition(path[-1])
        assert exc_info.value.to_state == path[-1].value

    def test_every_state_has_an_exit(self):
        assert set(ALLOWED_TRANSITIONS) == set(FeedState)
        assert all(ALLOWED_TRANSITIONS[state] for state in FeedState)
        assert set(FEED_STATE_CODES) == set(FeedState)

    def test_transition_callback_and_timing(self, clock):
        seen = []
        machine = FeedStateMachine(
            "binance", time_provider=clock, on_transition=lambda *args: seen.append(args)
        )
        machine.transition(FeedState.CONNECTING)
        clock.advance_time(2.5)
        assert machine.time_in_state() == 2.5
        assert seen == [("binance", FeedState.DISCONNECTED, FeedState.CONNECTING)]

    def test_transitions_are_logged(self, clock, caplog):
        machine = FeedStateMachine("binance", time_provider=clock)
        with caplog.at_level("INFO", logger="arbitrage_detector.feed_state"):
            machine.transition(FeedState.CONNECTING, "startup")
        assert "binance disconnected -> connecting (startup)" in caplog.text


class TestBackoffPolicy:
    def test_exponential_with_ceiling(self):
        policy = BackoffPolicy(base_delay=1, max_delay=30, factor=2)
        delays = [policy.next_delay() for _ in range(7)]
        assert delays == [1, 2, 4, 8, 16, 30, 30]

    def test_reset(self):
        policy = BackoffPolicy(base_delay=0.5, max_delay=10)
        policy.next_delay()
        policy.next_delay()
        policy.reset()
        assert policy.next_delay() == 0.5

    def test_resets_after_sustained_streaming(self):
        policy = BackoffPolicy(reset_after=60)
        policy.next_delay()
        policy.next_delay()
        assert not policy.note_streaming(10)
        assert policy.attempts == 2
        assert policy.note_streaming(60)
        assert policy.next_delay() == 1

    @pytest.mark.parametrize(
        "kwargs",
        [{"base_delay": 0}, {"base_delay": 5, "max_delay": 1}, {"factor": 0.5}],
    )
    def test_rejects_bad_config(self, kwargs):
        with pytest.raises(ConfigurationError):
            BackoffPolicy(**kwargs)
