"""Unit tests for FeedHealthTracker."""
import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from health.models import AlertKind, HealthStatus
from health.tracker import TRANSITIONS, FeedHealthTracker
from storage.health_store import InMemoryHealthStore


@pytest.fixture
def sink():
    return Mock()


@pytest.fixture
def tracker(clock, sink):
    return FeedHealthTracker(store=InMemoryHealthStore(), notification_sink=sink, clock=clock)


def _alerts(sink):
    return [call.args[0] for call in sink.notify.call_args_list]


class TestFeedHealthTracker:
    """Test cases for the feed health state machine."""

    def test_unobserved_feed_is_healthy(self, tracker):
        """Test initial state of a feed never observed."""
        health = tracker.get('user-1', 'primary')

        assert health.status == HealthStatus.HEALTHY
        assert health.consecutive_failures == 0
        assert health.first_failure_at is None
        assert health.last_success_at is None

    def test_success_records_timestamp(self, tracker, clock, sink):
        """Test that a success on a healthy feed only stamps last_success_at."""
        health = tracker.record_success('user-1', 'primary')

        assert health.status == HealthStatus.HEALTHY
        assert health.last_success_at == clock.now
        assert not sink.notify.called

    def test_two_failures_stay_healthy(self, tracker, clock):
        """Test that fewer than three failures keep the feed healthy."""
        tracker.record_failure('user-1', 'primary')
        clock.advance(hours=1)
        health = tracker.record_failure('user-1', 'primary')

        assert health.status == HealthStatus.HEALTHY
        assert health.consecutive_failures == 2

    def test_three_failures_degrade(self, tracker, clock, sink):
        """Test that three consecutive failures from healthy degrade the feed."""
        start = clock.now
        for _ in range(3):
            health = tracker.record_failure('user-1', 'primary')
            clock.advance(hours=1)

        assert health.status == HealthStatus.DEGRADED
        assert health.consecutive_failures == 3
        assert health.first_failure_at == start
        assert not sink.notify.called

    def test_prolonged_failure_alerts_once(self, tracker, clock, sink):
        """Test that failing for 12 hours turns unhealthy with exactly one alert."""
        for _ in range(3):
            tracker.record_failure('user-1', 'primary')
            clock.advance(hours=1)

        clock.advance(hours=9)
        health = tracker.record_failure('user-1', 'primary')
        assert health.status == HealthStatus.UNHEALTHY

        for _ in range(5):
            clock.advance(hours=1)
            health = tracker.record_failure('user-1', 'primary')

        assert health.status == HealthStatus.UNHEALTHY
        assert health.consecutive_failures == 9
        alerts = _alerts(sink)
        assert len(alerts) == 1
        assert alerts[0].kind == AlertKind.UNHEALTHY
        assert alerts[0].previous_status == HealthStatus.DEGRADED
        assert alerts[0].calendar_id == 'primary'

    def test_prolonged_failure_from_healthy(self, tracker, clock, sink):
        """Test that duration alone makes a feed unhealthy without degrading first."""
        tracker.record_failure('user-1', 'primary')
        clock.advance(hours=12)
        health = tracker.record_failure('user-1', 'primary')

        assert health.consecutive_failures == 2
        assert health.status == HealthStatus.UNHEALTHY
        assert _alerts(sink)[0].previous_status == HealthStatus.HEALTHY

    def test_just_under_threshold_is_not_unhealthy(self, tracker, clock):
        """Test the 12 hour boundary."""
        tracker.record_failure('user-1', 'primary')
        clock.advance(hours=11, minutes=59)

        assert tracker.record_failure('user-1', 'primary').status == HealthStatus.HEALTHY

    def test_success_recovers_degraded_feed(self, tracker, clock, sink):
        """Test that a success resets a degraded feed with a recovery notice."""
        for _ in range(3):
            tracker.record_failure('user-1', 'primary')

        clock.advance(minutes=5)
        health = tracker.record_success('user-1', 'primary')

        assert health.status == HealthStatus.HEALTHY
        assert health.consecutive_failures == 0
        assert health.first_failure_at is None
        assert health.last_success_at == clock.now
        alerts = _alerts(sink)
        assert [alert.kind for alert in alerts] == [AlertKind.RECOVERED]
        assert alerts[0].previous_status == HealthStatus.DEGRADED

    def test_new_episode_alerts_again(self, tracker, clock, sink):
        """Test that each unhealthy episode gets its own alert."""
        for _ in range(2):
            tracker.record_failure('user-1', 'primary')
            clock.advance(hours=13)
            tracker.record_failure('user-1', 'primary')
            tracker.record_success('user-1', 'primary')

        assert [alert.kind for alert in _alerts(sink)] == [
            AlertKind.UNHEALTHY, AlertKind.RECOVERED,
            AlertKind.UNHEALTHY, AlertKind.RECOVERED
        ]

    def test_undelivered_alert_sent_on_next_failure(self, tracker, clock, sink):
        """Test that an unhealthy alert the sink could not deliver is sent again."""
        sink.notify.return_value = False
        tracker.record_failure('user-1', 'primary')
        clock.advance(hours=12)

        health = tracker.record_failure('user-1', 'primary')
        assert health.status == HealthStatus.UNHEALTHY
        assert health.alert_pending is True

        sink.notify.return_value = True
        clock.advance(hours=1)
        health = tracker.record_failure('user-1', 'primary')
        clock.advance(hours=1)
        tracker.record_failure('user-1', 'primary')

        alerts = _alerts(sink)
        assert [alert.kind for alert in alerts] == [AlertKind.UNHEALTHY, AlertKind.UNHEALTHY]
        assert alerts[1].consecutive_failures == 3
        assert health.alert_pending is False
        assert tracker.get('user-1', 'primary').alert_pending is False

    def test_recovery_clears_pending_alert(self, tracker, clock, sink):
        """Test that recovering drops an unhealthy alert never delivered."""
        sink.notify.return_value = False
        tracker.record_failure('user-1', 'primary')
        clock.advance(hours=12)
        tracker.record_failure('user-1', 'primary')

        health = tracker.record_success('user-1', 'primary')

        assert health.status == HealthStatus.HEALTHY
        assert health.alert_pending is False
        assert _alerts(sink)[-1].kind == AlertKind.RECOVERED

    def test_raising_sink_leaves_state_unsaved(self, tracker, clock, sink):
        """Test that a sink error propagates before the transition is stored."""
        tracker.record_failure('user-1', 'primary')
        clock.advance(hours=12)
        sink.notify.side_effect = RuntimeError('sink down')

        with pytest.raises(RuntimeError):
            tracker.record_failure('user-1', 'primary')

        health = tracker.get('user-1', 'primary')
        assert health.status == HealthStatus.HEALTHY
        assert health.consecutive_failures == 1

        sink.notify.side_effect = None
        assert tracker.record_failure('user-1', 'primary').status == HealthStatus.UNHEALTHY
        assert [alert.kind for alert in _alerts(sink)] == [AlertKind.UNHEALTHY] * 2

    def test_feeds_are_independent(self, tracker):
        """Test that feeds of different calendars and users do not share state."""
        for _ in range(3):
            tracker.record_failure('user-1', 'team')

        assert tracker.get('user-1', 'team').status == HealthStatus.DEGRADED
        assert tracker.get('user-1', 'primary').status == HealthStatus.HEALTHY
        assert tracker.get('user-2', 'team').status == HealthStatus.HEALTHY

    def test_custom_thresholds(self, clock, sink):
        """Test configurable degraded and unhealthy thresholds."""
        tracker = FeedHealthTracker(
            store=InMemoryHealthStore(),
            notification_sink=sink,
            degraded_after_failures=1,
            unhealthy_after=timedelta(minutes=30),
            clock=clock
        )

        assert tracker.record_failure('user-1', 'primary').status == HealthStatus.DEGRADED
        clock.advance(minutes=30)
        assert tracker.record_failure('user-1', 'primary').status == HealthStatus.UNHEALTHY

    def test_without_sink(self, clock):
        """Test that alerts are dropped when no sink is configured."""
        tracker = FeedHealthTracker(store=InMemoryHealthStore(), clock=clock)

        tracker.record_failure('user-1', 'primary')
        clock.advance(hours=12)

        assert tracker.record_failure('user-1', 'primary').status == HealthStatus.UNHEALTHY

    def test_concurrent_failures_are_not_lost(self, tracker):
        """Test that concurrent observations of one feed are linearized."""
        threads = [
            threading.Thread(target=tracker.record_failure, args=('user-1', 'primary'))
            for _ in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.get('user-1', 'primary').consecutive_failures == 20

    def test_transition_table_is_complete(self):
        """Test that every status has a transition for every observation."""
        observations = {'success', 'failure', 'failure_streak', 'failure_prolonged'}

        assert set(TRANSITIONS) == {
            (status, observation) for status in HealthStatus for observation in observations
        }

    def test_unhealthy_alert_only_on_entry(self):
        """Test that only transitions into unhealthy carry an unhealthy alert."""
        for (status, _), (next_status, alert) in TRANSITIONS.items():
            if alert == AlertKind.UNHEALTHY:
                assert status != HealthStatus.UNHEALTHY
                assert next_status == HealthStatus.UNHEALTHY
