"""Feed health state machine."""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from health.models import AlertKind, FeedHealth, HealthAlert, HealthStatus

logger = logging.getLogger(__name__)

SUCCESS = 'success'
FAILURE = 'failure'
FAILURE_STREAK = 'failure_streak'
FAILURE_PROLONGED = 'failure_prolonged'

# (current status, observation) -> (next status, alert to emit)
TRANSITIONS: Dict[Tuple[HealthStatus, str], Tuple[HealthStatus, Optional[AlertKind]]] = {
    (HealthStatus.HEALTHY, SUCCESS): (HealthStatus.HEALTHY, None),
    (HealthStatus.HEALTHY, FAILURE): (HealthStatus.HEALTHY, None),
    (HealthStatus.HEALTHY, FAILURE_STREAK): (HealthStatus.DEGRADED, None),
    (HealthStatus.HEALTHY, FAILURE_PROLONGED): (HealthStatus.UNHEALTHY, AlertKind.UNHEALTHY),
    (HealthStatus.DEGRADED, SUCCESS): (HealthStatus.HEALTHY, AlertKind.RECOVERED),
    (HealthStatus.DEGRADED, FAILURE): (HealthStatus.DEGRADED, None),
    (HealthStatus.DEGRADED, FAILURE_STREAK): (HealthStatus.DEGRADED, None),
    (HealthStatus.DEGRADED, FAILURE_PROLONGED): (HealthStatus.UNHEALTHY, AlertKind.UNHEALTHY),
    (HealthStatus.UNHEALTHY, SUCCESS): (HealthStatus.HEALTHY, AlertKind.RECOVERED),
    (HealthStatus.UNHEALTHY, FAILURE): (HealthStatus.UNHEALTHY, None),
    (HealthStatus.UNHEALTHY, FAILURE_STREAK): (HealthStatus.UNHEALTHY, None),
    (HealthStatus.UNHEALTHY, FAILURE_PROLONGED): (HealthStatus.UNHEALTHY, None),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FeedHealthTracker:
    """
    Tracks per-(user, calendar) sync health across runs.

    Each observation is applied under a lock for its feed, so concurrent
    observations of the same feed are linearized. State is read from and
    written back to the health store on every observation. An unhealthy
    alert the sink fails to deliver is sent again on each later failure
    until one gets through.
    """

    def __init__(
        self,
        store,
        notification_sink=None,
        degraded_after_failures: int = 3,
        unhealthy_after: timedelta = timedelta(hours=12),
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize the tracker.

        Args:
            store: Health store with load(user_id, calendar_id) and save(health)
            notification_sink: Sink whose notify(alert) returns whether it was
                delivered; alerts are dropped if None
            degraded_after_failures: Consecutive failures that degrade a healthy feed
            unhealthy_after: Failing duration that makes a feed unhealthy
            clock: Returns the current aware datetime
        """
        self.store = store
        self.notification_sink = notification_sink
        self.degraded_after_failures = degraded_after_failures
        self.unhealthy_after = unhealthy_after
        self.clock = clock
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def get(self, user_id: str, calendar_id: str) -> FeedHealth:
        """Return the current health of a feed, healthy if never observed."""
        health = self.store.load(user_id, calendar_id)
        return health or FeedHealth(user_id=user_id, calendar_id=calendar_id)

    def record_success(self, user_id: str, calendar_id: str) -> FeedHealth:
        """
        Record a successful sync of a feed.

        Returns:
            Updated FeedHealth
        """
        with self._lock_for(user_id, calendar_id):
            health = self.get(user_id, calendar_id)
            now = self.clock()

            health.consecutive_failures = 0
            health.first_failure_at = None
            health.last_success_at = now

            return self._apply(health, SUCCESS, now)

    def record_failure(self, user_id: str, calendar_id: str) -> FeedHealth:
        """
        Record a failed sync of a feed.

        Returns:
            Updated FeedHealth
        """
        with self._lock_for(user_id, calendar_id):
            health = self.get(user_id, calendar_id)
            now = self.clock()

            health.consecutive_failures += 1
            if health.first_failure_at is None:
                health.first_failure_at = now

            return self._apply(health, self._classify_failure(health, now), now)

    def _classify_failure(self, health: FeedHealth, now: datetime) -> str:
        if now - health.first_failure_at >= self.unhealthy_after:
            return FAILURE_PROLONGED
        if health.consecutive_failures >= self.degraded_after_failures:
            return FAILURE_STREAK
        return FAILURE

    def _apply(self, health: FeedHealth, observation: str, now: datetime) -> FeedHealth:
        previous = health.status
        health.status, alert_kind = TRANSITIONS[(previous, observation)]
        if health.status != HealthStatus.UNHEALTHY:
            health.alert_pending = False
        elif alert_kind is None and health.alert_pending:
            alert_kind = AlertKind.UNHEALTHY

        if health.status != previous:
            log = logger.warning if health.status != HealthStatus.HEALTHY else logger.info
            log(
                f"Feed '{health.calendar_id}' for user '{health.user_id}' went "
                f"{previous.value} -> {health.status.value}",
                extra={
                    'user_id': health.user_id,
                    'calendar_id': health.calendar_id,
                    'consecutive_failures': health.consecutive_failures
                }
            )

        # The alert goes out before the new state is saved, so a sink that
        # raises leaves the transition to be applied again next observation.
        if alert_kind is not None:
            delivered = self._notify(HealthAlert(
                kind=alert_kind,
                user_id=health.user_id,
                calendar_id=health.calendar_id,
                previous_status=previous,
                status=health.status,
                consecutive_failures=health.consecutive_failures,
                first_failure_at=health.first_failure_at,
                observed_at=now
            ))
            if alert_kind == AlertKind.UNHEALTHY:
                health.alert_pending = not delivered
                if not delivered:
                    logger.warning(
                        f"Unhealthy alert for feed '{health.calendar_id}' was not delivered; "
                        f"retrying on the next failed sync",
                        extra={'user_id': health.user_id, 'calendar_id': health.calendar_id}
                    )

        self.store.save(health)
        return health

    def _notify(self, alert: HealthAlert) -> bool:
        if self.notification_sink is None:
            return True
        return bool(self.notification_sink.notify(alert))

    def _lock_for(self, user_id: str, calendar_id: str) -> threading.Lock:
        key = (user_id, calendar_id)
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]
