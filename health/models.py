"""Data models for feed health tracking."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class HealthStatus(str, Enum):
    """Health of one (user, calendar) sync feed."""
    HEALTHY = 'healthy'
    DEGRADED = 'degraded'
    UNHEALTHY = 'unhealthy'


class AlertKind(str, Enum):
    UNHEALTHY = 'unhealthy'
    RECOVERED = 'recovered'


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class FeedHealth:
    """Mutable health state of one feed."""
    user_id: str
    calendar_id: str
    status: HealthStatus = HealthStatus.HEALTHY
    consecutive_failures: int = 0
    first_failure_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    alert_pending: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'calendar_id': self.calendar_id,
            'status': self.status.value,
            'consecutive_failures': self.consecutive_failures,
            'first_failure_at': _iso(self.first_failure_at),
            'last_success_at': _iso(self.last_success_at),
            'alert_pending': self.alert_pending
        }


@dataclass(frozen=True)
class HealthAlert:
    """Notification emitted when a feed turns unhealthy or recovers."""
    kind: AlertKind
    user_id: str
    calendar_id: str
    previous_status: HealthStatus
    status: HealthStatus
    consecutive_failures: int
    observed_at: datetime
    first_failure_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'user_id': self.user_id,
            'calendar_id': self.calendar_id,
            'previous_status': self.previous_status.value,
            'status': self.status.value,
            'consecutive_failures': self.consecutive_failures,
            'first_failure_at': _iso(self.first_failure_at),
            'observed_at': self.observed_at.isoformat()
        }
