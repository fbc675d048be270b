"""Data models for calendar sync."""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from sync.errors import ConfigError


class EventType(str, Enum):
    """Capacity category assigned to an event."""
    HOLIDAY = 'holiday'
    PTO = 'pto'
    TRAVEL = 'travel'
    FOCUS = 'focus'
    TRAINING = 'training'
    MEETING = 'meeting'


# Either a date (all-day events) or an aware datetime
EventBoundary = Union[date, datetime]


def _iso(value: Optional[EventBoundary]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Event:
    """Normalized calendar event."""
    id: str
    calendar_id: str
    title: str
    start_time: EventBoundary
    end_time: EventBoundary
    all_day: bool
    status: str
    event_type: EventType
    attendees: Tuple[str, ...] = ()
    recurring: bool = False
    visibility: str = 'default'
    description: Optional[str] = None
    location: Optional[str] = None
    external_link: Optional[str] = None
    response_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Render the event as a JSON-safe dict."""
        return {
            'id': self.id,
            'calendar_id': self.calendar_id,
            'title': self.title,
            'description': self.description,
            'location': self.location,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'all_day': self.all_day,
            'status': self.status,
            'event_type': self.event_type.value,
            'attendees': list(self.attendees),
            'recurring': self.recurring,
            'visibility': self.visibility,
            'external_link': self.external_link,
            'response_status': self.response_status
        }


@dataclass(frozen=True)
class CalendarMeta:
    """Calendar list entry."""
    id: str
    name: str
    timezone: Optional[str]
    access_role: Optional[str]
    primary: bool = False
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'timezone': self.timezone,
            'access_role': self.access_role,
            'primary': self.primary
        }


@dataclass(frozen=True)
class SyncWindow:
    """Half-open [time_min, time_max) range a sync run covers."""
    time_min: datetime
    time_max: datetime

    def __post_init__(self):
        if self.time_min >= self.time_max:
            raise ConfigError(
                f"Sync window start {self.time_min.isoformat()} must be "
                f"before end {self.time_max.isoformat()}"
            )

    @classmethod
    def from_days(cls, days: int, now: Optional[datetime] = None) -> 'SyncWindow':
        """
        Build a window starting now and spanning the given number of days.

        Raises:
            ConfigError: If days is not a positive integer
        """
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ConfigError(f"Sync window days must be a positive integer, got {days!r}")
        now = now or datetime.now(timezone.utc)
        return cls(time_min=now, time_max=now + timedelta(days=days))


@dataclass(frozen=True)
class CalendarFailure:
    """One calendar that could not be fetched during a sync run."""
    calendar_id: str
    error: str
    status_code: Optional[int] = None

    def to_dict(self) -> Dict[str, str]:
        return {'calendar_id': self.calendar_id, 'error': self.error}


@dataclass
class SyncResult:
    """Result of a sync run across calendars."""
    events: List[Event] = field(default_factory=list)
    calendars_attempted: int = 0
    calendars_failed: List[CalendarFailure] = field(default_factory=list)
    events_skipped: int = 0
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def calendars_succeeded(self) -> int:
        return self.calendars_attempted - len(self.calendars_failed)

    @property
    def events_synced(self) -> int:
        return len(self.events)

    def to_dict(self) -> Dict[str, Any]:
        """Render the result as a JSON-safe dict."""
        return {
            'events_synced': self.events_synced,
            'calendars_synced': self.calendars_succeeded,
            'events_skipped': self.events_skipped,
            'events': [event.to_dict() for event in self.events],
            'errors': [failure.to_dict() for failure in self.calendars_failed] or None,
            'synced_at': self.synced_at.isoformat()
        }
