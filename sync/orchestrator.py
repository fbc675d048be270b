"""Sync orchestration across a user's calendars."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from fetcher.google_calendar import GoogleCalendarFetcher
from processor.models import CalendarFailure, CalendarMeta, Event, SyncResult, SyncWindow
from processor.normalizer import EventNormalizer
from sync.config import SyncConfig
from sync.errors import AuthError, ConfigError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_IDS = ('primary',)
AD_HOC_WINDOW_DAYS = 30
DECLINED = 'declined'
TENTATIVE = 'tentative'


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_calendar_ids(calendar_ids: Optional[Sequence[str]]) -> List[str]:
    """
    Check a requested calendar list, falling back to primary when empty.

    Raises:
        ConfigError: If calendar_ids is not a list of non-empty strings
    """
    if calendar_ids is None:
        return list(DEFAULT_CALENDAR_IDS)
    if isinstance(calendar_ids, str) or not isinstance(calendar_ids, (list, tuple)):
        raise ConfigError('calendar_ids must be a list of calendar ids')
    if not calendar_ids:
        return list(DEFAULT_CALENDAR_IDS)
    for calendar_id in calendar_ids:
        if not isinstance(calendar_id, str) or not calendar_id.strip():
            raise ConfigError(f"Invalid calendar id: {calendar_id!r}")
    return list(calendar_ids)


class SyncOrchestrator:
    """Runs a best-effort sync over a user's calendars."""

    def __init__(
        self,
        fetcher: GoogleCalendarFetcher,
        normalizer: EventNormalizer,
        health_tracker=None,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize the orchestrator.

        Args:
            fetcher: Calendar fetcher
            normalizer: Event normalizer
            health_tracker: Feed health tracker observing each calendar, optional
            config: Sync options (default: SyncConfig())
            clock: Returns the current aware datetime
        """
        self.fetcher = fetcher
        self.normalizer = normalizer
        self.health_tracker = health_tracker
        self.config = config or SyncConfig()
        self.clock = clock

    def run(
        self,
        user_id: str,
        token: Optional[str],
        calendar_ids: Optional[Sequence[str]] = None,
        window_days: Optional[int] = None
    ) -> SyncResult:
        """
        Sync events from each calendar in order.

        A calendar whose fetch fails is recorded in the result and the run
        continues with the next one. Each calendar yields one health
        observation; an observation that cannot be recorded is logged and
        does not stop the run. synced_at is stamped once every calendar
        has been processed.

        Args:
            user_id: Owner of the calendars
            token: Bearer access token
            calendar_ids: Calendars to sync (default: ["primary"])
            window_days: Days ahead to sync (default: config.sync_window_days)

        Returns:
            SyncResult with events in calendar-then-provider order

        Raises:
            AuthError: If no token is supplied
            ConfigError: If arguments are invalid
        """
        if not token:
            raise AuthError('No access token available')
        if not user_id or not isinstance(user_id, str):
            raise ConfigError('user_id is required')
        calendar_ids = validate_calendar_ids(calendar_ids)
        if window_days is None:
            window_days = self.config.sync_window_days

        window = SyncWindow.from_days(window_days, now=self.clock())

        logger.info(
            f"Starting sync of {len(calendar_ids)} calendars for user '{user_id}'",
            extra={'user_id': user_id, 'window_days': window_days}
        )

        result = SyncResult()
        for calendar_id in calendar_ids:
            result.calendars_attempted += 1
            try:
                raw_events = self.fetcher.list_events(token, calendar_id, window)
            except ProviderError as e:
                logger.warning(
                    f"Calendar '{calendar_id}' failed to sync: {e.message}",
                    extra={'calendar_id': calendar_id, 'status_code': e.status_code}
                )
                result.calendars_failed.append(
                    CalendarFailure(calendar_id=calendar_id, error=e.message, status_code=e.status_code)
                )
                self._observe(user_id, calendar_id, succeeded=False)
                continue

            events, skipped = self.normalizer.normalize_events(raw_events, calendar_id)
            result.events.extend(self._filter_by_status(events))
            result.events_skipped += skipped
            self._observe(user_id, calendar_id, succeeded=True)

        result.synced_at = self.clock()

        logger.info(
            f"Sync finished: {result.events_synced} events from "
            f"{result.calendars_succeeded}/{result.calendars_attempted} calendars",
            extra={
                'user_id': user_id,
                'events_synced': result.events_synced,
                'events_skipped': result.events_skipped,
                'calendars_failed': len(result.calendars_failed)
            }
        )
        return result

    def list_calendars(self, token: Optional[str]) -> List[CalendarMeta]:
        """
        List the calendars visible to the token's user.

        Raises:
            AuthError: If no token is supplied
            ProviderError: If the provider request fails
        """
        if not token:
            raise AuthError('No access token available')
        return self.fetcher.list_calendars(token)

    def get_events(
        self,
        token: Optional[str],
        calendar_id: str = 'primary',
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None
    ) -> List[Event]:
        """
        Read normalized events of one calendar without recording health.

        Args:
            token: Bearer access token
            calendar_id: Calendar to read
            time_min: Window start (default: now)
            time_max: Window end (default: 30 days after time_min)

        Raises:
            AuthError: If no token is supplied
            ConfigError: If the window is empty or reversed
            ProviderError: If the provider request fails
        """
        if not token:
            raise AuthError('No access token available')
        if not calendar_id:
            raise ConfigError('calendar_id must be a non-empty string')

        time_min = time_min or self.clock()
        time_max = time_max or time_min + timedelta(days=AD_HOC_WINDOW_DAYS)
        window = SyncWindow(time_min=time_min, time_max=time_max)

        raw_events = self.fetcher.list_events(token, calendar_id, window)
        events, _ = self.normalizer.normalize_events(raw_events, calendar_id)
        return events

    def _filter_by_status(self, events: List[Event]) -> List[Event]:
        kept = []
        for event in events:
            statuses = {event.status, event.response_status}
            if DECLINED in statuses and not self.config.include_declined:
                continue
            if TENTATIVE in statuses and not self.config.include_tentative:
                continue
            kept.append(event)
        return kept

    def _observe(self, user_id: str, calendar_id: str, succeeded: bool) -> None:
        if self.health_tracker is None:
            return
        try:
            if succeeded:
                self.health_tracker.record_success(user_id, calendar_id)
            else:
                self.health_tracker.record_failure(user_id, calendar_id)
        except Exception as e:
            logger.error(
                f"Failed to record health of calendar '{calendar_id}': {e}",
                extra={'user_id': user_id, 'calendar_id': calendar_id},
                exc_info=True
            )
