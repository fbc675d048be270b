"""Event normalizer for converting provider events into Event records."""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.classifier import EventClassifier
from processor.models import Event, EventBoundary
from sync.errors import MalformedEventError

logger = logging.getLogger(__name__)


class EventNormalizer:
    """Normalizer for raw Google Calendar event payloads."""

    UNTITLED = 'Untitled Event'
    DEFAULT_VISIBILITY = 'default'
    DEFAULT_STATUS = 'confirmed'

    def __init__(self, classifier: Optional[EventClassifier] = None):
        self.classifier = classifier or EventClassifier()

    def normalize_events(
        self,
        raw_events: List[Dict[str, Any]],
        calendar_id: str
    ) -> Tuple[List[Event], int]:
        """
        Normalize a calendar's raw events, skipping malformed ones.

        Args:
            raw_events: Provider event payloads in provider order
            calendar_id: Calendar the events were read from

        Returns:
            Tuple of (normalized events in input order, count skipped)
        """
        events = []
        skipped = 0

        for raw in raw_events:
            try:
                events.append(self.normalize(raw, calendar_id))
            except MalformedEventError as e:
                skipped += 1
                logger.warning(
                    f"Skipping malformed event in calendar '{calendar_id}': {e}",
                    extra={'calendar_id': calendar_id, 'event_id': e.event_id}
                )

        if skipped:
            logger.info(
                f"Normalized {len(events)} events out of {len(raw_events)} "
                f"for calendar '{calendar_id}'"
            )
        return events, skipped

    def normalize(self, raw: Dict[str, Any], calendar_id: str) -> Event:
        """
        Normalize a single provider event.

        Args:
            raw: Provider event payload
            calendar_id: Calendar the event was read from

        Returns:
            Normalized Event

        Raises:
            MalformedEventError: If id, start or end is missing or unreadable
        """
        if not isinstance(raw, dict):
            raise MalformedEventError(f"Event payload is not an object: {type(raw).__name__}")

        event_id = raw.get('id')
        if not event_id:
            raise MalformedEventError('Event missing required field: id')

        start = raw.get('start')
        end = raw.get('end')
        if not isinstance(start, dict) or not start:
            raise MalformedEventError('Event missing required field: start', event_id=event_id)
        if not isinstance(end, dict) or not end:
            raise MalformedEventError('Event missing required field: end', event_id=event_id)

        all_day = self._is_date_only(start)
        start_time = self._parse_boundary(start, event_id, 'start')
        end_time = self._parse_boundary(end, event_id, 'end')

        title = raw.get('summary') or self.UNTITLED

        return Event(
            id=event_id,
            calendar_id=calendar_id,
            title=title,
            description=raw.get('description') or None,
            location=raw.get('location') or None,
            start_time=start_time,
            end_time=end_time,
            all_day=all_day,
            status=raw.get('status') or self.DEFAULT_STATUS,
            event_type=self.classifier.classify(title),
            attendees=self._extract_attendees(raw),
            recurring=bool(raw.get('recurringEventId')),
            visibility=raw.get('visibility') or self.DEFAULT_VISIBILITY,
            external_link=raw.get('htmlLink') or None,
            response_status=self._own_response_status(raw)
        )

    def _is_date_only(self, boundary: Dict[str, Any]) -> bool:
        return bool(boundary.get('date')) and not boundary.get('dateTime')

    def _parse_boundary(
        self,
        boundary: Dict[str, Any],
        event_id: str,
        name: str
    ) -> EventBoundary:
        """
        Parse a start or end boundary.

        Date-only boundaries become dates. Timestamps without an offset are
        resolved in the boundary's timeZone, falling back to UTC.
        """
        try:
            if boundary.get('dateTime'):
                value = datetime.fromisoformat(boundary['dateTime'].replace('Z', '+00:00'))
                if value.tzinfo is None:
                    value = value.replace(tzinfo=self._resolve_zone(boundary.get('timeZone')))
                return value
            if boundary.get('date'):
                return date.fromisoformat(boundary['date'])
        except (AttributeError, TypeError, ValueError) as e:
            raise MalformedEventError(
                f"Event has unreadable {name}: {e}", event_id=event_id
            ) from e

        raise MalformedEventError(f"Event missing required field: {name}", event_id=event_id)

    def _resolve_zone(self, zone_name: Optional[str]):
        if not zone_name:
            return timezone.utc
        try:
            return ZoneInfo(zone_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown time zone '{zone_name}', using UTC")
            return timezone.utc

    def _extract_attendees(self, raw: Dict[str, Any]) -> Tuple[str, ...]:
        return tuple(
            attendee['email']
            for attendee in raw.get('attendees') or []
            if isinstance(attendee, dict) and attendee.get('email')
        )

    def _own_response_status(self, raw: Dict[str, Any]) -> Optional[str]:
        for attendee in raw.get('attendees') or []:
            if isinstance(attendee, dict) and attendee.get('self'):
                return attendee.get('responseStatus')
        return None
