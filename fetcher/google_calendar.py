"""Google Calendar API fetcher."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from fetcher.transport import HttpTransport, TransportError
from processor.models import CalendarMeta, SyncWindow
from sync.errors import ProviderError

logger = logging.getLogger(__name__)


def format_rfc3339(value: datetime) -> str:
    """Format an aware datetime as an RFC 3339 UTC timestamp."""
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


class GoogleCalendarFetcher:
    """Fetcher for the Google Calendar v3 REST API."""

    BASE_URL = "https://www.googleapis.com/calendar/v3"
    MAX_RESULTS = 2500

    def __init__(self, transport: Optional[HttpTransport] = None, max_pages: int = 20):
        """
        Initialize the fetcher.

        Args:
            transport: HTTP transport (default: HttpTransport with a 30s timeout)
            max_pages: Upper bound on event pages read per calendar
        """
        self.transport = transport or HttpTransport()
        self.max_pages = max_pages

    def list_calendars(self, token: str) -> List[CalendarMeta]:
        """
        List the calendars visible to the token's user.

        Args:
            token: Bearer access token

        Returns:
            List of CalendarMeta objects

        Raises:
            ProviderError: If the provider request fails
        """
        url = f"{self.BASE_URL}/users/me/calendarList"
        try:
            data = self.transport.get_json(url, token)
        except TransportError as e:
            raise ProviderError(
                f"Failed to fetch calendars: {e.reason}", status_code=e.status_code
            ) from e

        calendars = [self._to_calendar_meta(item) for item in data.get('items') or []]
        logger.info(f"Fetched {len(calendars)} calendars")
        return calendars

    def list_events(
        self,
        token: str,
        calendar_id: str,
        window: SyncWindow
    ) -> List[Dict[str, Any]]:
        """
        Fetch raw events of one calendar within a window.

        Recurring events are expanded into instances and ordered by start time.
        Continuation pages are followed up to max_pages.

        Args:
            token: Bearer access token
            calendar_id: Provider calendar id
            window: Time range to fetch

        Returns:
            Raw provider event payloads in provider order

        Raises:
            ProviderError: If any page request fails
        """
        url = f"{self.BASE_URL}/calendars/{quote(calendar_id, safe='')}/events"
        params = {
            'timeMin': format_rfc3339(window.time_min),
            'timeMax': format_rfc3339(window.time_max),
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'maxResults': self.MAX_RESULTS
        }

        items = []
        for _ in range(self.max_pages):
            try:
                data = self.transport.get_json(url, token, params=params)
            except TransportError as e:
                raise ProviderError(
                    f"Failed to fetch events: {e.reason}", status_code=e.status_code
                ) from e

            items.extend(data.get('items') or [])
            page_token = data.get('nextPageToken')
            if not page_token:
                break
            params = dict(params, pageToken=page_token)
        else:
            logger.warning(
                f"Stopped reading calendar '{calendar_id}' after {self.max_pages} pages; "
                f"later events in the window are not included"
            )

        logger.info(f"Fetched {len(items)} events from calendar '{calendar_id}'")
        return items

    def _to_calendar_meta(self, item: Dict[str, Any]) -> CalendarMeta:
        return CalendarMeta(
            id=item.get('id'),
            name=item.get('summary'),
            description=item.get('description'),
            timezone=item.get('timeZone'),
            access_role=item.get('accessRole'),
            primary=bool(item.get('primary', False))
        )
