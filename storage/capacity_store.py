"""DynamoDB capacity store for synced calendar events."""
import logging
import time
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import List

import boto3
from botocore.exceptions import ClientError

from processor.models import Event

logger = logging.getLogger(__name__)


class CapacityStore:
    """Writes normalized events to the capacity planning table."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    TTL_DAYS = 90

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized CapacityStore for table: {table_name}")

    def write_events(self, user_id: str, events: List[Event]) -> int:
        """
        Write events in batches of 25 items.

        Items are keyed by feed and event id, so writing the same event twice
        overwrites rather than duplicates it.

        Args:
            user_id: Owner of the events
            events: Normalized events to write

        Returns:
            Count of successfully written events
        """
        if not events:
            return 0

        logger.info(f"Writing {len(events)} events for user '{user_id}'")
        synced_at = int(time.time())
        success_count = 0

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer(overwrite_by_pkeys=['feed_key', 'event_id']) as writer:
                    for event in batch:
                        writer.put_item(Item=self._event_to_item(user_id, event, synced_at))
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                # Continue processing remaining batches
                continue

        logger.info(f"Successfully wrote {success_count} events")
        return success_count

    def _event_to_item(self, user_id: str, event: Event, synced_at: int) -> dict:
        """
        Convert an Event to a DynamoDB item.

        Args:
            user_id: Owner of the event
            event: Normalized event
            synced_at: Unix timestamp of this write

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'feed_key': f"{user_id}#{event.calendar_id}",
            'event_id': event.id,
            'user_id': user_id,
            'calendar_id': event.calendar_id,
            'title': event.title,
            'start_time': event.start_time.isoformat(),
            'end_time': event.end_time.isoformat(),
            'all_day': event.all_day,
            'status': event.status,
            'event_type': event.event_type.value,
            'attendees': list(event.attendees),
            'recurring': event.recurring,
            'visibility': event.visibility,
            'synced_at': synced_at,
            'ttl': self._calculate_ttl(event)
        }

        # Add optional fields if present
        if event.description:
            item['description'] = event.description
        if event.location:
            item['location'] = event.location
        if event.external_link:
            item['external_link'] = event.external_link
        if event.response_status:
            item['response_status'] = event.response_status

        return item

    def _calculate_ttl(self, event: Event) -> int:
        """
        Calculate TTL as 90 days after the event ends.

        Returns:
            Unix timestamp for TTL
        """
        end = event.end_time
        if not isinstance(end, datetime):
            end = datetime.combine(end, dt_time.min, tzinfo=timezone.utc)
        return int((end + timedelta(days=self.TTL_DAYS)).timestamp())
