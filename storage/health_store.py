"""Storage for feed health state."""
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from health.models import FeedHealth, HealthStatus

logger = logging.getLogger(__name__)


class InMemoryHealthStore:
    """Process-local health store, used when no table is configured."""

    def __init__(self):
        self._items: Dict[Tuple[str, str], FeedHealth] = {}
        self._lock = threading.Lock()

    def load(self, user_id: str, calendar_id: str) -> Optional[FeedHealth]:
        with self._lock:
            health = self._items.get((user_id, calendar_id))
            return replace(health) if health else None

    def save(self, health: FeedHealth) -> None:
        with self._lock:
            self._items[(health.user_id, health.calendar_id)] = replace(health)


class DynamoDBHealthStore:
    """Health store backed by a DynamoDB table keyed on user_id and calendar_id."""

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBHealthStore for table: {table_name}")

    def load(self, user_id: str, calendar_id: str) -> Optional[FeedHealth]:
        """
        Load the stored health of a feed.

        Returns:
            FeedHealth or None if the feed was never observed

        Raises:
            ClientError: If the read fails
        """
        try:
            response = self.table.get_item(
                Key={'user_id': user_id, 'calendar_id': calendar_id}
            )
        except ClientError as e:
            logger.error(f"Error reading health for feed '{user_id}/{calendar_id}': {e}")
            raise

        item = response.get('Item')
        return self._item_to_health(item) if item else None

    def save(self, health: FeedHealth) -> None:
        """
        Persist the health of a feed.

        Raises:
            ClientError: If the write fails
        """
        try:
            self.table.put_item(Item=self._health_to_item(health))
        except ClientError as e:
            logger.error(
                f"Error writing health for feed '{health.user_id}/{health.calendar_id}': {e}"
            )
            raise

    def _item_to_health(self, item: dict) -> FeedHealth:
        return FeedHealth(
            user_id=item['user_id'],
            calendar_id=item['calendar_id'],
            status=HealthStatus(item['status']),
            consecutive_failures=int(item.get('consecutive_failures', 0)),
            first_failure_at=self._parse_timestamp(item.get('first_failure_at')),
            last_success_at=self._parse_timestamp(item.get('last_success_at')),
            alert_pending=bool(item.get('alert_pending', False))
        )

    def _health_to_item(self, health: FeedHealth) -> dict:
        item = {
            'user_id': health.user_id,
            'calendar_id': health.calendar_id,
            'status': health.status.value,
            'consecutive_failures': health.consecutive_failures
        }

        # Add optional fields if present
        if health.first_failure_at:
            item['first_failure_at'] = health.first_failure_at.isoformat()
        if health.last_success_at:
            item['last_success_at'] = health.last_success_at.isoformat()
        if health.alert_pending:
            item['alert_pending'] = True

        return item

    def _parse_timestamp(self, value: Optional[str]) -> Optional[datetime]:
        return datetime.fromisoformat(value) if value else None
