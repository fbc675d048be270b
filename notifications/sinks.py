"""Notification sinks for feed health alerts."""
import json
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from health.models import AlertKind, HealthAlert

logger = logging.getLogger(__name__)


class LoggingNotificationSink:
    """Writes alerts to the log; used when no SNS topic is configured."""

    def notify(self, alert: HealthAlert) -> bool:
        log = logger.error if alert.kind == AlertKind.UNHEALTHY else logger.info
        log(
            f"Feed health alert: {alert.kind.value} for calendar "
            f"'{alert.calendar_id}' of user '{alert.user_id}'",
            extra={'alert': alert.to_dict()}
        )
        return True


class SnsNotificationSink:
    """Publishes alerts as JSON messages to an SNS topic."""

    SUBJECTS = {
        AlertKind.UNHEALTHY: 'Calendar sync feed unhealthy',
        AlertKind.RECOVERED: 'Calendar sync feed recovered',
    }

    def __init__(self, topic_arn: str, client=None):
        """
        Initialize the SNS client.

        Args:
            topic_arn: ARN of the topic alerts are published to
            client: Optional boto3 SNS client
        """
        self.topic_arn = topic_arn
        self.client = client or boto3.client('sns')

    def notify(self, alert: HealthAlert) -> bool:
        """
        Publish an alert.

        Publish failures, including connection and credential errors, are
        logged; they never fail the sync that raised the alert.

        Returns:
            True if SNS accepted the message
        """
        try:
            response = self.client.publish(
                TopicArn=self.topic_arn,
                Subject=self.SUBJECTS[alert.kind],
                Message=json.dumps(alert.to_dict()),
                MessageAttributes={
                    'kind': {'DataType': 'String', 'StringValue': alert.kind.value}
                }
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to publish {alert.kind.value} alert for calendar "
                f"'{alert.calendar_id}': {e}",
                extra={'user_id': alert.user_id, 'calendar_id': alert.calendar_id}
            )
            return False

        logger.info(
            f"Published {alert.kind.value} alert for calendar '{alert.calendar_id}'",
            extra={'message_id': response.get('MessageId')}
        )
        return True
