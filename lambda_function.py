"""AWS Lambda handler for calendar capacity sync."""
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fetcher.google_calendar import GoogleCalendarFetcher
from fetcher.transport import HttpTransport
from health.tracker import FeedHealthTracker
from notifications.sinks import LoggingNotificationSink, SnsNotificationSink
from processor.classifier import EventClassifier
from processor.normalizer import EventNormalizer
from storage.capacity_store import CapacityStore
from storage.health_store import DynamoDBHealthStore, InMemoryHealthStore
from sync.config import SyncConfig
from sync.errors import AuthError, ConfigError, ProviderError
from sync.orchestrator import SyncOrchestrator, validate_calendar_ids

SERVICE_NAME = 'google-calendar'
SERVICE_VERSION = '1.0.0'

# Attributes every LogRecord carries; anything else came from `extra`
_RESERVED_LOG_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

# Health state survives across warm invocations when no table is configured
_memory_health_store = InMemoryHealthStore()


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any extra fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_LOG_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_orchestrator(config: SyncConfig) -> SyncOrchestrator:
    """Wire the sync engine from configuration."""
    if config.health_table_name:
        health_store = DynamoDBHealthStore(table_name=config.health_table_name)
    else:
        health_store = _memory_health_store

    if config.alert_topic_arn:
        sink = SnsNotificationSink(topic_arn=config.alert_topic_arn)
    else:
        sink = LoggingNotificationSink()

    tracker = FeedHealthTracker(
        store=health_store,
        notification_sink=sink,
        degraded_after_failures=config.degraded_failure_threshold,
        unhealthy_after=config.unhealthy_after
    )
    return SyncOrchestrator(
        fetcher=GoogleCalendarFetcher(transport=HttpTransport(timeout=config.timeout_seconds)),
        normalizer=EventNormalizer(EventClassifier(config.event_type_mapping)),
        health_tracker=tracker,
        config=config
    )


def extract_token(event: Dict[str, Any]) -> Optional[str]:
    """Read the bearer token from the payload or an Authorization header."""
    if event.get('access_token'):
        return event['access_token']
    headers = event.get('headers') or {}
    authorization = headers.get('Authorization') or headers.get('authorization') or ''
    if authorization.lower().startswith('bearer '):
        return authorization[len('bearer '):].strip() or None
    return None


def _parse_time(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (AttributeError, ValueError):
        raise ConfigError(f"{name} must be an ISO 8601 timestamp, got {value!r}") from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def handle_sync(event, orchestrator: SyncOrchestrator, config: SyncConfig) -> Dict[str, Any]:
    """Run a sync and write its events to the capacity store."""
    logger = logging.getLogger(__name__)
    user_id = event.get('user_id')

    result = orchestrator.run(
        user_id=user_id,
        token=extract_token(event),
        calendar_ids=event.get('calendar_ids'),
        window_days=event.get('sync_window_days')
    )

    capacity_store = CapacityStore(table_name=config.events_table_name)
    try:
        events_written = capacity_store.write_events(user_id, result.events)
    except Exception as e:
        logger.error(
            f"Error writing events to capacity store: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'success': False,
            'message': 'Failed to write events to capacity store',
            'error': str(e),
            'error_type': type(e).__name__
        })

    body = {'success': True, 'user_id': user_id, 'events_written': events_written}
    body.update(result.to_dict())
    return _response(200, body)


def handle_list_calendars(event, orchestrator: SyncOrchestrator) -> Dict[str, Any]:
    calendars = orchestrator.list_calendars(extract_token(event))
    return _response(200, {
        'success': True,
        'calendars': [calendar.to_dict() for calendar in calendars]
    })


def handle_get_events(event, orchestrator: SyncOrchestrator) -> Dict[str, Any]:
    calendar_id = event.get('calendar_id') or 'primary'
    events = orchestrator.get_events(
        extract_token(event),
        calendar_id=calendar_id,
        time_min=_parse_time(event.get('time_min'), 'time_min'),
        time_max=_parse_time(event.get('time_max'), 'time_max')
    )
    return _response(200, {
        'success': True,
        'calendar_id': calendar_id,
        'events': [item.to_dict() for item in events]
    })


def handle_feed_health(event, orchestrator: SyncOrchestrator) -> Dict[str, Any]:
    """Report the tracked health of a user's feeds."""
    user_id = event.get('user_id')
    if not user_id:
        raise ConfigError('user_id is required')
    calendar_ids = validate_calendar_ids(event.get('calendar_ids'))
    feeds = [
        orchestrator.health_tracker.get(user_id, calendar_id).to_dict()
        for calendar_id in calendar_ids
    ]
    return _response(200, {'success': True, 'user_id': user_id, 'feeds': feeds})


def handle_health(config: SyncConfig) -> Dict[str, Any]:
    return _response(200, {
        'status': 'healthy',
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'sync_interval_minutes': config.default_sync_interval
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for calendar capacity sync.

    The payload's "action" selects the operation: sync (default, used by the
    scheduled trigger), list_calendars, get_events, feed_health or health.

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)

    event = event or {}
    action = event.get('action', 'sync')
    start_time = time.time()
    logger.info(f"Lambda execution started", extra={'action': action})

    try:
        config = SyncConfig.from_env()

        if action == 'health':
            response = handle_health(config)
        elif action == 'sync':
            response = handle_sync(event, build_orchestrator(config), config)
        elif action == 'list_calendars':
            response = handle_list_calendars(event, build_orchestrator(config))
        elif action == 'get_events':
            response = handle_get_events(event, build_orchestrator(config))
        elif action == 'feed_health':
            response = handle_feed_health(event, build_orchestrator(config))
        else:
            raise ConfigError(f"Unknown action: {action}")

    except AuthError as e:
        logger.warning(f"Rejected {action} request: {e}")
        response = _response(401, {'success': False, 'error': str(e)})

    except ConfigError as e:
        logger.warning(f"Invalid {action} request: {e}")
        response = _response(400, {'success': False, 'error': str(e)})

    except ProviderError as e:
        logger.warning(
            f"Calendar provider request failed: {e.message}",
            extra={'status_code': e.status_code}
        )
        response = _response(e.status_code or 502, {'success': False, 'error': e.message})

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        response = _response(500, {
            'success': False,
            'error': 'Internal server error',
            'error_type': type(e).__name__
        })

    duration = time.time() - start_time
    logger.info(
        f"Lambda execution completed",
        extra={
            'action': action,
            'status_code': response['statusCode'],
            'duration_seconds': round(duration, 2)
        }
    )
    return response
