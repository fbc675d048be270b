"""Configuration for the calendar sync engine."""
import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Optional

from processor.classifier import (
    DEFAULT_EVENT_TYPE_MAPPING,
    KeywordTable,
    build_keyword_table,
)
from sync.errors import ConfigError

_TRUE = {'1', 'true', 'yes', 'on'}
_FALSE = {'0', 'false', 'no', 'off'}


def _positive_int(environ: Mapping[str, str], name: str, default: str) -> int:
    raw = environ.get(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _bool(environ: Mapping[str, str], name: str, default: str) -> bool:
    raw = environ.get(name, default).strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def parse_event_type_mapping(raw: str) -> KeywordTable:
    """
    Parse an EVENT_TYPE_MAPPING JSON object of type name -> keyword list.

    Raises:
        ConfigError: If the value is not valid JSON or names unknown types
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"EVENT_TYPE_MAPPING is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError('EVENT_TYPE_MAPPING must be a JSON object')
    return build_keyword_table(data)


@dataclass(frozen=True)
class SyncConfig:
    """Recognized sync options."""
    default_sync_interval: int = 60
    sync_window_days: int = 180
    include_declined: bool = False
    include_tentative: bool = True
    event_type_mapping: KeywordTable = field(default=DEFAULT_EVENT_TYPE_MAPPING)
    timeout_seconds: int = 30
    degraded_failure_threshold: int = 3
    unhealthy_after_hours: int = 12
    events_table_name: str = 'calendar-capacity-events'
    health_table_name: Optional[str] = None
    alert_topic_arn: Optional[str] = None

    @property
    def unhealthy_after(self) -> timedelta:
        return timedelta(hours=self.unhealthy_after_hours)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """
        Read configuration from environment variables.

        Args:
            environ: Environment mapping (default: os.environ)

        Raises:
            ConfigError: If any value is invalid
        """
        environ = os.environ if environ is None else environ

        mapping_raw = environ.get('EVENT_TYPE_MAPPING')
        mapping = (
            parse_event_type_mapping(mapping_raw)
            if mapping_raw else DEFAULT_EVENT_TYPE_MAPPING
        )

        return cls(
            default_sync_interval=_positive_int(environ, 'DEFAULT_SYNC_INTERVAL', '60'),
            sync_window_days=_positive_int(environ, 'SYNC_WINDOW_DAYS', '180'),
            include_declined=_bool(environ, 'INCLUDE_DECLINED', 'false'),
            include_tentative=_bool(environ, 'INCLUDE_TENTATIVE', 'true'),
            event_type_mapping=mapping,
            timeout_seconds=_positive_int(environ, 'TIMEOUT_SECONDS', '30'),
            degraded_failure_threshold=_positive_int(environ, 'DEGRADED_FAILURE_THRESHOLD', '3'),
            unhealthy_after_hours=_positive_int(environ, 'UNHEALTHY_AFTER_HOURS', '12'),
            events_table_name=environ.get('EVENTS_TABLE_NAME', 'calendar-capacity-events'),
            health_table_name=environ.get('HEALTH_TABLE_NAME') or None,
            alert_topic_arn=environ.get('ALERT_TOPIC_ARN') or None
        )
