"""Shared fixtures for calendar sync tests."""
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def aws_credentials():
    """Fake AWS credentials so boto3 never reaches a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def timed_raw_event():
    """Google Calendar event with a time range."""
    return {
        'id': 'evt-timed',
        'status': 'confirmed',
        'htmlLink': 'https://www.google.com/calendar/event?eid=evt-timed',
        'summary': '1:1 sync',
        'description': 'Weekly check-in',
        'location': 'Room 4',
        'start': {'dateTime': '2024-01-16T10:00:00-05:00', 'timeZone': 'America/New_York'},
        'end': {'dateTime': '2024-01-16T10:30:00-05:00', 'timeZone': 'America/New_York'},
        'attendees': [
            {'email': 'alice@example.com', 'self': True, 'responseStatus': 'accepted'},
            {'email': 'bob@example.com', 'responseStatus': 'needsAction'}
        ]
    }


@pytest.fixture
def all_day_raw_event():
    """Google Calendar all-day event."""
    return {
        'id': 'evt-offsite',
        'status': 'confirmed',
        'summary': 'Team Offsite Trip',
        'start': {'date': '2024-01-20'},
        'end': {'date': '2024-01-22'}
    }
