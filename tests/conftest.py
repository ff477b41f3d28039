"""Shared fixtures for the sync engine tests."""
import os
from datetime import datetime, timezone
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from processor.models import CandidateEvent, EventSource, Price, Venue
from storage.dynamodb_manager import DynamoDBManager, create_events_table

TEST_TABLE = 'test-sydney-events'
TEST_REGION = 'ap-southeast-2'

NOW = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def aws_credentials():
    """Fake credentials so boto3 never reaches a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': TEST_REGION
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock DynamoDB events table with all secondary indexes."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name=TEST_REGION)
        yield create_events_table(dynamodb, TEST_TABLE)


@pytest.fixture
def store(dynamodb_table):
    """DynamoDBManager bound to the mock table."""
    return DynamoDBManager(TEST_TABLE, region_name=TEST_REGION)


def make_candidate(
    title='Jazz Night',
    url='https://www.eventbrite.com.au/e/jazz-night-1001',
    external_id='jazz-night-1001',
    source_name='eventbrite',
    start_date=datetime(2025, 3, 14, 19, 0, 0, tzinfo=timezone.utc),
    venue_name='The Basement',
    venue_address='7 Macquarie Pl',
    city='Sydney',
    description='Live jazz in the city',
    price_min=25.0,
    price_max=40.0,
    image_url='https://img.example.com/jazz.jpg'
):
    """Build a CandidateEvent with sensible defaults."""
    return CandidateEvent(
        title=title,
        description=description,
        start_date=start_date,
        end_date=None,
        venue=Venue(name=venue_name, address=venue_address, city=city),
        category='Music',
        tags=['sydney', 'event', 'music'],
        image_url=image_url,
        price=Price(min=price_min, max=price_max, currency='AUD', is_free=False),
        source=EventSource(name=source_name, url=url, external_id=external_id)
    )


@pytest.fixture
def candidate_factory():
    return make_candidate
