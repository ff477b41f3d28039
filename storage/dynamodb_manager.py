"""DynamoDB manager for event storage operations."""
import logging
from decimal import Decimal
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import (
    STATUS_IMPORTED,
    ChangeRecord,
    EventSource,
    ImportInfo,
    PersistedEvent,
    Price,
    Venue,
    from_iso,
    to_iso,
    utc_now,
)

URL_INDEX = 'url-index'
CITY_DATE_INDEX = 'city-date-index'
SOURCE_INDEX = 'source-index'

# Key prefix of run-lock lease items stored alongside events
LOCK_PREFIX = 'lock#'

TABLE_SCHEMA = {
    'KeySchema': [
        {'AttributeName': 'event_id', 'KeyType': 'HASH'}
    ],
    'AttributeDefinitions': [
        {'AttributeName': 'event_id', 'AttributeType': 'S'},
        {'AttributeName': 'source_url', 'AttributeType': 'S'},
        {'AttributeName': 'source_name', 'AttributeType': 'S'},
        {'AttributeName': 'venue_city', 'AttributeType': 'S'},
        {'AttributeName': 'start_date', 'AttributeType': 'S'}
    ],
    'GlobalSecondaryIndexes': [
        {
            'IndexName': URL_INDEX,
            'KeySchema': [
                {'AttributeName': 'source_url', 'KeyType': 'HASH'}
            ],
            'Projection': {'ProjectionType': 'ALL'}
        },
        {
            'IndexName': CITY_DATE_INDEX,
            'KeySchema': [
                {'AttributeName': 'venue_city', 'KeyType': 'HASH'},
                {'AttributeName': 'start_date', 'KeyType': 'RANGE'}
            ],
            'Projection': {'ProjectionType': 'ALL'}
        },
        {
            'IndexName': SOURCE_INDEX,
            'KeySchema': [
                {'AttributeName': 'source_name', 'KeyType': 'HASH'}
            ],
            'Projection': {'ProjectionType': 'ALL'}
        }
    ],
    'BillingMode': 'PAY_PER_REQUEST'
}

# Attributes owned by the synchronizer. Import state and engagement
# counters belong to the dashboard and are never written back. Status is
# shared with the dashboard and only written through the imported guard.
SYNC_OWNED_ATTRIBUTES = (
    'title',
    'description',
    'start_date',
    'end_date',
    'venue_name',
    'venue_address',
    'venue_city',
    'venue_state',
    'venue_country',
    'venue_latitude',
    'venue_longitude',
    'category',
    'tags',
    'image_url',
    'price_min',
    'price_max',
    'price_currency',
    'price_is_free',
    'content_hash',
    'last_scraped',
    'scraped_count'
)


def create_events_table(dynamodb, table_name: str):
    """
    Create the events table with its secondary indexes.

    Args:
        dynamodb: boto3 DynamoDB service resource
        table_name: Name of the table to create

    Returns:
        The created Table resource
    """
    table = dynamodb.create_table(TableName=table_name, **TABLE_SCHEMA)
    table.wait_until_exists()
    return table


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def _to_decimal(value: Optional[float]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    return float(value)


class DynamoDBManager:
    """Manager for DynamoDB operations."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(
        self,
        table_name: str,
        region_name: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region (default: resolved by boto3)
            logger: Logger to use (default: module logger)
        """
        self.table_name = table_name
        self.logger = logger or logging.getLogger(__name__)
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        self.logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def get_event(self, event_id: str) -> Optional[PersistedEvent]:
        """
        Fetch a single event by its table key.

        Args:
            event_id: Table key of the event

        Returns:
            PersistedEvent or None if absent
        """
        response = self.table.get_item(
            Key={'event_id': event_id},
            ConsistentRead=True
        )
        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def find_by_key(self, source_name: str, external_id: str) -> Optional[PersistedEvent]:
        """Look up the event owned by a (source name, external id) pair."""
        return self.get_event(PersistedEvent.make_event_id(source_name, external_id))

    def find_by_url(self, url: str) -> Optional[PersistedEvent]:
        """
        Look up an event by its source URL.

        Args:
            url: Source URL of the listing

        Returns:
            The first matching PersistedEvent or None
        """
        items = self._query_all(
            IndexName=URL_INDEX,
            KeyConditionExpression=Key('source_url').eq(url)
        )
        if not items:
            return None
        if len(items) > 1:
            self.logger.warning(
                f"{len(items)} events share source URL {url}, using the first"
            )
        items.sort(key=lambda item: item['event_id'])
        return self._item_to_event(items[0])

    def find_fuzzy_candidates(
        self,
        window_start: datetime,
        window_end: datetime,
        city: str
    ) -> List[PersistedEvent]:
        """
        Find events in a city whose start date falls within a window.

        Results are ordered by start date, then first sighting, then key.

        Args:
            window_start: Inclusive lower bound for start_date
            window_end: Inclusive upper bound for start_date
            city: Venue city to match exactly

        Returns:
            List of PersistedEvent objects
        """
        items = self._query_all(
            IndexName=CITY_DATE_INDEX,
            KeyConditionExpression=(
                Key('venue_city').eq(city) &
                Key('start_date').between(to_iso(window_start), to_iso(window_end))
            )
        )

        events = [
            event for event in (self._item_to_event(item) for item in items)
            if event
        ]
        events.sort(key=lambda e: (e.start_date, e.first_scraped, e.event_id))
        return events

    def get_all_events(self) -> Dict[str, PersistedEvent]:
        """
        Retrieve all events from DynamoDB using Scan operation.

        Returns:
            Dictionary mapping event_id to PersistedEvent objects
        """
        self.logger.info("Scanning DynamoDB table for all events")

        try:
            items = self._scan_all()
        except ClientError as e:
            self.logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        events = {}
        for item in items:
            if item['event_id'].startswith(LOCK_PREFIX):
                continue
            event = self._item_to_event(item)
            if event:
                events[event.event_id] = event

        self.logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def create_event(self, event: PersistedEvent) -> bool:
        """
        Insert a new event unless its key already exists.

        The conditional put makes concurrent first sightings of the same
        (source name, external id) pair collapse onto one record.

        Args:
            event: PersistedEvent to insert

        Returns:
            True if the record was created, False if the key was taken
        """
        try:
            self.table.put_item(
                Item=self._event_to_item(event),
                ConditionExpression=Attr('event_id').not_exists()
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                self.logger.info(f"Event {event.event_id} already exists, not creating")
                return False
            raise
        return True

    def save_event(
        self,
        event: PersistedEvent,
        new_changes: Iterable[ChangeRecord] = (),
        status: Optional[str] = None
    ) -> bool:
        """
        Persist synchronizer-owned attributes of an existing event.

        New change records are appended with list_append so the stored
        change log is never rewritten. Status is written only when given,
        and never over a record the dashboard has imported; if that guard
        fails the content is saved without the status.

        Args:
            event: PersistedEvent with updated fields
            new_changes: Change records to append to the change log
            status: Status to set, or None to leave the stored status alone

        Returns:
            False if the status write was refused because the record is imported
        """
        item = self._event_to_item(event)
        names = {}
        values = {}
        set_clauses = []
        remove_clauses = []

        for i, attribute in enumerate(SYNC_OWNED_ATTRIBUTES):
            placeholder = f"#a{i}"
            names[placeholder] = attribute
            if attribute in item:
                values[f":v{i}"] = item[attribute]
                set_clauses.append(f"{placeholder} = :v{i}")
            else:
                remove_clauses.append(placeholder)

        new_changes = list(new_changes)
        if new_changes:
            names['#change_log'] = 'change_log'
            values[':changes'] = [self._change_to_item(c) for c in new_changes]
            values[':empty'] = []
            set_clauses.append(
                "#change_log = list_append(if_not_exists(#change_log, :empty), :changes)"
            )

        update_expression = "SET " + ", ".join(set_clauses)
        if remove_clauses:
            update_expression += " REMOVE " + ", ".join(remove_clauses)

        if status is None:
            self.table.update_item(
                Key={'event_id': event.event_id},
                UpdateExpression=update_expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
            return True

        try:
            self.table.update_item(
                Key={'event_id': event.event_id},
                UpdateExpression=update_expression.replace(
                    "SET ", "SET #status = :status, ", 1
                ),
                ConditionExpression=(
                    "#status <> :imported AND "
                    "(attribute_not_exists(imported_status) OR imported_status = :false)"
                ),
                ExpressionAttributeNames={**names, '#status': 'status'},
                ExpressionAttributeValues={
                    **values,
                    ':status': status,
                    ':imported': STATUS_IMPORTED,
                    ':false': False
                }
            )
        except ClientError as e:
            if not _is_conditional_failure(e):
                raise
            self.logger.info(
                f"Event {event.event_id} was imported, keeping its status",
                extra={'event_id': event.event_id}
            )
            self.save_event(event, new_changes)
            return False
        return True

    def bulk_mark_status(
        self,
        source_name: str,
        status: str,
        exclude_urls: Iterable[str] = (),
        now: Optional[datetime] = None
    ) -> int:
        """
        Set status on every event of a source whose URL is not excluded.

        Events already carrying the target status are left untouched, so
        repeating the call with the same exclusions changes nothing.

        Args:
            source_name: Source whose events are considered
            status: Status to set
            exclude_urls: Source URLs to leave alone
            now: Timestamp written to last_scraped (default: now)

        Returns:
            Count of events whose status changed
        """
        excluded = set(exclude_urls)
        timestamp = to_iso(now or utc_now())
        items = self._query_all(
            IndexName=SOURCE_INDEX,
            KeyConditionExpression=Key('source_name').eq(source_name)
        )

        updated_count = 0
        for item in items:
            if item.get('source_url') in excluded or item.get('status') == status:
                continue

            try:
                self.table.update_item(
                    Key={'event_id': item['event_id']},
                    UpdateExpression="SET #status = :status, last_scraped = :now",
                    ConditionExpression="#status <> :status",
                    ExpressionAttributeNames={'#status': 'status'},
                    ExpressionAttributeValues={':status': status, ':now': timestamp}
                )
                updated_count += 1
            except ClientError as e:
                if _is_conditional_failure(e):
                    continue
                self.logger.error(
                    f"Error marking event {item['event_id']} as {status}: {e}"
                )
                raise

        return updated_count

    def delete_where(self, filter_expression) -> int:
        """
        Delete every event matching a boto3 filter condition.

        Args:
            filter_expression: boto3.dynamodb.conditions condition

        Returns:
            Count of deleted events
        """
        items = self._scan_all(
            FilterExpression=filter_expression & ~Attr('event_id').begins_with(LOCK_PREFIX)
        )
        return self.batch_delete_events([item['event_id'] for item in items])

    def batch_delete_events(self, event_ids: List[str]) -> int:
        """
        Delete events from DynamoDB in batches of 25 items.

        Args:
            event_ids: List of event IDs to delete

        Returns:
            Count of successfully deleted events
        """
        if not event_ids:
            return 0

        self.logger.info(f"Deleting {len(event_ids)} events from DynamoDB")
        success_count = 0

        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
                success_count += len(batch)

            except ClientError as e:
                self.logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                # Continue processing remaining batches
                continue

        self.logger.info(f"Successfully deleted {success_count} events")
        return success_count

    def _query_all(self, **kwargs) -> List[dict]:
        """Run a Query, following LastEvaluatedKey pagination."""
        response = self.table.query(**kwargs)
        items = response.get('Items', [])

        while 'LastEvaluatedKey' in response:
            response = self.table.query(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **kwargs
            )
            items.extend(response.get('Items', []))

        return items

    def _scan_all(self, **kwargs) -> List[dict]:
        """Run a Scan, following LastEvaluatedKey pagination."""
        response = self.table.scan(**kwargs)
        items = response.get('Items', [])

        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **kwargs
            )
            items.extend(response.get('Items', []))

        return items

    def _item_to_event(self, item: dict) -> Optional[PersistedEvent]:
        """
        Convert DynamoDB item to PersistedEvent object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            PersistedEvent object or None if conversion fails
        """
        try:
            return PersistedEvent(
                event_id=item['event_id'],
                title=item['title'],
                description=item.get('description', ''),
                start_date=from_iso(item['start_date']),
                end_date=from_iso(item.get('end_date')),
                venue=Venue(
                    name=item.get('venue_name', ''),
                    address=item.get('venue_address', ''),
                    city=item['venue_city'],
                    state=item.get('venue_state', ''),
                    country=item.get('venue_country', ''),
                    latitude=_to_float(item.get('venue_latitude')),
                    longitude=_to_float(item.get('venue_longitude'))
                ),
                category=item.get('category', 'Other'),
                tags=list(item.get('tags', [])),
                image_url=item.get('image_url', ''),
                price=Price(
                    min=_to_float(item.get('price_min', 0)),
                    max=_to_float(item.get('price_max', 0)),
                    currency=item.get('price_currency', 'AUD'),
                    is_free=bool(item.get('price_is_free', False))
                ),
                source=EventSource(
                    name=item['source_name'],
                    url=item['source_url'],
                    external_id=item['external_id']
                ),
                status=item['status'],
                content_hash=item['content_hash'],
                change_log=[
                    self._item_to_change(change)
                    for change in item.get('change_log', [])
                ],
                first_scraped=from_iso(item['first_scraped']),
                last_scraped=from_iso(item['last_scraped']),
                scraped_count=int(item.get('scraped_count', 1)),
                imported=ImportInfo(
                    status=bool(item.get('imported_status', False)),
                    by=item.get('imported_by'),
                    at=from_iso(item.get('imported_at')),
                    notes=item.get('imported_notes')
                ),
                click_count=int(item.get('click_count', 0)),
                email_capture_count=int(item.get('email_capture_count', 0))
            )
        except (KeyError, ValueError) as e:
            self.logger.warning(f"Failed to convert item to PersistedEvent: {e}")
            return None

    def _event_to_item(self, event: PersistedEvent) -> dict:
        """
        Convert PersistedEvent object to DynamoDB item.

        Args:
            event: PersistedEvent object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'event_id': event.event_id,
            'title': event.title,
            'description': event.description,
            'start_date': to_iso(event.start_date),
            'venue_name': event.venue.name,
            'venue_address': event.venue.address,
            'venue_city': event.venue.city,
            'venue_state': event.venue.state,
            'venue_country': event.venue.country,
            'category': event.category,
            'tags': list(event.tags),
            'image_url': event.image_url or '',
            'price_min': _to_decimal(event.price.min or 0),
            'price_max': _to_decimal(event.price.max or 0),
            'price_currency': event.price.currency,
            'price_is_free': event.price.is_free,
            'source_name': event.source.name,
            'source_url': event.source.url,
            'external_id': event.source.external_id,
            'status': event.status,
            'content_hash': event.content_hash,
            'change_log': [self._change_to_item(c) for c in event.change_log],
            'first_scraped': to_iso(event.first_scraped),
            'last_scraped': to_iso(event.last_scraped),
            'scraped_count': event.scraped_count,
            'imported_status': event.imported.status,
            'click_count': event.click_count,
            'email_capture_count': event.email_capture_count
        }

        # Add optional fields if present
        if event.end_date:
            item['end_date'] = to_iso(event.end_date)
        if event.venue.latitude is not None:
            item['venue_latitude'] = _to_decimal(event.venue.latitude)
        if event.venue.longitude is not None:
            item['venue_longitude'] = _to_decimal(event.venue.longitude)
        if event.imported.by:
            item['imported_by'] = event.imported.by
        if event.imported.at:
            item['imported_at'] = to_iso(event.imported.at)
        if event.imported.notes:
            item['imported_notes'] = event.imported.notes

        return item

    @staticmethod
    def _change_to_item(change: ChangeRecord) -> dict:
        return {
            'field': change.field,
            'old_value': change.old_value,
            'new_value': change.new_value,
            'changed_at': to_iso(change.changed_at)
        }

    @staticmethod
    def _item_to_change(item: dict) -> ChangeRecord:
        return ChangeRecord(
            field=item['field'],
            old_value=item.get('old_value', ''),
            new_value=item.get('new_value', ''),
            changed_at=from_iso(item['changed_at'])
        )
