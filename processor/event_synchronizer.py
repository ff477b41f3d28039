"""Reconciliation of scraped candidates with the event store."""
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from boto3.dynamodb.conditions import Attr

from processor.change_tracker import detect_changes
from processor.duplicate_resolver import DuplicateResolver
from processor.fingerprint import generate_content_hash
from processor.models import (
    ACTION_CREATED,
    ACTION_UNCHANGED,
    ACTION_UPDATED,
    STATUS_INACTIVE,
    STATUS_UPDATED,
    CandidateEvent,
    PersistedEvent,
    ProcessResult,
    to_iso,
    utc_now,
)


class EventSynchronizer:
    """Applies create/update/no-op decisions for scraped events."""

    DEFAULT_CLEANUP_DAYS = 30

    def __init__(
        self,
        store,
        resolver: Optional[DuplicateResolver] = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the synchronizer.

        Args:
            store: DynamoDBManager (or any object with the same methods)
            resolver: DuplicateResolver (default: one built on the store)
            clock: Callable returning the current aware datetime
            logger: Logger to use (default: module logger)
        """
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.resolver = resolver or DuplicateResolver(store, logger=self.logger)
        self.clock = clock

    def process(self, candidate: CandidateEvent, source_name: str) -> ProcessResult:
        """
        Reconcile one candidate with the store.

        Args:
            candidate: Normalized CandidateEvent from an adapter
            source_name: Name of the adapter that produced it

        Returns:
            ProcessResult with action created, updated or unchanged
        """
        now = self.clock()
        content_hash = generate_content_hash(candidate)

        existing = self.resolver.resolve(candidate)

        if existing is None:
            event = PersistedEvent.from_candidate(candidate, source_name, content_hash, now)
            if self.store.create_event(event):
                self.logger.info(
                    f"New event created: {event.title}",
                    extra={'source': source_name, 'event_id': event.event_id}
                )
                return ProcessResult(action=ACTION_CREATED, event=event)

            # Another writer created the same key first; reconcile against it.
            existing = self.store.find_by_key(source_name, candidate.source.external_id)
            if existing is None:
                raise RuntimeError(
                    f"Event {event.event_id} conflicted on create but could not be loaded"
                )

        return self._refresh(existing, candidate, content_hash, now)

    def _refresh(
        self,
        existing: PersistedEvent,
        candidate: CandidateEvent,
        content_hash: str,
        now: datetime
    ) -> ProcessResult:
        existing.last_scraped = now
        existing.scraped_count += 1

        if existing.content_hash == content_hash:
            self.store.save_event(existing)
            return ProcessResult(action=ACTION_UNCHANGED, event=existing)

        changes = detect_changes(existing, candidate, now)
        existing.apply_candidate(candidate, content_hash)
        existing.change_log.extend(changes)

        status = None if existing.is_imported else STATUS_UPDATED
        if self.store.save_event(existing, changes, status=status):
            if status:
                existing.status = status
        else:
            # Imported by the dashboard after the record was read
            existing = self.store.get_event(existing.event_id) or existing

        self.logger.info(
            f"Event updated: {existing.title}",
            extra={'event_id': existing.event_id, 'changes': len(changes)}
        )
        return ProcessResult(action=ACTION_UPDATED, event=existing, changes=changes)

    def mark_inactive(self, source_name: str, seen_urls: Iterable[str]) -> int:
        """
        Mark events of a source that were not seen in its latest batch.

        Args:
            source_name: Source whose events are swept
            seen_urls: Source URLs reported by the latest complete scrape

        Returns:
            Count of events newly marked inactive
        """
        count = self.store.bulk_mark_status(
            source_name,
            STATUS_INACTIVE,
            exclude_urls=seen_urls,
            now=self.clock()
        )

        if count > 0:
            self.logger.warning(f"Marked {count} events as inactive from {source_name}")

        return count

    def cleanup(self, days_old: int = DEFAULT_CLEANUP_DAYS) -> int:
        """
        Delete old inactive events that were never imported.

        Args:
            days_old: Remove events starting more than this many days ago

        Returns:
            Count of deleted events
        """
        cutoff = self.clock() - timedelta(days=days_old)

        filter_expression = (
            Attr('start_date').lt(to_iso(cutoff)) &
            Attr('status').eq(STATUS_INACTIVE) &
            (Attr('imported_status').not_exists() | Attr('imported_status').eq(False))
        )

        deleted = self.store.delete_where(filter_expression)
        self.logger.info(f"Cleaned up {deleted} old events")
        return deleted
