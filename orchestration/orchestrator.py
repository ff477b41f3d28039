"""Runs adapters and feeds their candidates through the synchronizer."""
import logging
import threading
import time
from typing import List, Optional

from processor.event_synchronizer import EventSynchronizer
from processor.models import SyncStats
from scraper.base import BaseAdapter
from storage.run_lock import DynamoDBRunLock


class AdapterNotFoundError(LookupError):
    """Raised when no adapter is registered under the requested name."""


class ScraperOrchestrator:
    """
    Sequential scrape-and-sync over a fixed list of adapters.

    Only one run may be in progress at a time; a run requested while
    another is active is skipped. The in-process lock covers threads of
    this instance and the optional lease covers other processes sharing
    the events table.
    """

    def __init__(
        self,
        adapters: List[BaseAdapter],
        synchronizer: EventSynchronizer,
        lease: Optional[DynamoDBRunLock] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.adapters = list(adapters)
        self.synchronizer = synchronizer
        self.lease = lease
        self.logger = logger or logging.getLogger(__name__)
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def adapter_names(self) -> List[str]:
        return [adapter.name for adapter in self.adapters]

    def get_adapter(self, source_name: str) -> BaseAdapter:
        """
        Look up a registered adapter by name.

        Raises:
            AdapterNotFoundError: If no adapter has that name
        """
        for adapter in self.adapters:
            if adapter.name == source_name:
                return adapter
        raise AdapterNotFoundError(f"Scraper {source_name} not found")

    def run_all(self) -> Optional[SyncStats]:
        """
        Scrape and synchronize every adapter in registration order.

        Returns:
            Aggregated SyncStats, or None if another run was in progress
        """
        if not self._start_run("Scrape run already in progress, skipping"):
            return None

        try:
            start_time = time.time()
            self.logger.info(f"Starting scrape run for {len(self.adapters)} sources")

            stats = SyncStats()
            for adapter in self.adapters:
                stats.merge(self._run_adapter(adapter))

            self.logger.info(
                "Scrape run completed",
                extra={
                    'duration_seconds': round(time.time() - start_time, 2),
                    'stats': stats.to_dict()
                }
            )
            return stats
        finally:
            self._finish_run()

    def run_one(self, source_name: str) -> Optional[SyncStats]:
        """
        Scrape and synchronize a single adapter.

        Args:
            source_name: Name of the adapter to run

        Returns:
            SyncStats for that source, or None if another run was in progress

        Raises:
            AdapterNotFoundError: If no adapter has that name
        """
        adapter = self.get_adapter(source_name)

        if not self._start_run(f"Scrape run already in progress, skipping {source_name}"):
            return None

        try:
            return self._run_adapter(adapter)
        finally:
            self._finish_run()

    def _start_run(self, busy_message: str) -> bool:
        if not self._run_lock.acquire(blocking=False):
            self.logger.warning(busy_message)
            return False

        try:
            acquired = self.lease is None or self.lease.acquire()
        except Exception:
            self._run_lock.release()
            raise

        if not acquired:
            self._run_lock.release()
            self.logger.warning(f"{busy_message} (held by another process)")
        return acquired

    def _finish_run(self) -> None:
        try:
            if self.lease is not None:
                self.lease.release()
        finally:
            self._run_lock.release()

    def _run_adapter(self, adapter: BaseAdapter) -> SyncStats:
        stats = SyncStats()

        try:
            candidates = adapter.scrape()
        except Exception as e:
            self.logger.error(
                f"Scraper {adapter.name} failed: {e}",
                extra={'source': adapter.name, 'error_type': type(e).__name__},
                exc_info=True
            )
            stats.errors += 1
            return stats

        if getattr(adapter, 'last_error', None) is not None:
            self.logger.error(
                f"Scraper {adapter.name} could not fetch listings, skipping inactive sweep",
                extra={'source': adapter.name}
            )
            stats.errors += 1
            return stats

        if not candidates:
            self.logger.warning(
                f"No events scraped from {adapter.name}, skipping inactive sweep"
            )
            return stats

        stats.total_scraped = len(candidates)
        # Candidates that fail to persist were still listed by the source.
        seen_urls = [candidate.source.url for candidate in candidates]

        for candidate in candidates:
            try:
                result = self.synchronizer.process(candidate, adapter.name)
                stats.record(result.action)
            except Exception as e:
                self.logger.error(
                    f"Error processing event '{candidate.title}': {e}",
                    extra={'source': adapter.name, 'url': candidate.source.url},
                    exc_info=True
                )
                stats.errors += 1

        try:
            stats.inactive = self.synchronizer.mark_inactive(adapter.name, seen_urls)
        except Exception as e:
            self.logger.error(
                f"Inactive sweep failed for {adapter.name}: {e}",
                extra={'source': adapter.name},
                exc_info=True
            )
            stats.errors += 1

        self.logger.info(
            f"Completed {adapter.name}",
            extra={'source': adapter.name, 'stats': stats.to_dict()}
        )
        return stats
