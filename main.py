"""Command line entry point: long-running scheduler or one-off runs."""
import argparse
import json
import logging
import signal
import sys
import threading
from typing import List, Optional, Tuple

from config.logging_setup import setup_logging
from config.settings import Settings
from orchestration.orchestrator import AdapterNotFoundError, ScraperOrchestrator
from orchestration.scheduler import SchedulerService
from processor.duplicate_resolver import DuplicateResolver
from processor.event_synchronizer import EventSynchronizer
from scraper.registry import build_default_adapters
from storage.dynamodb_manager import DynamoDBManager
from storage.run_lock import DynamoDBRunLock

logger = logging.getLogger(__name__)


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discover and sync Sydney events")
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('serve', help="Run the scrape and cleanup schedule until stopped")

    scrape = subparsers.add_parser('scrape', help="Run one scrape pass and exit")
    scrape.add_argument('--source', default=None, help="Only run this adapter, e.g. meetup")

    cleanup = subparsers.add_parser('cleanup', help="Delete old inactive events and exit")
    cleanup.add_argument('--days-old', type=int, default=None,
                         help="Age cutoff in days (default: CLEANUP_DAYS_OLD)")

    return parser.parse_args(argv)


def build_engine(settings: Settings) -> Tuple[ScraperOrchestrator, EventSynchronizer]:
    """Wire the store, synchronizer and orchestrator from settings."""
    store = DynamoDBManager(table_name=settings.table_name, region_name=settings.region_name)
    synchronizer = EventSynchronizer(
        store,
        resolver=DuplicateResolver(store, default_city=settings.default_city)
    )
    orchestrator = ScraperOrchestrator(
        build_default_adapters(settings),
        synchronizer,
        lease=DynamoDBRunLock(store.table, lease_seconds=settings.run_lock_seconds)
    )
    return orchestrator, synchronizer


def run_scrape(orchestrator: ScraperOrchestrator, source: Optional[str]) -> int:
    try:
        stats = orchestrator.run_one(source) if source else orchestrator.run_all()
    except AdapterNotFoundError as e:
        logger.error(f"{e}. Available sources: {', '.join(orchestrator.adapter_names)}")
        return 2

    if stats is None:
        return 1

    print(json.dumps(stats.to_dict(), indent=2))
    return 0


def run_cleanup(synchronizer: EventSynchronizer, days_old: int) -> int:
    deleted = synchronizer.cleanup(days_old)
    print(json.dumps({'deleted': deleted, 'days_old': days_old}, indent=2))
    return 0


def serve(settings: Settings, scheduler: SchedulerService) -> int:
    """Start the schedule and block until SIGTERM or SIGINT."""
    if not settings.auto_scrape:
        logger.info("Automatic scraping disabled (AUTO_SCRAPE=false); nothing to serve")
        return 0

    stopped = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"{signal.Signals(signum).name} signal received: stopping scheduler")
        scheduler.stop_all()
        stopped.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    logger.info("Starting automatic scraping scheduler")
    scheduler.start_all()
    stopped.wait()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    orchestrator, synchronizer = build_engine(settings)

    if args.command == 'scrape':
        return run_scrape(orchestrator, args.source)

    if args.command == 'cleanup':
        days_old = args.days_old if args.days_old is not None else settings.cleanup_days_old
        return run_cleanup(synchronizer, days_old)

    scheduler = SchedulerService(orchestrator, synchronizer, settings=settings)
    return serve(settings, scheduler)


if __name__ == '__main__':
    raise SystemExit(main())
