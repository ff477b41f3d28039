"""AWS Lambda handler for Sydney Events Sync."""
import json
import logging
import time
from typing import Any, Dict

from config.logging_setup import setup_logging
from config.settings import Settings
from orchestration.orchestrator import AdapterNotFoundError, ScraperOrchestrator
from processor.duplicate_resolver import DuplicateResolver
from processor.event_synchronizer import EventSynchronizer
from scraper.registry import build_default_adapters
from storage.dynamodb_manager import DynamoDBManager
from storage.run_lock import DynamoDBRunLock

ACTION_SCRAPE = 'scrape'
ACTION_CLEANUP = 'cleanup'


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps(body)
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for Sydney Events Sync.

    The EventBridge payload selects the work to do::

        {"action": "scrape", "source": "meetup"}
        {"action": "cleanup", "days_old": 30}

    ``action`` defaults to ``scrape``; without ``source`` every adapter runs.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    settings = Settings.from_env()
    event = event or {}
    action = event.get('action', ACTION_SCRAPE)

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'action': action,
            'table_name': settings.table_name,
            'timeout_seconds': settings.timeout_seconds
        }
    )

    if action not in (ACTION_SCRAPE, ACTION_CLEANUP):
        logger.error(f"Unknown action: {action}")
        return _response(400, {'message': f"Unknown action: {action}"})

    try:
        dynamodb_manager = DynamoDBManager(
            table_name=settings.table_name,
            region_name=settings.region_name
        )
        synchronizer = EventSynchronizer(
            dynamodb_manager,
            resolver=DuplicateResolver(dynamodb_manager, default_city=settings.default_city)
        )

        if action == ACTION_CLEANUP:
            days_old = int(event.get('days_old', settings.cleanup_days_old))
            deleted = synchronizer.cleanup(days_old)
            duration = time.time() - start_time

            logger.info(
                "Cleanup completed successfully",
                extra={'events_deleted': deleted, 'duration_seconds': round(duration, 2)}
            )
            return _response(200, {
                'message': 'Cleanup completed successfully',
                'statistics': {
                    'events_deleted': deleted,
                    'days_old': days_old,
                    'duration_seconds': round(duration, 2)
                }
            })

        orchestrator = ScraperOrchestrator(
            build_default_adapters(settings),
            synchronizer,
            lease=DynamoDBRunLock(
                dynamodb_manager.table,
                lease_seconds=settings.run_lock_seconds
            )
        )
        source = event.get('source')

        try:
            stats = orchestrator.run_one(source) if source else orchestrator.run_all()
        except AdapterNotFoundError as e:
            logger.error(str(e))
            return _response(404, {
                'message': str(e),
                'available_sources': orchestrator.adapter_names
            })

        duration = time.time() - start_time

        if stats is None:
            return _response(409, {
                'message': 'A scrape run is already in progress',
                'duration_seconds': round(duration, 2)
            })

        logger.info(
            "Lambda execution completed successfully",
            extra={'duration_seconds': round(duration, 2), 'stats': stats.to_dict()}
        )

        return _response(200, {
            'message': 'Sync completed successfully',
            'statistics': {
                **stats.to_dict(),
                'duration_seconds': round(duration, 2)
            }
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
