"""Recurring scrape and cleanup jobs driven by threading timers."""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from config.settings import Settings
from orchestration.orchestrator import ScraperOrchestrator
from processor.event_synchronizer import EventSynchronizer
from processor.models import to_iso, utc_now

STATE_IDLE = 'idle'
STATE_SCHEDULED = 'scheduled'
STATE_RUNNING = 'running'
STATE_STOPPED = 'stopped'

SCRAPER_JOB = 'scraper'
CLEANUP_JOB = 'cleanup'
INITIAL_SCRAPE_JOB = 'initial-scrape'


class RecurringJob:
    """
    A named callable fired by a timer.

    Repeating jobs re-arm themselves after every run, including runs that
    raised. One-shot jobs go back to idle after firing once.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], object],
        interval_seconds: float,
        repeat: bool = True,
        timer_factory: Callable = threading.Timer,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.repeat = repeat
        self.timer_factory = timer_factory
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self.state = STATE_IDLE
        self.last_run: Optional[datetime] = None
        self.next_run: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.run_count = 0
        self._timer = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Arm the timer for the first run."""
        with self._lock:
            if self.state in (STATE_SCHEDULED, STATE_RUNNING):
                return
            self._arm()

    def stop(self) -> None:
        """Cancel the pending timer. A run already in progress completes."""
        with self._lock:
            self.state = STATE_STOPPED
            self.next_run = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self) -> None:
        self._timer = self.timer_factory(self.interval_seconds, self._fire)
        self._timer.daemon = True
        self._timer.start()
        self.next_run = self.clock() + timedelta(seconds=self.interval_seconds)
        self.state = STATE_SCHEDULED

    def _fire(self) -> None:
        with self._lock:
            if self.state == STATE_STOPPED:
                return
            self.state = STATE_RUNNING
            self.next_run = None

        self.logger.info(f"Scheduled job triggered: {self.name}")
        try:
            self.func()
            self.last_error = None
        except Exception as e:
            self.last_error = str(e)
            self.logger.error(
                f"Scheduled job {self.name} failed: {e}",
                extra={'job': self.name, 'error_type': type(e).__name__},
                exc_info=True
            )
        finally:
            self.last_run = self.clock()
            self.run_count += 1

        with self._lock:
            if self.state == STATE_STOPPED:
                return
            if self.repeat:
                self._arm()
            else:
                self._timer = None
                self.state = STATE_IDLE

    def status(self) -> dict:
        return {
            'name': self.name,
            'state': self.state,
            'running': self.state == STATE_RUNNING,
            'interval_seconds': self.interval_seconds,
            'repeat': self.repeat,
            'run_count': self.run_count,
            'last_run': to_iso(self.last_run),
            'next_run': to_iso(self.next_run),
            'last_error': self.last_error
        }


class SchedulerService:
    """Owns the periodic scrape, the one-shot initial scrape and the cleanup job."""

    def __init__(
        self,
        orchestrator: ScraperOrchestrator,
        synchronizer: EventSynchronizer,
        settings: Optional[Settings] = None,
        timer_factory: Callable = threading.Timer,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the scheduler.

        Args:
            orchestrator: ScraperOrchestrator run by the scrape jobs
            synchronizer: EventSynchronizer whose cleanup the cleanup job runs
            settings: Intervals and retention (default: Settings())
            timer_factory: threading.Timer compatible factory
            clock: Callable returning the current aware datetime
            logger: Logger to use (default: module logger)
        """
        self.orchestrator = orchestrator
        self.synchronizer = synchronizer
        self.settings = settings or Settings()
        self.timer_factory = timer_factory
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.jobs: Dict[str, RecurringJob] = {}

    def start_scraping_schedule(self, interval_hours: Optional[float] = None) -> RecurringJob:
        """
        Schedule the periodic scrape plus a one-shot scrape shortly after start.

        Args:
            interval_hours: Hours between runs (default: settings)
        """
        interval_hours = interval_hours or self.settings.scrape_interval_hours
        self.logger.info(f"Scheduling scraper to run every {interval_hours} hours")

        job = self._add_job(SCRAPER_JOB, self.orchestrator.run_all, interval_hours * 3600)
        self._add_job(
            INITIAL_SCRAPE_JOB,
            self.orchestrator.run_all,
            self.settings.initial_scrape_delay_seconds,
            repeat=False
        )
        return job

    def start_cleanup_schedule(self) -> RecurringJob:
        """Schedule the retention sweep."""
        interval_hours = self.settings.cleanup_interval_hours
        days_old = self.settings.cleanup_days_old
        self.logger.info(
            f"Scheduling cleanup every {interval_hours} hours for events older than {days_old} days"
        )
        return self._add_job(
            CLEANUP_JOB,
            lambda: self.synchronizer.cleanup(days_old),
            interval_hours * 3600
        )

    def start_all(self) -> None:
        """Start every job. Calling it again while jobs exist does nothing."""
        if self.jobs:
            self.logger.warning("Scheduler already started")
            return

        self.start_scraping_schedule()
        self.start_cleanup_schedule()
        self.logger.info("All scheduled jobs started")

    def stop_all(self) -> None:
        """Cancel every job and clear the registry."""
        for name, job in self.jobs.items():
            job.stop()
            self.logger.info(f"Stopped job: {name}")
        self.jobs = {}

    def get_status(self) -> List[dict]:
        return [job.status() for job in self.jobs.values()]

    def _add_job(
        self,
        name: str,
        func: Callable[[], object],
        interval_seconds: float,
        repeat: bool = True
    ) -> RecurringJob:
        if name in self.jobs:
            self.jobs[name].stop()

        job = RecurringJob(
            name,
            func,
            interval_seconds,
            repeat=repeat,
            timer_factory=self.timer_factory,
            clock=self.clock,
            logger=self.logger
        )
        self.jobs[name] = job
        job.start()
        return job
