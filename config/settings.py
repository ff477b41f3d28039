"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from scraper.base import DEFAULT_USER_AGENT


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Settings:
    """Configuration for the sync engine."""
    table_name: str = 'sydney-events'
    region_name: str = 'ap-southeast-2'
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    max_retries: int = 3
    user_agent: str = DEFAULT_USER_AGENT
    scrape_interval_hours: float = 4
    cleanup_interval_hours: float = 24
    cleanup_days_old: int = 30
    initial_scrape_delay_seconds: float = 5
    default_city: str = 'Sydney'
    auto_scrape: bool = True
    run_lock_seconds: int = 900

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        return cls(
            table_name=env.get('TABLE_NAME', 'sydney-events'),
            region_name=env.get('AWS_REGION', 'ap-southeast-2'),
            log_level=env.get('LOG_LEVEL', 'INFO'),
            timeout_seconds=int(env.get('TIMEOUT_SECONDS', '30')),
            max_retries=int(env.get('MAX_RETRIES', '3')),
            user_agent=env.get('USER_AGENT', DEFAULT_USER_AGENT),
            scrape_interval_hours=float(env.get('SCRAPE_INTERVAL_HOURS', '4')),
            cleanup_interval_hours=float(env.get('CLEANUP_INTERVAL_HOURS', '24')),
            cleanup_days_old=int(env.get('CLEANUP_DAYS_OLD', '30')),
            initial_scrape_delay_seconds=float(env.get('INITIAL_SCRAPE_DELAY_SECONDS', '5')),
            default_city=env.get('DEFAULT_CITY', 'Sydney'),
            auto_scrape=_env_bool(env.get('AUTO_SCRAPE', 'true')),
            run_lock_seconds=int(env.get('RUN_LOCK_SECONDS', '900'))
        )
