"""Ordered list of the adapters the orchestrator runs."""
import logging
from typing import List, Optional

import requests

from config.settings import Settings
from scraper.base import BaseAdapter
from scraper.eventbrite import EventbriteAdapter
from scraper.meetup import MeetupAdapter
from scraper.timeout import TimeOutAdapter

ADAPTER_CLASSES = (EventbriteAdapter, MeetupAdapter, TimeOutAdapter)


def build_default_adapters(
    settings: Settings,
    session: Optional[requests.Session] = None,
    logger: Optional[logging.Logger] = None
) -> List[BaseAdapter]:
    """
    Instantiate every known adapter in registration order.

    Args:
        settings: Runtime settings (timeouts, retries, user agent, city)
        session: Shared requests session (default: one session for all)
        logger: Logger passed to each adapter

    Returns:
        List of adapters, run sequentially by the orchestrator
    """
    session = session or requests.Session()
    return [
        adapter_class(
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
            user_agent=settings.user_agent,
            city=settings.default_city,
            session=session,
            logger=logger
        )
        for adapter_class in ADAPTER_CLASSES
    ]
