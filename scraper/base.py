"""Shared behaviour for event source adapters."""
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional
from urllib.parse import urljoin

import requests

from processor.models import CandidateEvent, RawListing, utc_now
from scraper.normalize import DEFAULT_CATEGORY_KEYWORDS, clean_text

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) '
    'AppleWebKit/537.36 (KHTML, like Gecko) '
    'Chrome/120.0.0.0 Safari/537.36'
)


def element_text(element) -> str:
    """Whitespace-normalized text of a BeautifulSoup element, or ''."""
    if element is None:
        return ''
    return clean_text(element.get_text(' ', strip=True))


class BaseAdapter:
    """
    Base class for a single event source.

    Subclasses set ``name`` and ``BASE_URL`` and implement
    ``_extract_raw_events`` and ``normalize_event``.
    """

    name = ''
    BASE_URL = ''
    DEFAULT_DATE_OFFSET_DAYS = 7
    BASE_TAGS = ('sydney', 'event', 'australia')
    CATEGORY_KEYWORDS = DEFAULT_CATEGORY_KEYWORDS
    CURRENCY = 'AUD'
    STATE = 'NSW'
    COUNTRY = 'Australia'

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        retry_delay: float = 1,
        user_agent: str = DEFAULT_USER_AGENT,
        city: str = 'Sydney',
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the adapter.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Fetch attempts before giving up (default: 3)
            retry_delay: Base delay in seconds for exponential backoff
            user_agent: User-Agent header sent with every request
            city: City assigned to scraped venues
            session: requests session to reuse (default: a new session)
            clock: Callable returning the current aware datetime
            logger: Logger to use (default: module logger)
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.user_agent = user_agent
        self.city = city
        self.session = session or requests.Session()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.last_error: Optional[Exception] = None

    def scrape(self) -> List[CandidateEvent]:
        """
        Fetch the source listing page and return normalized candidates.

        A failed fetch is logged, kept in ``last_error`` and yields an empty
        batch. Records that fail normalization are dropped individually.

        Returns:
            List of CandidateEvent objects in page order
        """
        self.last_error = None
        self.logger.info(f"Starting scrape for {self.name}")

        try:
            html_content = self._fetch_html(self.BASE_URL)
        except requests.RequestException as e:
            self.last_error = e
            self.logger.error(
                f"Scrape failed for {self.name}: {e}",
                extra={'source': self.name, 'error_type': type(e).__name__}
            )
            return []

        raw_events = self._extract_raw_events(html_content)
        self.logger.info(f"Extracted {len(raw_events)} raw events from {self.name}")

        events = self._normalize_all(raw_events)

        self.logger.info(
            f"Completed scrape for {self.name}",
            extra={
                'source': self.name,
                'found': len(raw_events),
                'normalized': len(events)
            }
        )
        return events

    def _fetch_html(self, url: str) -> str:
        """
        Fetch a page with retry logic.

        Args:
            url: Page URL

        Returns:
            HTML content as string

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        headers = {
            'User-Agent': self.user_agent,
            'Accept-Language': 'en-AU,en;q=0.9',
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'
        }

        for attempt in range(self.max_retries):
            try:
                self.logger.info(
                    f"Fetching {self.name} listings (attempt {attempt + 1}/{self.max_retries})"
                )
                response = self.session.get(url, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = self.retry_delay * (2 ** attempt)
                    self.logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    self.logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _normalize_all(self, raw_events: List[RawListing]) -> List[CandidateEvent]:
        """Normalize and validate raw listings, dropping the ones that fail."""
        events = []

        for raw_event in raw_events:
            try:
                event = self.normalize_event(raw_event)
                event.validate()
                events.append(event)
            except Exception as e:
                self.logger.warning(
                    f"Failed to normalize {self.name} event '{raw_event.title}': {e}"
                )
                continue

        return events

    def _resolve_url(self, href: Optional[str]) -> str:
        """Absolute URL for a link found on the listing page."""
        if not href:
            return ''
        return urljoin(self.BASE_URL, href.strip())

    def _extract_raw_events(self, html_content: str) -> List[RawListing]:
        raise NotImplementedError

    def normalize_event(self, raw_event: RawListing) -> CandidateEvent:
        raise NotImplementedError

    def extract_event_id(self, url: str) -> str:
        """Source-specific identifier derived from a listing URL."""
        return url.rstrip('/').split('/')[-1].split('?')[0] or url
