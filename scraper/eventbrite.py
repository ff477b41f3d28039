"""Eventbrite adapter for Sydney events."""
import re
from typing import List

from bs4 import BeautifulSoup

from processor.models import CandidateEvent, EventSource, RawListing
from scraper.base import BaseAdapter, element_text
from scraper.normalize import (
    default_start_date,
    detect_category,
    extract_tags,
    parse_date,
    parse_location,
    parse_price,
)


def _class_contains(fragment: str):
    return lambda css_class: bool(css_class) and fragment in css_class


class EventbriteAdapter(BaseAdapter):
    """Adapter for the Eventbrite Sydney discovery page."""

    name = 'eventbrite'
    BASE_URL = 'https://www.eventbrite.com.au/d/australia--sydney/events/'
    DEFAULT_DATE_OFFSET_DAYS = 7

    EVENT_ID_RE = re.compile(r'/e/([^/?#]+)')

    DATE_SELECTOR = '[datetime], time, [class*="date"], [class*="time"]'
    LOCATION_SELECTOR = '[class*="location"], [class*="venue"], [class*="address"]'
    PRICE_SELECTOR = '[class*="price"], [class*="cost"]'
    DESCRIPTION_SELECTOR = 'p, [class*="description"], [class*="summary"]'

    def _extract_raw_events(self, html_content: str) -> List[RawListing]:
        """
        Parse event cards from the discovery page.

        Every link to an event page (``/e/...``) is grouped by URL and the
        surrounding card provides the remaining fields.
        """
        soup = BeautifulSoup(html_content, 'html.parser')
        listings = {}

        for link in soup.select('a[href*="/e/"]'):
            url = self._resolve_url(link.get('href'))
            if not url or url in listings:
                continue

            try:
                card = self._find_card(link)
                title = (
                    element_text(link) or
                    (link.get('aria-label') or '').strip() or
                    element_text(card.find(['h1', 'h2', 'h3', 'h4']))
                )

                # Skip if title is too short or generic
                if not title or len(title) < 3 or title == 'Event':
                    continue

                image = card.find('img')
                listings[url] = RawListing(
                    title=title,
                    url=url,
                    date_text=self._find_date_text(card),
                    location_text=self._first_text(
                        card, self.LOCATION_SELECTOR,
                        lambda text: len(text) > 2 and 'Online' not in text
                    ),
                    description=self._first_text(
                        card, self.DESCRIPTION_SELECTOR,
                        lambda text: 10 < len(text) < 500
                    ),
                    image_url=(image.get('src') or image.get('data-src') or '') if image else '',
                    price_text=self._first_text(card, self.PRICE_SELECTOR, bool)
                )
            except Exception as e:
                self.logger.warning(f"Failed to parse Eventbrite card {url}: {e}")
                continue

        return list(listings.values())

    @staticmethod
    def _find_card(link):
        card = (
            link.find_parent('article') or
            link.find_parent(class_=_class_contains('card')) or
            link.find_parent('div', class_=_class_contains('event')) or
            link.find_parent('li')
        )
        if card is None and link.parent is not None:
            card = link.parent.parent
        return card or link

    def _find_date_text(self, card) -> str:
        for element in card.select(self.DATE_SELECTOR):
            if element.get('datetime'):
                return element['datetime'].strip()
            text = element_text(element)
            if len(text) > 3:
                return text
        return ''

    @staticmethod
    def _first_text(card, selector: str, accept) -> str:
        for element in card.select(selector):
            text = element_text(element)
            if text and accept(text):
                return text
        return ''

    def normalize_event(self, raw_event: RawListing) -> CandidateEvent:
        now = self.clock()
        start_date = parse_date(raw_event.date_text, now)
        if start_date is None:
            start_date = default_start_date(self.DEFAULT_DATE_OFFSET_DAYS, now)

        venue = parse_location(
            raw_event.location_text,
            city=self.city,
            state=self.STATE,
            country=self.COUNTRY
        )
        text = f"{raw_event.title} {raw_event.description}"

        return CandidateEvent(
            title=raw_event.title,
            description=(
                raw_event.description or
                f"Exciting event in {venue.city}. Check Eventbrite for full details."
            ),
            start_date=start_date,
            end_date=None,
            venue=venue,
            category=detect_category(text, self.CATEGORY_KEYWORDS),
            tags=extract_tags(text, self.BASE_TAGS),
            image_url=raw_event.image_url or '',
            price=parse_price(raw_event.price_text, self.CURRENCY),
            source=EventSource(
                name=self.name,
                url=raw_event.url,
                external_id=self.extract_event_id(raw_event.url)
            )
        )

    def extract_event_id(self, url: str) -> str:
        match = self.EVENT_ID_RE.search(url)
        if match:
            return match.group(1)
        return super().extract_event_id(url)
