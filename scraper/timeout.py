"""TimeOut Sydney adapter."""
from typing import List

from bs4 import BeautifulSoup

from processor.models import CandidateEvent, EventSource, RawListing, Venue
from scraper.base import BaseAdapter, element_text
from scraper.normalize import (
    default_start_date,
    detect_category,
    extract_tags,
    parse_date,
    parse_location,
    parse_price,
)


class TimeOutAdapter(BaseAdapter):
    """
    Adapter for TimeOut's "things to do in Sydney this week" article.

    TimeOut rarely prints exact dates, so most listings fall back to the
    default start date a few days out.
    """

    name = 'timeout'
    BASE_URL = 'https://www.timeout.com/sydney/things-to-do/things-to-do-in-sydney-this-week'
    DEFAULT_DATE_OFFSET_DAYS = 3
    BASE_TAGS = ('timeout', 'sydney', 'featured')
    CATEGORY_KEYWORDS = {
        'Food & Drink': ('restaurant', 'bar', 'food', 'drink', 'dining', 'cafe'),
        'Arts & Culture': ('art', 'museum', 'gallery', 'theatre', 'culture'),
        'Music': ('concert', 'music', 'band', 'gig', 'festival'),
        'Sports & Fitness': ('sport', 'fitness', 'run', 'outdoor'),
    }

    CARD_SELECTOR = '.event-card, .article-card, [class*="event"]'

    def _extract_raw_events(self, html_content: str) -> List[RawListing]:
        soup = BeautifulSoup(html_content, 'html.parser')
        listings = {}

        for card in soup.select(self.CARD_SELECTOR):
            # Wrappers around several cards also match; keep the innermost.
            if card.select_one(self.CARD_SELECTOR) is not None:
                continue

            try:
                title = element_text(card.select_one('h3, h2, .title, [class*="title"]'))
                link = card.find('a', href=True)
                url = self._resolve_url(link['href']) if link else ''

                if not title or not url or url in listings:
                    continue

                date_element = card.select_one('time, [class*="date"]')
                date_text = ''
                if date_element is not None:
                    date_text = (date_element.get('datetime') or '').strip() or element_text(date_element)

                image = card.find('img')
                listings[url] = RawListing(
                    title=title,
                    url=url,
                    date_text=date_text,
                    location_text=element_text(card.select_one('[class*="location"], [class*="venue"]')),
                    description=element_text(card.select_one('p, .description, [class*="description"]')),
                    image_url=(image.get('src') or '') if image else '',
                    price_text=element_text(card.select_one('[class*="price"]'))
                )
            except Exception as e:
                self.logger.warning(f"Failed to parse TimeOut card: {e}")
                continue

        return list(listings.values())

    def normalize_event(self, raw_event: RawListing) -> CandidateEvent:
        now = self.clock()
        start_date = parse_date(raw_event.date_text, now)
        if start_date is None:
            start_date = default_start_date(self.DEFAULT_DATE_OFFSET_DAYS, now)

        if raw_event.location_text:
            venue = parse_location(
                raw_event.location_text,
                city=self.city,
                state=self.STATE,
                country=self.COUNTRY
            )
        else:
            venue = Venue(
                name='Various Locations',
                address=self.city,
                city=self.city,
                state=self.STATE,
                country=self.COUNTRY
            )

        text = f"{raw_event.title} {raw_event.description}"

        return CandidateEvent(
            title=raw_event.title,
            description=raw_event.description or f"Check TimeOut {self.city} for full details",
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
