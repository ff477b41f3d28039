"""Meetup adapter for Sydney events."""
import re
from typing import List

from bs4 import BeautifulSoup

from processor.models import CandidateEvent, EventSource, Price, RawListing
from scraper.base import BaseAdapter, element_text
from scraper.normalize import (
    default_start_date,
    extract_tags,
    parse_date,
    parse_location,
)


class MeetupAdapter(BaseAdapter):
    """Adapter for Meetup's Sydney event search."""

    name = 'meetup'
    BASE_URL = 'https://www.meetup.com/find/?location=au--sydney&source=EVENTS'
    DEFAULT_DATE_OFFSET_DAYS = 7
    BASE_TAGS = ('meetup', 'community', 'sydney')

    EVENT_ID_RE = re.compile(r'/events/(\d+)')

    def _extract_raw_events(self, html_content: str) -> List[RawListing]:
        soup = BeautifulSoup(html_content, 'html.parser')
        events = []

        for card in soup.select('[data-testid="event-card"]'):
            try:
                link = card.select_one('a[href*="/events/"]')
                title = element_text(card.select_one('[data-testid="event-title"]'))
                url = self._resolve_url(link.get('href')) if link else ''

                if not title or not url:
                    continue

                date_element = card.select_one('[data-testid="event-time-start"]')
                date_text = ''
                if date_element is not None:
                    date_text = (date_element.get('datetime') or '').strip() or element_text(date_element)

                image = card.find('img')
                events.append(RawListing(
                    title=title,
                    url=url,
                    date_text=date_text,
                    location_text=element_text(card.select_one('[data-testid="event-location"]')),
                    image_url=(image.get('src') or '') if image else '',
                    group_name=element_text(card.select_one('[data-testid="group-name"]')),
                    attendees_text=element_text(card.select_one('[data-testid="event-attendees"]'))
                ))
            except Exception as e:
                self.logger.warning(f"Failed to parse Meetup card: {e}")
                continue

        return events

    def normalize_event(self, raw_event: RawListing) -> CandidateEvent:
        now = self.clock()
        start_date = parse_date(raw_event.date_text, now)
        if start_date is None:
            start_date = default_start_date(self.DEFAULT_DATE_OFFSET_DAYS, now)

        description = (
            f"Hosted by {raw_event.group_name or 'Meetup Group'}. "
            f"{raw_event.attendees_text}"
        ).strip()

        return CandidateEvent(
            title=raw_event.title,
            description=description,
            start_date=start_date,
            end_date=None,
            venue=parse_location(
                raw_event.location_text,
                city=self.city,
                state=self.STATE,
                country=self.COUNTRY
            ),
            category='Community',
            tags=extract_tags(f"{raw_event.title} {description}", self.BASE_TAGS),
            image_url=raw_event.image_url or '',
            price=Price(min=0.0, max=0.0, currency=self.CURRENCY, is_free=True),
            source=EventSource(
                name=self.name,
                url=raw_event.url,
                external_id=self.extract_event_id(raw_event.url)
            )
        )

    def extract_event_id(self, url: str) -> str:
        match = self.EVENT_ID_RE.search(url)
        return match.group(1) if match else url
