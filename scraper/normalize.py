"""Shared normalization of scraped listing text."""
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import dateparser

from processor.models import CATEGORY_OTHER, Price, Venue, utc_now

MONTH_RE = re.compile(
    r'\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?'
    r'|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b',
    re.IGNORECASE
)
DAY_RE = re.compile(r'\b(\d{1,2})(?:st|nd|rd|th)?\b', re.IGNORECASE)
MONTHS = ('jan', 'feb', 'mar', 'apr', 'may', 'jun',
          'jul', 'aug', 'sep', 'oct', 'nov', 'dec')

LOCATION_SEPARATORS = re.compile(r'[•·,|]')
PRICE_NUMBER_RE = re.compile(r'\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?')

TBA_VENUE_NAME = 'TBA'

# Order matters: the first category with a matching keyword wins.
DEFAULT_CATEGORY_KEYWORDS: Dict[str, Sequence[str]] = {
    'Music': ('concert', 'music', 'band', 'dj', 'festival', 'gig', 'live music', 'performance'),
    'Arts & Culture': ('art', 'gallery', 'museum', 'theatre', 'theater', 'culture', 'exhibition', 'show'),
    'Food & Drink': ('food', 'wine', 'beer', 'dining', 'restaurant', 'tasting', 'cooking', 'chef'),
    'Sports & Fitness': ('sport', 'fitness', 'yoga', 'run', 'marathon', 'gym', 'workout', 'training'),
    'Business & Professional': ('business', 'networking', 'conference', 'seminar', 'workshop',
                                'professional', 'career'),
    'Community': ('community', 'meetup', 'social', 'charity', 'volunteer', 'fundraiser'),
}

DEFAULT_TAG_KEYWORDS = (
    'music', 'art', 'food', 'sport', 'tech', 'business',
    'family', 'outdoor', 'indoor', 'free', 'weekend',
)


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace runs and trim."""
    return ' '.join((text or '').split())


def parse_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a listing date, preferring upcoming dates.

    Strategies, in order:
    1. ISO-8601, accepted only if it lies in the future
    2. Month name plus day number in the current year, rolled to next
       year if that day has already passed
    3. Generic parsing with the same rollover

    Args:
        text: Raw date text from the listing
        now: Reference time (default: now)

    Returns:
        Aware UTC datetime or None if every strategy fails
    """
    text = clean_text(text)
    if not text:
        return None

    now = now or utc_now()

    if 'T' in text or '-' in text:
        parsed = _parse_iso(text)
        if parsed and parsed > now:
            return parsed

    parsed = _parse_month_day(text, now)
    if parsed:
        return parsed

    return _parse_generic(text, now)


def _parse_iso(text: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_month_day(text: str, now: datetime) -> Optional[datetime]:
    month_match = MONTH_RE.search(text)
    if not month_match:
        return None
    day_match = DAY_RE.search(text)
    if not day_match:
        return None

    month = MONTHS.index(month_match.group(1)[:3].lower()) + 1
    day = int(day_match.group(1))

    try:
        parsed = datetime(now.year, month, day, tzinfo=timezone.utc)
        if parsed.date() < now.date():
            parsed = parsed.replace(year=now.year + 1)
    except ValueError:
        return None
    return parsed


def _parse_generic(text: str, now: datetime) -> Optional[datetime]:
    parsed = dateparser.parse(
        text,
        languages=['en'],
        settings={
            'TIMEZONE': 'UTC',
            'TO_TIMEZONE': 'UTC',
            'RETURN_AS_TIMEZONE_AWARE': True,
            'RELATIVE_BASE': now.replace(tzinfo=None),
        }
    )
    if parsed is None:
        return None

    if parsed < now:
        try:
            parsed = parsed.replace(year=now.year + 1)
        except ValueError:
            return None
    return parsed


def default_start_date(offset_days: int, now: Optional[datetime] = None) -> datetime:
    """Fallback start date: midnight UTC, offset_days from now."""
    now = now or utc_now()
    target = now + timedelta(days=offset_days)
    return target.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_location(
    text: Optional[str],
    city: str = 'Sydney',
    state: str = 'NSW',
    country: str = 'Australia'
) -> Venue:
    """
    Split free-text location into venue name and address.

    Args:
        text: Raw location text (e.g. "The Basement • 7 Macquarie Pl, Sydney")
        city: City assigned to the venue
        state: State assigned to the venue
        country: Country assigned to the venue

    Returns:
        Venue; unusable text yields the TBA venue
    """
    cleaned = clean_text(text)
    parts = [
        part.strip() for part in LOCATION_SEPARATORS.split(cleaned)
        if part.strip()
    ]

    if len(cleaned) < 2 or not parts:
        return Venue(name=TBA_VENUE_NAME, address='', city=city, state=state, country=country)

    return Venue(
        name=parts[0],
        address=', '.join(parts[1:]),
        city=city,
        state=state,
        country=country
    )


def parse_price(text: Optional[str], currency: str = 'AUD') -> Price:
    """
    Parse a price label into a range.

    "Free" anywhere in the text means a free event; otherwise every number
    contributes to the min/max range. No numbers gives a zero price that is
    not marked free.
    """
    text = clean_text(text)

    if 'free' in text.lower():
        return Price(min=0.0, max=0.0, currency=currency, is_free=True)

    numbers = PRICE_NUMBER_RE.findall(text)
    if not numbers:
        return Price(min=0.0, max=0.0, currency=currency, is_free=False)

    prices = [float(number.replace(',', '')) for number in numbers]
    return Price(min=min(prices), max=max(prices), currency=currency, is_free=False)


def detect_category(
    text: Optional[str],
    keywords: Dict[str, Sequence[str]] = DEFAULT_CATEGORY_KEYWORDS
) -> str:
    """Return the first category whose keywords appear in the text."""
    lower_text = (text or '').lower()

    for category, words in keywords.items():
        if any(word in lower_text for word in words):
            return category

    return CATEGORY_OTHER


def extract_tags(
    text: Optional[str],
    base_tags: Iterable[str],
    tag_keywords: Iterable[str] = DEFAULT_TAG_KEYWORDS
) -> List[str]:
    """Base tags followed by every tag keyword found in the text, deduplicated."""
    lower_text = (text or '').lower()
    tags = list(base_tags) + [tag for tag in tag_keywords if tag in lower_text]
    return list(dict.fromkeys(tags))
