"""Unit tests for shared listing normalization."""
from datetime import datetime, timezone

import pytest

from scraper.normalize import (
    TBA_VENUE_NAME,
    clean_text,
    default_start_date,
    detect_category,
    extract_tags,
    parse_date,
    parse_location,
    parse_price,
)

NOW = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


class TestParseDate:
    """Test cases for parse_date."""

    def test_future_iso_date(self):
        assert parse_date('2025-03-14T19:00:00Z', NOW) == datetime(2025, 3, 14, 19, 0, tzinfo=timezone.utc)

    def test_iso_date_with_offset_is_converted_to_utc(self):
        parsed = parse_date('2025-03-14T19:00:00+11:00', NOW)
        assert parsed == datetime(2025, 3, 14, 8, 0, tzinfo=timezone.utc)

    def test_month_and_day_in_current_year(self):
        assert parse_date('Fri, Mar 14, 7:00 PM', NOW) == datetime(2025, 3, 14, tzinfo=timezone.utc)

    def test_full_month_name(self):
        assert parse_date('Saturday 12 April', NOW) == datetime(2025, 4, 12, tzinfo=timezone.utc)

    def test_past_month_day_rolls_to_next_year(self):
        assert parse_date('Jan 5', NOW) == datetime(2026, 1, 5, tzinfo=timezone.utc)

    def test_today_is_not_rolled(self):
        assert parse_date('March 1st', NOW) == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_month_inside_a_word_is_ignored(self):
        # "market" must not be read as March
        assert parse_date('Sydney market, 12 April', NOW) == datetime(2025, 4, 12, tzinfo=timezone.utc)

    def test_past_iso_date_falls_through(self):
        # Rejected as past, then parsed generically and rolled forward
        assert parse_date('2024-01-05', NOW) == datetime(2026, 1, 5, tzinfo=timezone.utc)

    @pytest.mark.parametrize('text', ['', None, '   '])
    def test_empty_text(self, text):
        assert parse_date(text, NOW) is None

    def test_unparseable_text(self):
        assert parse_date('Check website for dates', NOW) is None


class TestDefaultStartDate:
    """Test cases for default_start_date."""

    def test_offset_truncated_to_midnight(self):
        assert default_start_date(7, NOW) == datetime(2025, 3, 8, tzinfo=timezone.utc)
        assert default_start_date(3, NOW) == datetime(2025, 3, 4, tzinfo=timezone.utc)


class TestParseLocation:
    """Test cases for parse_location."""

    def test_name_and_address(self):
        venue = parse_location('The Basement • 7 Macquarie Pl, Sydney')

        assert venue.name == 'The Basement'
        assert venue.address == '7 Macquarie Pl, Sydney'
        assert venue.city == 'Sydney'
        assert venue.state == 'NSW'
        assert venue.country == 'Australia'

    def test_name_only(self):
        venue = parse_location('Sydney Opera House')
        assert venue.name == 'Sydney Opera House'
        assert venue.address == ''

    def test_pipe_separator(self):
        venue = parse_location('Carriageworks | 245 Wilson St | Eveleigh')
        assert venue.name == 'Carriageworks'
        assert venue.address == '245 Wilson St, Eveleigh'

    @pytest.mark.parametrize('text', ['', None, 'x', ' , | '])
    def test_unusable_text_gives_tba(self, text):
        venue = parse_location(text)
        assert venue.name == TBA_VENUE_NAME
        assert venue.city == 'Sydney'

    def test_custom_defaults(self):
        venue = parse_location('Federation Square', city='Melbourne', state='VIC')
        assert venue.city == 'Melbourne'
        assert venue.state == 'VIC'


class TestParsePrice:
    """Test cases for parse_price."""

    def test_free(self):
        price = parse_price('Free')
        assert price.is_free is True
        assert (price.min, price.max) == (0.0, 0.0)

    def test_single_price(self):
        price = parse_price('A$25.00')
        assert (price.min, price.max) == (25.0, 25.0)
        assert price.is_free is False
        assert price.currency == 'AUD'

    def test_range(self):
        price = parse_price('From $19.50 - $45')
        assert (price.min, price.max) == (19.5, 45.0)

    def test_thousands_separator(self):
        price = parse_price('$1,200')
        assert price.max == 1200.0

    def test_thousands_separator_with_cents(self):
        price = parse_price('$1,000.00')
        assert price.min == 1000.0
        assert price.max == 1000.0

    def test_decimal_range(self):
        price = parse_price('$12.50 - $1,250.75')
        assert price.min == 12.5
        assert price.max == 1250.75

    def test_no_numbers_is_not_free(self):
        price = parse_price('Check website')
        assert price.is_free is False
        assert (price.min, price.max) == (0.0, 0.0)

    def test_empty_text_is_not_free(self):
        assert parse_price('').is_free is False


class TestCategoryAndTags:
    """Test cases for detect_category and extract_tags."""

    def test_first_matching_category_wins(self):
        # "festival" (Music) comes before "food" (Food & Drink) in table order
        assert detect_category('Food and music festival') == 'Music'

    def test_food_category(self):
        assert detect_category('Wine tasting evening') == 'Food & Drink'

    def test_no_match_is_other(self):
        assert detect_category('Something unusual') == 'Other'

    def test_custom_table(self):
        table = {'Food & Drink': ('cafe',), 'Music': ('gig',)}
        assert detect_category('Cafe gig', table) == 'Food & Drink'

    def test_tags_start_with_base_tags(self):
        tags = extract_tags('Outdoor music for the family', ('sydney', 'event'))
        assert tags == ['sydney', 'event', 'music', 'family', 'outdoor']

    def test_tags_are_deduplicated(self):
        tags = extract_tags('Free music', ('music', 'sydney'))
        assert tags == ['music', 'sydney', 'free']


def test_clean_text():
    assert clean_text('  Jazz \n\t Night  ') == 'Jazz Night'
    assert clean_text(None) == ''
