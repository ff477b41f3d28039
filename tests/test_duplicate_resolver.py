"""Unit tests for duplicate resolution."""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from processor.duplicate_resolver import DuplicateResolver, title_similarity
from processor.fingerprint import generate_content_hash
from processor.models import PersistedEvent

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
START = datetime(2025, 3, 14, 19, 0, tzinfo=timezone.utc)


def _stored(store, candidate):
    event = PersistedEvent.from_candidate(
        candidate, candidate.source.name, generate_content_hash(candidate), NOW
    )
    store.create_event(event)
    return event


class TestTitleSimilarity:
    """Test cases for title_similarity."""

    def test_identical_titles(self):
        assert title_similarity('Jazz Night', 'jazz night') == 1.0

    def test_similar_titles_exceed_threshold(self):
        assert title_similarity('Sydney Jazz Fest', 'Sydney Jazz Festival') > 0.8

    def test_different_titles_stay_below_threshold(self):
        assert title_similarity('Sydney Food Market', 'Sydney Jazz Festival') <= 0.8

    def test_empty_titles(self):
        assert title_similarity('', 'Jazz') == 0.0


class TestDuplicateResolver:
    """Test cases for DuplicateResolver."""

    def test_exact_url_match(self, store, candidate_factory):
        stored = _stored(store, candidate_factory())
        resolver = DuplicateResolver(store)

        # Same URL wins even when the title is completely different
        match = resolver.resolve(candidate_factory(title='Completely different'))

        assert match.event_id == stored.event_id

    def test_fuzzy_match_across_sources(self, store, candidate_factory):
        stored = _stored(store, candidate_factory(title='Sydney Jazz Fest', start_date=START))
        resolver = DuplicateResolver(store)

        match = resolver.resolve(candidate_factory(
            title='Sydney Jazz Festival',
            source_name='meetup',
            external_id='555',
            url='https://www.meetup.com/jazz/events/555/',
            start_date=START + timedelta(hours=12)
        ))

        assert match is not None
        assert match.event_id == stored.event_id

    def test_fuzzy_non_match(self, store, candidate_factory):
        _stored(store, candidate_factory(title='Sydney Jazz Festival', start_date=START))
        resolver = DuplicateResolver(store)

        match = resolver.resolve(candidate_factory(
            title='Sydney Food Market',
            external_id='market',
            url='https://www.eventbrite.com.au/e/market',
            start_date=START
        ))

        assert match is None

    def test_fuzzy_match_outside_date_window(self, store, candidate_factory):
        _stored(store, candidate_factory(title='Sydney Jazz Fest', start_date=START))
        resolver = DuplicateResolver(store)

        match = resolver.resolve(candidate_factory(
            title='Sydney Jazz Festival',
            external_id='later',
            url='https://www.eventbrite.com.au/e/later',
            start_date=START + timedelta(days=2)
        ))

        assert match is None

    def test_fuzzy_match_requires_same_city(self, store, candidate_factory):
        _stored(store, candidate_factory(title='Sydney Jazz Fest', start_date=START))
        resolver = DuplicateResolver(store)

        match = resolver.resolve(candidate_factory(
            title='Sydney Jazz Festival',
            external_id='mel',
            url='https://www.eventbrite.com.au/e/mel',
            start_date=START,
            city='Melbourne'
        ))

        assert match is None

    def test_best_score_wins_and_first_maximum_breaks_ties(self, candidate_factory):
        first = Mock(title='Harbour Lights')
        second = Mock(title='Harbour Lights')
        weaker = Mock(title='Harbour Light Show')
        store = Mock()
        store.find_by_url.return_value = None
        store.find_fuzzy_candidates.return_value = [weaker, first, second]

        resolver = DuplicateResolver(store)
        match = resolver.resolve(candidate_factory(title='Harbour Lights'))

        assert match is first

    def test_missing_city_uses_default(self, candidate_factory):
        store = Mock()
        store.find_by_url.return_value = None
        store.find_fuzzy_candidates.return_value = []
        candidate = candidate_factory(start_date=START)
        candidate.venue.city = ''

        DuplicateResolver(store, default_city='Sydney').resolve(candidate)

        store.find_fuzzy_candidates.assert_called_once_with(
            START - timedelta(days=1), START + timedelta(days=1), 'Sydney'
        )

    @pytest.mark.parametrize('threshold,expected', [(0.8, True), (0.95, False)])
    def test_threshold_is_exclusive(self, candidate_factory, threshold, expected):
        existing = Mock(title='Sydney Jazz Fest')
        store = Mock()
        store.find_by_url.return_value = None
        store.find_fuzzy_candidates.return_value = [existing]

        resolver = DuplicateResolver(store, threshold=threshold)
        match = resolver.resolve(candidate_factory(title='Sydney Jazz Festival'))

        assert (match is existing) is expected
