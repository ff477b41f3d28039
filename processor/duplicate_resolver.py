"""Matching of scraped candidates against stored events."""
import logging
from datetime import timedelta
from typing import Optional

from rapidfuzz import fuzz

from processor.models import CandidateEvent, PersistedEvent


def title_similarity(a: str, b: str) -> float:
    """Normalized similarity of two titles in [0, 1], case-insensitive."""
    return fuzz.ratio((a or '').lower(), (b or '').lower()) / 100.0


class DuplicateResolver:
    """
    Find the stored event that represents the same real-world event.

    An exact source URL match wins outright. Otherwise events in the same
    city starting within the date window are compared by title, and the
    best one is accepted if its score exceeds the threshold.
    """

    SIMILARITY_THRESHOLD = 0.8
    DATE_WINDOW = timedelta(days=1)

    def __init__(
        self,
        store,
        default_city: str = 'Sydney',
        threshold: float = SIMILARITY_THRESHOLD,
        date_window: timedelta = DATE_WINDOW,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.default_city = default_city
        self.threshold = threshold
        self.date_window = date_window
        self.logger = logger or logging.getLogger(__name__)

    def resolve(self, candidate: CandidateEvent) -> Optional[PersistedEvent]:
        """
        Resolve a candidate to an existing event.

        Args:
            candidate: Incoming CandidateEvent

        Returns:
            Matching PersistedEvent or None if the event is new
        """
        existing = self.store.find_by_url(candidate.source.url)
        if existing:
            return existing

        return self.find_similar_event(candidate)

    def find_similar_event(self, candidate: CandidateEvent) -> Optional[PersistedEvent]:
        """
        Fuzzy match on date window, city and title similarity.

        Ties keep the first event in store order (start date, first
        sighting, key).
        """
        city = (candidate.venue.city if candidate.venue else None) or self.default_city
        matches = self.store.find_fuzzy_candidates(
            candidate.start_date - self.date_window,
            candidate.start_date + self.date_window,
            city
        )
        if not matches:
            return None

        best_match = None
        best_score = -1.0
        for event in matches:
            score = title_similarity(candidate.title, event.title)
            if score > best_score:
                best_match, best_score = event, score

        if best_score > self.threshold:
            self.logger.info(
                "Found similar event via fuzzy matching",
                extra={
                    'original': best_match.title,
                    'scraped': candidate.title,
                    'similarity': round(best_score, 3)
                }
            )
            return best_match

        return None
