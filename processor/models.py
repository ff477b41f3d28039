"""Data models for event discovery and synchronization."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


STATUS_NEW = 'new'
STATUS_UPDATED = 'updated'
STATUS_INACTIVE = 'inactive'
STATUS_IMPORTED = 'imported'

EVENT_STATUSES = (STATUS_NEW, STATUS_UPDATED, STATUS_INACTIVE, STATUS_IMPORTED)

ACTION_CREATED = 'created'
ACTION_UPDATED = 'updated'
ACTION_UNCHANGED = 'unchanged'

CATEGORY_OTHER = 'Other'

EVENT_CATEGORIES = (
    'Music',
    'Arts & Culture',
    'Sports & Fitness',
    'Food & Drink',
    'Community',
    'Business & Professional',
    'Film & Media',
    'Charity & Causes',
    CATEGORY_OTHER,
)

ISO_FORMAT = '%Y-%m-%dT%H:%M:%SZ'


class NormalizationError(ValueError):
    """Raised when a scraped record cannot become a valid CandidateEvent."""


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """
    Render a datetime in the canonical storage form (UTC, second precision).

    Naive datetimes are assumed to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse the canonical storage form back into an aware datetime."""
    if not value:
        return None
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)


@dataclass
class RawListing:
    """Raw listing text pulled from a source page, before normalization."""
    title: str
    url: str
    date_text: str = ''
    location_text: str = ''
    description: str = ''
    image_url: str = ''
    price_text: str = ''
    group_name: str = ''
    attendees_text: str = ''


@dataclass
class Venue:
    """Where an event takes place."""
    name: str = 'TBA'
    address: str = ''
    city: str = 'Sydney'
    state: str = 'NSW'
    country: str = 'Australia'
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class Price:
    """Ticket price range."""
    min: float = 0.0
    max: float = 0.0
    currency: str = 'AUD'
    is_free: bool = False


@dataclass
class EventSource:
    """Identity of a listing at its origin."""
    name: str
    url: str
    external_id: str


@dataclass
class CandidateEvent:
    """Normalized event emitted by an adapter; never persisted directly."""
    title: str
    start_date: datetime
    source: EventSource
    description: str = ''
    end_date: Optional[datetime] = None
    venue: Venue = field(default_factory=Venue)
    category: str = CATEGORY_OTHER
    tags: List[str] = field(default_factory=list)
    image_url: str = ''
    price: Price = field(default_factory=Price)

    def validate(self) -> None:
        """
        Check the fields the synchronizer relies on.

        Raises:
            NormalizationError: If a required field is missing or invalid
        """
        if not self.title or not self.title.strip():
            raise NormalizationError("Event missing required field: title")
        if not isinstance(self.start_date, datetime):
            raise NormalizationError(
                f"Event '{self.title}' has no valid start_date"
            )
        if not self.source.url:
            raise NormalizationError(
                f"Event '{self.title}' missing required field: source.url"
            )
        if not self.source.external_id:
            raise NormalizationError(
                f"Event '{self.title}' missing required field: source.external_id"
            )
        if not self.venue.city:
            raise NormalizationError(
                f"Event '{self.title}' missing required field: venue.city"
            )
        if self.category not in EVENT_CATEGORIES:
            raise NormalizationError(
                f"Event '{self.title}' has unknown category: {self.category}"
            )


@dataclass
class ChangeRecord:
    """A single field-level change; never rewritten once logged."""
    field: str
    old_value: str
    new_value: str
    changed_at: datetime


@dataclass
class ImportInfo:
    """Dashboard import state. Written by the dashboard, only read here."""
    status: bool = False
    by: Optional[str] = None
    at: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass
class PersistedEvent:
    """Canonical event record held in the store."""
    event_id: str
    title: str
    start_date: datetime
    source: EventSource
    content_hash: str
    first_scraped: datetime
    last_scraped: datetime
    description: str = ''
    end_date: Optional[datetime] = None
    venue: Venue = field(default_factory=Venue)
    category: str = CATEGORY_OTHER
    tags: List[str] = field(default_factory=list)
    image_url: str = ''
    price: Price = field(default_factory=Price)
    status: str = STATUS_NEW
    change_log: List[ChangeRecord] = field(default_factory=list)
    scraped_count: int = 1
    imported: ImportInfo = field(default_factory=ImportInfo)
    click_count: int = 0
    email_capture_count: int = 0

    @staticmethod
    def make_event_id(source_name: str, external_id: str) -> str:
        """Table key for the (source name, external id) pair."""
        return f"{source_name}#{external_id}"

    @classmethod
    def from_candidate(
        cls,
        candidate: CandidateEvent,
        source_name: str,
        content_hash: str,
        now: datetime
    ) -> 'PersistedEvent':
        """Build the first-sighting record for a candidate."""
        return cls(
            event_id=cls.make_event_id(source_name, candidate.source.external_id),
            title=candidate.title,
            description=candidate.description,
            start_date=candidate.start_date,
            end_date=candidate.end_date,
            venue=candidate.venue,
            category=candidate.category,
            tags=list(candidate.tags),
            image_url=candidate.image_url,
            price=candidate.price,
            source=EventSource(
                name=source_name,
                url=candidate.source.url,
                external_id=candidate.source.external_id
            ),
            status=STATUS_NEW,
            content_hash=content_hash,
            first_scraped=now,
            last_scraped=now,
            scraped_count=1
        )

    @property
    def is_imported(self) -> bool:
        return self.imported.status or self.status == STATUS_IMPORTED

    def apply_candidate(self, candidate: CandidateEvent, content_hash: str) -> None:
        """Overwrite content fields from a fresher sighting. Source is kept."""
        self.title = candidate.title
        self.description = candidate.description
        self.start_date = candidate.start_date
        self.end_date = candidate.end_date
        self.venue = candidate.venue
        self.category = candidate.category
        self.tags = list(candidate.tags)
        self.image_url = candidate.image_url
        self.price = candidate.price
        self.content_hash = content_hash

    def is_past(self, now: Optional[datetime] = None) -> bool:
        return self.start_date < (now or utc_now())


@dataclass
class ProcessResult:
    """Outcome of reconciling one candidate."""
    action: str
    event: PersistedEvent
    changes: List[ChangeRecord] = field(default_factory=list)


@dataclass
class SyncStats:
    """Aggregate statistics of an orchestrator run."""
    total_scraped: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    inactive: int = 0
    errors: int = 0

    def record(self, action: str) -> None:
        """Fold a synchronizer action into the counters."""
        if action == ACTION_CREATED:
            self.created += 1
        elif action == ACTION_UPDATED:
            self.updated += 1
        elif action == ACTION_UNCHANGED:
            self.unchanged += 1

    def merge(self, other: 'SyncStats') -> None:
        self.total_scraped += other.total_scraped
        self.created += other.created
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.inactive += other.inactive
        self.errors += other.errors

    def to_dict(self) -> dict:
        return {
            'total_scraped': self.total_scraped,
            'created': self.created,
            'updated': self.updated,
            'unchanged': self.unchanged,
            'inactive': self.inactive,
            'errors': self.errors
        }
