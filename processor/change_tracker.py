"""Field-level diffing between a stored event and a fresh sighting."""
from datetime import datetime
from typing import Any, List, Optional

from processor.fingerprint import canonical_value
from processor.models import ChangeRecord, utc_now

TRACKED_FIELDS = (
    'title',
    'description',
    'start_date',
    'end_date',
    'venue.name',
    'venue.address',
    'image_url',
    'price.min',
    'price.max',
)


def get_field_value(obj: Any, path: str) -> Any:
    """Resolve a dotted attribute path, returning None on any missing link."""
    current = obj
    for part in path.split('.'):
        if current is None:
            return None
        current = getattr(current, part, None)
    return current


def detect_changes(
    existing,
    candidate,
    changed_at: Optional[datetime] = None
) -> List[ChangeRecord]:
    """
    Compare tracked fields and return one ChangeRecord per difference.

    Args:
        existing: Stored PersistedEvent
        candidate: Incoming CandidateEvent
        changed_at: Timestamp for the records (default: now)

    Returns:
        Change records in TRACKED_FIELDS order
    """
    changed_at = changed_at or utc_now()
    changes = []

    for field_name in TRACKED_FIELDS:
        old_value = canonical_value(get_field_value(existing, field_name))
        new_value = canonical_value(get_field_value(candidate, field_name))

        if old_value != new_value:
            changes.append(ChangeRecord(
                field=field_name,
                old_value=old_value,
                new_value=new_value,
                changed_at=changed_at
            ))

    return changes
