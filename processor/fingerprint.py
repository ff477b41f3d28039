"""Content fingerprinting for change detection."""
import hashlib
from datetime import datetime
from typing import Any

from processor.models import to_iso

SEPARATOR = '|'


def canonical_value(value: Any) -> str:
    """
    Render a field value as a stable string.

    None becomes an empty string, datetimes use the canonical ISO form and
    whole floats drop their fractional part so 25 and 25.0 compare equal.

    Args:
        value: Field value of any supported type

    Returns:
        String form of the value
    """
    if value is None:
        return ''
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def generate_content_hash(event) -> str:
    """
    Generate a SHA256 hash over the content-bearing fields of an event.

    Only title, start date, venue name and address, description and the
    price range contribute; image, tags, category and scrape metadata do not.

    Args:
        event: CandidateEvent or PersistedEvent

    Returns:
        Hex digest of the normalized content
    """
    content = SEPARATOR.join([
        canonical_value(event.title),
        canonical_value(event.start_date),
        canonical_value(event.venue.name if event.venue else None),
        canonical_value(event.venue.address if event.venue else None),
        canonical_value(event.description),
        canonical_value(event.price.min if event.price else None),
        canonical_value(event.price.max if event.price else None),
    ]).lower().strip()

    return hashlib.sha256(content.encode('utf-8')).hexdigest()
