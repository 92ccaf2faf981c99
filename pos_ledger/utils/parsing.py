"""Common parsing utility functions.

Stored documents carry dates as ISO strings (written by the web client) or
Firestore timestamps, and amounts as numbers or formatted strings.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

# Amounts are kept to the cent
AMOUNT_PRECISION = 2


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_date(date_value: Any) -> Optional[datetime]:
    """
    Parse a stored date into a naive UTC datetime.

    Args:
        date_value: ISO string, datetime, date or None

    Returns:
        datetime object or None if parsing fails
    """
    if date_value is None or date_value == "":
        return None

    if isinstance(date_value, datetime):
        return _to_naive_utc(date_value)

    if isinstance(date_value, date):
        return datetime.combine(date_value, datetime.min.time())

    if not isinstance(date_value, str):
        logger.warning(f"Unknown date type: {type(date_value)}, value: {date_value}")
        return None

    text = date_value.strip()

    # ISO 8601 as produced by Date.toISOString() ends with "Z"
    try:
        return _to_naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    date_formats = [
        '%Y-%m-%d',     # 2023-01-30
        '%d-%m-%Y',     # 30-01-2023
        '%d/%m/%Y',     # 30/01/2023
    ]

    for fmt in date_formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    logger.warning(f"Could not parse date string: {date_value}")
    return None


def format_date(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime the way the web client stores it."""
    if value is None:
        return None
    return _to_naive_utc(value).isoformat(timespec="milliseconds") + "Z"


def parse_amount(amount_value: Optional[Union[str, int, float]]) -> Optional[float]:
    """
    Parse an amount value into a float.

    Args:
        amount_value: Amount as string, int, or float

    Returns:
        float value or None if parsing fails
    """
    if amount_value is None:
        return None

    if isinstance(amount_value, bool):
        logger.warning(f"Refusing boolean amount: {amount_value}")
        return None

    if isinstance(amount_value, (int, float)):
        return float(amount_value)

    if isinstance(amount_value, str):
        # Strip currency labels, thousands separators and spaces ("12 500 FCFA")
        clean_amount = amount_value.replace(',', '.').replace(' ', '').replace(' ', '')
        clean_amount = ''.join(c for c in clean_amount if c.isdigit() or c in '.-')
        try:
            return float(clean_amount) if clean_amount else None
        except ValueError:
            logger.warning(f"Could not parse amount: {amount_value}")
            return None

    logger.warning(f"Unknown amount type: {type(amount_value)}, value: {amount_value}")
    return None


def round_amount(value: float) -> float:
    """Round to the cent, normalising negative zero."""
    rounded = round(float(value), AMOUNT_PRECISION)
    return rounded + 0.0
