"""Small formatting helpers used by the API, exports and storage."""

import secrets
from datetime import datetime

from docscan.utils.logger import get_logger

logger = get_logger(__name__)

ID_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
NAME_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"


def random_name(length: int, chars: str = NAME_ALPHABET) -> str:
    """Generate a random string drawn from ``chars``.

    Args:
        length: Desired length of the string.
        chars: Alphabet to draw characters from.

    Returns:
        Random string of the requested length.
    """
    if length < 0:
        raise ValueError("length must be non-negative")
    if not chars:
        raise ValueError("chars must not be empty")
    return "".join(secrets.choice(chars) for _ in range(length))


def new_record_id() -> str:
    """Return a 20-character auto id for a stored record."""
    return random_name(20, ID_ALPHABET)


def format_date(value: datetime | str | int | float | None) -> str:
    """Format a timestamp for display, e.g. ``Jan 5, 2024, 03:04 PM``.

    Accepts datetimes, ISO strings and epoch seconds. Returns ``N/A``
    for empty input and ``Invalid Date`` for anything unparseable.
    """
    if value is None or value == "":
        return "N/A"
    try:
        if isinstance(value, datetime):
            moment = value
        elif isinstance(value, (int, float)):
            moment = datetime.fromtimestamp(value)
        else:
            moment = datetime.fromisoformat(str(value))
    except (ValueError, OverflowError, OSError) as exc:
        logger.debug("Could not format date %r: %s", value, exc)
        return "Invalid Date"
    return f"{moment.strftime('%b')} {moment.day}, {moment.year}, {moment.strftime('%I:%M %p')}"
