import logging
import math
from datetime import datetime, timezone
from stacks.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

USER_ID_MAX_LENGTH = 50

def utcnow() -> datetime:
    """Naive UTC now; every timestamp in the database is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_utc(value, field="date"):
    """Normalizes a datetime or ISO-8601 string to naive UTC.
    `None` passes through.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInputError(f"Malformed {field}: {value!r}")
    if not isinstance(value, datetime):
        raise InvalidInputError(f"Malformed {field}: {value!r}")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def parse_id(value, field="id") -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"Malformed {field}: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise InvalidInputError(f"Malformed {field}: {value!r}")
    if number < 1:
        raise InvalidInputError(f"Malformed {field}: {value!r}")
    return number

def parse_user_id(value) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"Malformed user id: {value!r}")
    value = value.strip()
    if len(value) > USER_ID_MAX_LENGTH:
        raise InvalidInputError(f"User id exceeds {USER_ID_MAX_LENGTH} characters.")
    return value

def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size else 0
