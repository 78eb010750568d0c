from datetime import datetime, UTC
from errors import ValidationError, InvalidIdentifierError

def parse_date(date_str: str, field: str = "date") -> datetime:
    """Parse a date string into a naive UTC datetime."""
    if not isinstance(date_str, str) or not date_str.strip():
        raise ValidationError(field, f"Invalid date format for {field}")
    value = date_str.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.strptime(value, "%Y-%m-%d %H:%M")
        except ValueError:
            raise ValidationError(field, f"Invalid date format for {field}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed

def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)

def to_storage(dt: datetime) -> str:
    """Serialize a datetime so that string order equals time order."""
    return dt.isoformat(timespec="seconds")

def format_day(value) -> str:
    """Return the YYYY-MM-DD part of a stored date or datetime."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value)[:10]

def parse_number(value) -> float | None:
    """Lenient float parsing; anything unparseable counts as absent."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number

def parse_int(value) -> int | None:
    """Lenient int parsing; numeric strings such as "2.5" are truncated, anything else counts as absent."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        number = parse_number(value)
        return int(number) if number is not None else None

# Range of a SQLite INTEGER
INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1

def fits_int64(value: int) -> bool:
    return INT64_MIN <= value <= INT64_MAX

def parse_identifier(value, name: str = "eventId") -> int:
    """Strict int parsing for path identifiers."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidIdentifierError(f"Invalid {name}")
