import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Union

_ISO_DATE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:T(\d{2}):(\d{2})(?::(\d{2})(?:\.(\d{1,6}))?)?(Z|[+-]\d{2}:?\d{2})?)?$"
)


def _parse_offset(tz: str) -> timezone:
    if tz == "Z":
        return timezone.utc
    sign = -1 if tz[0] == "-" else 1
    digits = tz[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(sign * delta)


def parse_iso_date(value: str) -> Union[date, datetime, None]:
    """Parse an ISO-8601 date or date-time string, or return None if it isn't one."""
    m = _ISO_DATE.match(value)
    if m is None:
        return None
    year, month, day, hour, minute, second, fraction, tz = m.groups()
    try:
        if hour is None:
            return date(int(year), int(month), int(day))
        micro = int(fraction.ljust(6, "0")) if fraction else 0
        return datetime(
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second or 0),
            micro,
            tzinfo=_parse_offset(tz) if tz else None,
        )
    except ValueError:
        # shaped like a date but not a real one (e.g. 2024-02-30)
        return None


def transform_dates(obj: Any, enabled: bool = True) -> Any:
    if not enabled:
        return obj
    if isinstance(obj, str):
        parsed = parse_iso_date(obj)
        return obj if parsed is None else parsed
    if isinstance(obj, list):
        return [transform_dates(item) for item in obj]
    if isinstance(obj, dict):
        return {k: transform_dates(v) for k, v in obj.items()}
    return obj
