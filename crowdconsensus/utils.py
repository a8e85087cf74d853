"""
Field-packing helpers shared by the records and the CSV interchange.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, Sequence

VALUE_SEPARATOR = "|"


def utcnow() -> datetime:
    """Current time, timezone-aware and truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def build_array_string(values: Iterable[str]) -> str:
    """
    Render values as a PostgreSQL text[] literal, e.g. ``{"a","b"}``.

    Backslashes and double quotes are escaped so the literal can be cast
    back to the same array.
    """
    escaped = (
        '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        for value in values
    )
    return "{" + ",".join(escaped) + "}"


def join_values(values: Sequence[str]) -> str:
    """Pack a multi-valued field into one text field."""
    return VALUE_SEPARATOR.join(values)


def split_values(text: str | None) -> tuple[str, ...]:
    """Unpack a multi-valued text field; empty or missing text gives ()."""
    if not text:
        return ()
    return tuple(text.split(VALUE_SEPARATOR))


def to_epoch_seconds(moment: datetime) -> int:
    """Serialize a timestamp as integer Unix seconds (naive means UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return math.floor(moment.timestamp())


def from_epoch_seconds(text: str | None) -> datetime:
    """Parse integer Unix seconds; empty text means now."""
    if text is None or not text.strip():
        return utcnow()
    return datetime.fromtimestamp(int(text), tz=timezone.utc)


def parse_int(value: str | None, default: int) -> int:
    """Lenient integer parse, returning the default on bad input."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_float(value: str | None, default: float) -> float:
    """Lenient float parse, returning the default on bad or non-finite input."""
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if math.isfinite(parsed) else default
