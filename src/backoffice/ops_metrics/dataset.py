"""
Lenient readers for legacy documents.

Stored documents are not uniform: amounts may arrive as strings, timestamps
as native datetimes, ISO strings or epoch milliseconds, and nested blocks may
be missing entirely. These helpers never raise on bad input.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Union

Number = Union[int, float]
Document = Dict[str, Any]

DEFAULT_DISPLAY_NAME = "고객"


def as_doc(value: Any) -> Document:
    return dict(value) if isinstance(value, Mapping) else {}


def dig(doc: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Follow a dotted path (``shippingInfo.invoice.trackingNumber``) through nested mappings."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return default if current is None else current


def coerce_number(value: Any, default: Number = 0) -> Number:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        value = float(value)
    elif isinstance(value, str):
        try:
            value = float(value.strip().replace(",", ""))
        except ValueError:
            return default
    if not isinstance(value, float) or not math.isfinite(value):
        return default
    return int(value) if value.is_integer() else value


def coerce_datetime(value: Any) -> Optional[datetime]:
    """
    Return an aware UTC datetime, or ``None`` when the value is genuinely unparseable.

    Naive datetimes and offset-less ISO strings are treated as UTC. Numbers are
    epoch milliseconds.
    """

    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def coerce_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, (str, int, float, bool)):
        text = str(value)
        return text if text else default
    return default


def coerce_id(doc: Mapping[str, Any]) -> str:
    return coerce_text(doc.get("_id", doc.get("id")))


def first_text(*values: Any, default: str = DEFAULT_DISPLAY_NAME) -> str:
    for value in values:
        text = coerce_text(value).strip()
        if text:
            return text
    return default


def iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat().replace("+00:00", "Z") if value is not None else None
