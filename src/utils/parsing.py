"""Pure parsing and conversion utilities for raw API payloads.

Only the match history provider should need these: the engine works on
canonical records and never digs through loosely-typed payloads.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional


def _to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    if isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def pick_number(*values: Any) -> Optional[float]:
    """Return the first value that converts to a finite float."""
    for value in values:
        if value is None:
            continue
        result = _to_float(value)
        if result is not None:
            return result
    return None


def pick_text(*values: Any) -> Optional[str]:
    """Return the first non-empty value as a stripped string."""
    for value in values:
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def normalize_timestamp_ms(value: Any) -> Optional[int]:
    """Coerce epoch seconds, epoch milliseconds or ISO strings to epoch ms.

    Numbers below 1e12 are treated as seconds.
    """
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    number = _to_float(value)
    if number is not None:
        if number <= 0:
            return None
        return int(number * 1000) if number < 1e12 else int(number)
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw.replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
        dt = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    return None
