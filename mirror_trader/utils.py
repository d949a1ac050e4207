from __future__ import annotations

import datetime as dt
import math
from typing import Any, Optional


def as_float(raw: Any) -> Optional[float]:
    """Coerce *raw* to a finite ``float``, returning ``None`` on failure."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip().replace(",", "")
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    return value if math.isfinite(value) else None


def parse_iso8601_ts(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    # Support trailing Z and offsets.
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        value = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.timestamp()


def to_epoch_seconds(raw: Any) -> Optional[int]:
    """Normalize a feed timestamp (epoch s/ms, numeric string or date string)."""
    value = as_float(raw)
    if value is None:
        value = parse_iso8601_ts(raw)
        if value is None:
            return None
    # Milliseconds to seconds normalization.
    if value > 1e12:
        value = value / 1000.0
    return int(math.floor(value))
