# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# utils/sql_dt_utils.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Union

# -------- basics --------

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def is_date_only(x) -> bool:
    return isinstance(x, str) and "T" not in x and len(x) >= 10 and x[4] == "-" and x[7] == "-"

def to_utc_dt(x: Union[str, datetime]) -> datetime:
    """tz-aware UTC datetime from datetime or ISO string (supports trailing Z)."""
    if isinstance(x, datetime):
        return (x if x.tzinfo else x.replace(tzinfo=timezone.utc)).astimezone(timezone.utc)
    s = str(x).strip().replace(" ", "T")
    if is_date_only(s):
        d = datetime.fromisoformat(s[:10]).date()
        return datetime(d.year, d.month, d.day, 0, 0, 0, tzinfo=timezone.utc)
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def iso_utc_text_ms(x: Union[str, datetime]) -> str:
    """ISO-8601 UTC with millisecond precision and trailing Z."""
    return to_utc_dt(x).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def utc_day_label(x: Union[str, datetime]) -> str:
    """YYYY-MM-DD of the instant in UTC."""
    d = to_utc_dt(x).date()
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"
