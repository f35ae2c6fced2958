from __future__ import annotations

from datetime import datetime
from typing import Optional


def crash_file_stamp(now: Optional[datetime] = None) -> str:
    stamp = now or datetime.now()
    return stamp.strftime("%Y-%m-%d_%H-%M-%S")


def format_capture_time(now: Optional[datetime] = None) -> str:
    """Millisecond timestamp with UTC offset, e.g. ``2026-10-19 12:00:00.123 +03:00``.

    Naive or missing values are taken as local time.
    """
    stamp = now or datetime.now()
    if stamp.tzinfo is None:
        stamp = stamp.astimezone()
    offset = stamp.strftime("%z")
    if len(offset) == 5:
        offset = f"{offset[:3]}:{offset[3:]}"
    return f"{stamp.strftime('%Y-%m-%d %H:%M:%S')}.{stamp.microsecond // 1000:03d} {offset}"
