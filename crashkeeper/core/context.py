from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

UNKNOWN_CONTEXT = "Unknown"


def context_from_file_path(file_path: Any) -> str:
    """Return the caller's file name without extension, or ``"Unknown"``.

    Tagging must never get in the way of the log write itself, so every
    failure collapses to the sentinel.
    """
    try:
        stem = Path(file_path).stem
    except Exception:
        return UNKNOWN_CONTEXT
    return stem or UNKNOWN_CONTEXT


def format_origin(file_path: Any, member_name: Any) -> str:
    member = str(member_name) if member_name else UNKNOWN_CONTEXT
    return f"{context_from_file_path(file_path)}.{member}"


class OriginFilter(logging.Filter):
    """Stamp ``record.origin`` as ``<file stem>.<function>`` unless the caller supplied one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "origin", None):
            record.origin = format_origin(record.pathname, record.funcName)
        return True
