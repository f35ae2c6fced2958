from __future__ import annotations

import enum
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

NO_EXCEPTION_MARKER = "No exception was supplied."


class FaultReason(str, enum.Enum):
    UNHANDLED_EXCEPTION = "unhandled synchronous exception"
    UNOBSERVED_BACKGROUND_EXCEPTION = "unobserved background-task exception"


@dataclass(frozen=True)
class FaultReport:
    message: str
    exception: Optional[BaseException] = None
    reason: Optional[FaultReason] = None
    captured_at: datetime = field(default_factory=lambda: datetime.now().astimezone())

    @classmethod
    def from_channel(cls, reason: FaultReason, exception: Optional[BaseException]) -> "FaultReport":
        return cls(message=reason.value, exception=exception, reason=reason)

    def describe_exception(self) -> str:
        return format_exception(self.exception)


def unwrap_fault(exc: Optional[BaseException]) -> Optional[BaseException]:
    """Strip exactly one aggregation layer so the concrete failure gets reported."""
    if isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        return exc.exceptions[0]
    return exc


def format_exception(exc: Optional[BaseException]) -> str:
    if exc is None:
        return NO_EXCEPTION_MARKER
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip("\n")
