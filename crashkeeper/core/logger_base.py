from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class LoggerBase(ABC):
    """Leveled logging with crash-log support.

    ``origin`` overrides the ``<file>.<function>`` tag that is otherwise taken
    from the call site.
    """

    @abstractmethod
    def log_debug(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def log_info(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def log_warning(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def log_error(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def log_critical(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def capture_crash(self, exc: Optional[BaseException], message: str) -> Optional[Path]:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError
