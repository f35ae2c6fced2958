from __future__ import annotations

import asyncio
import atexit
import logging
from pathlib import Path
from typing import Optional

from crashkeeper.core.capture import CrashCapture
from crashkeeper.core.interceptor import FaultInterceptor, Subscription
from crashkeeper.core.logger_base import LoggerBase
from crashkeeper.core.options import LoggerOptions
from crashkeeper.core.session import SessionLogChannel
from crashkeeper.utils.io_utils import ensure_dir

_log = logging.getLogger(__name__)

_global_logger: Optional["SessionLogger"] = None


def set_global_logger(logger: Optional["SessionLogger"]) -> None:
    global _global_logger
    _global_logger = logger


def get_global_logger() -> Optional["SessionLogger"]:
    return _global_logger


class SessionLogger(LoggerBase):
    """Process logger with a per-run ``session.log`` and crash logs on unhandled faults.

    Construction wipes the previous ``session.log``, starts the logging
    backend and hooks the process fault channels. A captured crash closes the
    backend for good; later log calls are silently dropped.
    """

    def __init__(
        self,
        options: Optional[LoggerOptions] = None,
        intercept_faults: bool = True,
        install_global: bool = True,
    ):
        self.options = options or LoggerOptions()
        ensure_dir(self.options.session_logs_directory)
        ensure_dir(self.options.crash_logs_directory)

        self._channel = SessionLogChannel(self.options)
        self._channel.open()
        self._capture = CrashCapture(self._channel, self.options.crash_logs_directory)
        self._interceptor = FaultInterceptor(self._capture.capture)
        if intercept_faults:
            self._interceptor.register()
        atexit.register(self._channel.dispose)
        self._closed = False

        if install_global:
            set_global_logger(self)

    @property
    def session_log_path(self) -> Path:
        return self._channel.path

    @property
    def crash_logs(self) -> list[Path]:
        return list(self._capture.written)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def backend_active(self) -> bool:
        return self._channel.active

    @property
    def interceptor(self) -> FaultInterceptor:
        return self._interceptor

    def _emit(self, level: int, message: str, exc: Optional[BaseException], origin: Optional[str]) -> None:
        try:
            self._channel.emit(level, str(message), exc=exc, origin=origin, stacklevel=3)
        except Exception:
            _log.debug("Dropped log message at level %s", logging.getLevelName(level), exc_info=True)

    def log_debug(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        self._emit(logging.DEBUG, message, exc, origin)

    def log_info(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        self._emit(logging.INFO, message, exc, origin)

    def log_warning(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        self._emit(logging.WARNING, message, exc, origin)

    def log_error(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        self._emit(logging.ERROR, message, exc, origin)

    def log_critical(self, message: str, exc: Optional[BaseException] = None, *, origin: Optional[str] = None) -> None:
        self._emit(logging.CRITICAL, message, exc, origin)

    def capture_crash(self, exc: Optional[BaseException], message: str) -> Optional[Path]:
        return self._capture.capture_crash(exc, message)

    def watch_loop(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        return self._interceptor.watch_loop(loop or asyncio.get_running_loop())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._interceptor.unregister()
        atexit.unregister(self._channel.dispose)
        self._channel.dispose()
        if get_global_logger() is self:
            set_global_logger(None)

    def __enter__(self) -> "SessionLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
