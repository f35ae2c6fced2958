from __future__ import annotations

import enum
import logging
import logging.handlers
import queue
import threading
from pathlib import Path
from typing import List, Optional

from crashkeeper.core.context import OriginFilter
from crashkeeper.core.options import LoggerOptions, resolve_level
from crashkeeper.utils.io_utils import ensure_dir, remove_if_exists

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(origin)s: %(message)s"

ExcInfo = Optional[BaseException]


class ChannelState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"


class DebugForwardHandler(logging.Handler):
    """Hands formatted records to a named logger, which stays silent unless the host attaches handlers to it."""

    def __init__(self, target: logging.Logger, level: int = logging.DEBUG):
        super().__init__(level)
        self.target = target
        if not any(isinstance(h, logging.NullHandler) for h in target.handlers):
            target.addHandler(logging.NullHandler())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.target.handle(record)
        except Exception:
            self.handleError(record)


class SessionLogChannel:
    """Owns the logging backend that writes ``session.log``.

    Records go through a ``QueueHandler`` so callers never wait on disk; a
    ``QueueListener`` thread fans them out to the console, file and debug sinks.
    ``dispose()`` drains the queue and closes the sinks before it returns,
    which is what makes reading the session file back afterwards safe.
    """

    def __init__(self, options: LoggerOptions):
        self.options = options
        self.path: Path = options.session_log_path
        self._state = ChannelState.UNINITIALIZED
        self._lock = threading.Lock()
        self._logger = logging.getLogger(options.logger_name)
        self._queue_handler: Optional[logging.handlers.QueueHandler] = None
        self._listener: Optional[logging.handlers.QueueListener] = None
        self._sinks: List[logging.Handler] = []

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is ChannelState.ACTIVE

    def open(self) -> None:
        with self._lock:
            if self._state is not ChannelState.UNINITIALIZED:
                raise RuntimeError(f"Session log channel cannot be opened from state {self._state.value}")

            ensure_dir(self.options.session_logs_directory)
            remove_if_exists(self.path)

            logger = self._logger
            logger.setLevel(logging.DEBUG)
            for h in list(logger.handlers):
                logger.removeHandler(h)
                h.close()

            fmt = logging.Formatter(LOG_FORMAT)

            sinks: List[logging.Handler] = []
            if self.options.console_enabled:
                console = logging.StreamHandler()
                console.setLevel(resolve_level(self.options.console_level))
                console.setFormatter(fmt)
                sinks.append(console)

            file_handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
            file_handler.setLevel(resolve_level(self.options.file_level))
            file_handler.setFormatter(fmt)
            sinks.append(file_handler)

            if self.options.debug_enabled:
                debug = DebugForwardHandler(logging.getLogger(self.options.debug_logger_name))
                debug.setFormatter(fmt)
                sinks.append(debug)

            records: "queue.SimpleQueue[logging.LogRecord]" = queue.SimpleQueue()
            queue_handler = logging.handlers.QueueHandler(records)
            queue_handler.addFilter(OriginFilter())
            listener = logging.handlers.QueueListener(records, *sinks, respect_handler_level=True)

            # keeps logging.lastResort quiet for writes that race dispose()
            logger.addHandler(logging.NullHandler())
            logger.addHandler(queue_handler)
            logger.propagate = False
            listener.start()

            self._sinks = sinks
            self._queue_handler = queue_handler
            self._listener = listener
            self._state = ChannelState.ACTIVE

    def emit(
        self,
        level: int,
        message: str,
        exc: ExcInfo = None,
        origin: Optional[str] = None,
        stacklevel: int = 1,
    ) -> None:
        """Log ``message``; ``stacklevel`` counts frames above the caller of this method."""
        if self._state is not ChannelState.ACTIVE:
            return
        extra = {"origin": origin} if origin else None
        self._logger.log(level, message, exc_info=exc, extra=extra, stacklevel=stacklevel + 1)

    def dispose(self) -> None:
        with self._lock:
            if self._state is not ChannelState.ACTIVE:
                self._state = ChannelState.CLOSED
                return
            self._state = ChannelState.CLOSED

            if self._queue_handler is not None:
                self._logger.removeHandler(self._queue_handler)
                self._queue_handler.close()
            if self._listener is not None:
                self._listener.stop()
            for sink in self._sinks:
                sink.flush()
                sink.close()

            self._queue_handler = None
            self._listener = None
            self._sinks = []
