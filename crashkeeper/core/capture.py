from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional, TextIO, Tuple

from crashkeeper.core.faults import FaultReport
from crashkeeper.core.session import SessionLogChannel
from crashkeeper.utils.io_utils import PathLike, ensure_dir, read_text_if_exists
from crashkeeper.utils.time_utils import crash_file_stamp, format_capture_time

_log = logging.getLogger(__name__)

SESSION_SECTION_HEADER = "=== Session Log ==="
CRASH_SECTION_HEADER = "=== Crash Reason ==="
MAX_SAME_SECOND_CRASHES = 1000


class CrashCaptureError(RuntimeError):
    pass


class CrashCapture:
    """Turns a fault into ``crash_<stamp>.log`` holding the session transcript and the fault.

    Captures are serialized. The session backend is disposed before the
    session file is read back, so the transcript is complete. Nothing raised
    in here leaves ``capture``; failures are noted on this module's logger.
    """

    def __init__(self, channel: SessionLogChannel, crash_logs_directory: PathLike):
        self.channel = channel
        self.crash_logs_directory = Path(crash_logs_directory)
        self.written: List[Path] = []
        self._lock = threading.Lock()

    def capture_crash(self, exception: Optional[BaseException], message: str) -> Optional[Path]:
        try:
            report = FaultReport(message=str(message), exception=exception)
        except Exception:
            _log.debug("Failed to build fault report", exc_info=True)
            return None
        return self.capture(report)

    def capture(self, report: FaultReport) -> Optional[Path]:
        with self._lock:
            try:
                return self._capture_locked(report)
            except Exception:
                _log.debug("Failed to create crash log", exc_info=True)
                return None

    def _capture_locked(self, report: FaultReport) -> Path:
        try:
            self.channel.dispose()
        except Exception:
            _log.debug("Session backend did not dispose cleanly", exc_info=True)

        session_text: Optional[str] = None
        read_error: Optional[Exception] = None
        try:
            session_text = read_text_if_exists(self.channel.path)
        except Exception as exc:
            _log.debug("Session log could not be read back", exc_info=True)
            read_error = exc

        path, handle = self._open_crash_file(crash_file_stamp(report.captured_at))
        with handle:
            if read_error is not None:
                handle.write(SESSION_SECTION_HEADER + "\n")
                handle.write(f"(session log could not be read: {read_error!r})\n\n")
            elif session_text is not None:
                handle.write(SESSION_SECTION_HEADER + "\n")
                handle.write(session_text)
                if not session_text.endswith("\n"):
                    handle.write("\n")
                handle.write("\n")

            handle.write(CRASH_SECTION_HEADER + "\n")
            handle.write(f"Message: {report.message}\n")
            handle.write(f"Date: {format_capture_time(report.captured_at)}\n")
            handle.write("Exception:\n")
            handle.write(report.describe_exception() + "\n")
            handle.flush()

        self.written.append(path)
        return path

    def _open_crash_file(self, stamp: str) -> Tuple[Path, TextIO]:
        directory = ensure_dir(self.crash_logs_directory)
        for n in range(MAX_SAME_SECOND_CRASHES):
            name = f"crash_{stamp}.log" if n == 0 else f"crash_{stamp}_{n}.log"
            path = directory / name
            try:
                return path, path.open("x", encoding="utf-8")
            except FileExistsError:
                continue
        raise CrashCaptureError(f"No free crash log name for stamp {stamp} in {directory}")
