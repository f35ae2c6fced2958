from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Union

from crashkeeper.utils.io_utils import PathLike, load_yaml

LevelLike = Union[int, str]


def resolve_level(level: LevelLike) -> int:
    if isinstance(level, bool):
        raise ValueError(f"Invalid log level: {level!r}")
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Invalid log level: {level!r}")
    return value


@dataclass(frozen=True)
class LoggerOptions:
    session_logs_directory: Path = Path("Logs/Session")
    crash_logs_directory: Path = Path("Logs/Crash")
    logger_name: str = "crashkeeper.session"
    console_enabled: bool = True
    console_level: LevelLike = "INFO"
    file_level: LevelLike = "DEBUG"
    debug_enabled: bool = True
    debug_logger_name: str = "crashkeeper.debug"

    def __post_init__(self) -> None:
        object.__setattr__(self, "session_logs_directory", Path(self.session_logs_directory))
        object.__setattr__(self, "crash_logs_directory", Path(self.crash_logs_directory))
        object.__setattr__(self, "console_enabled", bool(self.console_enabled))
        object.__setattr__(self, "debug_enabled", bool(self.debug_enabled))
        if not str(self.logger_name).strip():
            raise ValueError("logger_name must not be empty")
        if not str(self.debug_logger_name).strip():
            raise ValueError("debug_logger_name must not be empty")
        if self.debug_logger_name == self.logger_name or self.debug_logger_name.startswith(self.logger_name + "."):
            raise ValueError("debug_logger_name must not be logger_name or one of its children")
        resolve_level(self.console_level)
        resolve_level(self.file_level)

    @property
    def session_log_path(self) -> Path:
        return self.session_logs_directory / "session.log"

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "LoggerOptions":
        section = data.get("logging", data)
        if not isinstance(section, dict):
            raise ValueError("'logging' section must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ValueError(f"Unknown logger options: {', '.join(unknown)}")
        return cls(**section)

    def to_mapping(self) -> Dict[str, Any]:
        out = asdict(self)
        out["session_logs_directory"] = str(self.session_logs_directory)
        out["crash_logs_directory"] = str(self.crash_logs_directory)
        return {"logging": out}


def load_options(path: PathLike) -> LoggerOptions:
    return LoggerOptions.from_mapping(load_yaml(path))
