"""Structured JSON logging for services."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TextIO

_LOGGING_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
}


class Level(Enum):
    """Log levels a service can use."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def parse(cls, value: str) -> Level:
        try:
            return cls(value)
        except ValueError as exc:
            raise ValueError(f"unknown log level {value}") from exc

    @property
    def logging_level(self) -> int:
        return _LOGGING_LEVELS[self.value]


def _json_or_text(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


class JsonFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def __init__(
        self,
        local_timestamp: bool = True,
        constant_fields: dict[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.local_timestamp = local_timestamp
        self.constant_fields = dict(constant_fields or {})

    def _timestamp(self) -> str:
        if self.local_timestamp:
            return datetime.now().astimezone().isoformat()
        return datetime.now(timezone.utc).isoformat()

    def format(self, record: logging.LogRecord) -> str:
        output: dict[str, Any] = {
            "timestamp": self._timestamp(),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname),
            "message": _json_or_text(record.getMessage()),
        }
        output.update(self.constant_fields)
        call_fields = getattr(record, "call_fields", None)
        if isinstance(call_fields, dict):
            output.update(call_fields)
        return json.dumps(output, default=str)


class Logger:
    """A service logger writing JSON lines to a stream."""

    def __init__(
        self,
        level: Level = Level.INFO,
        local_timestamp: bool = True,
        constant_fields: dict[str, Any] | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self._logger = logging.Logger("mikros")
        self._logger.propagate = False
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        handler.setFormatter(JsonFormatter(local_timestamp, constant_fields))
        self._logger.addHandler(handler)
        self.change_level(level)

    def log(self, level: Level, message: str, fields: Any = None) -> None:
        """Write a message; ``fields`` are added when it is a mapping."""
        call_fields = dict(fields) if isinstance(fields, dict) else {}
        self._logger.log(level.logging_level, message, extra={"call_fields": call_fields})

    def debug(self, message: str) -> None:
        self.log(Level.DEBUG, message)

    def info(self, message: str) -> None:
        self.log(Level.INFO, message)

    def warning(self, message: str) -> None:
        self.log(Level.WARNING, message)

    def error(self, message: str) -> None:
        self.log(Level.ERROR, message)

    def debugf(self, message: str, fields: Any) -> None:
        self.log(Level.DEBUG, message, fields)

    def infof(self, message: str, fields: Any) -> None:
        self.log(Level.INFO, message, fields)

    def warningf(self, message: str, fields: Any) -> None:
        self.log(Level.WARNING, message, fields)

    def errorf(self, message: str, fields: Any) -> None:
        self.log(Level.ERROR, message, fields)

    def change_level(self, level: Level) -> None:
        self._logger.setLevel(level.logging_level)


class LoggerBuilder:
    """Collects the settings of a logger before building it."""

    def __init__(self) -> None:
        self.level = Level.INFO
        self.local_timestamp = True
        self._constant_fields: dict[str, str] = {}

    def with_level(self, level: Level) -> LoggerBuilder:
        self.level = level
        return self

    def with_field(self, name: str, value: str) -> LoggerBuilder:
        self._constant_fields[name] = value
        return self

    def with_local_timestamp(self, use_local_timestamp: bool) -> LoggerBuilder:
        self.local_timestamp = use_local_timestamp
        return self

    def constant_fields(self) -> dict[str, str]:
        return dict(self._constant_fields)

    def build(self, stream: TextIO | None = None) -> Logger:
        return Logger(self.level, self.local_timestamp, self.constant_fields(), stream)