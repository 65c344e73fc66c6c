"""Structured logging with MCP severity levels and redaction of sensitive attributes."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from typing import Any, TextIO

LEVEL_DEBUG = logging.DEBUG
LEVEL_INFO = logging.INFO
LEVEL_NOTICE = 25
LEVEL_WARNING = logging.WARNING
LEVEL_ERROR = logging.ERROR
LEVEL_CRITICAL = logging.CRITICAL
LEVEL_ALERT = 55
LEVEL_EMERGENCY = 60

_LEVELS = {
    "debug": LEVEL_DEBUG,
    "info": LEVEL_INFO,
    "notice": LEVEL_NOTICE,
    "warning": LEVEL_WARNING,
    "error": LEVEL_ERROR,
    "critical": LEVEL_CRITICAL,
    "alert": LEVEL_ALERT,
    "emergency": LEVEL_EMERGENCY,
}

VALID_LOG_LEVELS: tuple[str, ...] = tuple(_LEVELS)
VALID_LOG_FORMATS: tuple[str, ...] = ("text", "json")

REDACTED = "[REDACTED]"

_SENSITIVE_KEYS = frozenset(
    {
        # Authentication & API
        "password",
        "token",
        "secret",
        "api_key",
        "auth_token",
        # Connection details
        "uri",
        "address",
        "host",
        "port",
        "bolt_uri",
    }
)

# Upper bounds (exclusive) for each displayed level name.
_LEVEL_BOUNDS = (
    (LEVEL_INFO, "DEBUG"),
    (LEVEL_NOTICE, "INFO"),
    (LEVEL_WARNING, "NOTICE"),
    (LEVEL_ERROR, "WARNING"),
    (LEVEL_CRITICAL, "ERROR"),
    (LEVEL_ALERT, "CRITICAL"),
    (LEVEL_EMERGENCY, "ALERT"),
)


def parse_level(level: str) -> int:
    """Return the numeric level for a name; unknown names give the info level."""
    return _LEVELS.get(level.lower(), LEVEL_INFO)


def level_name(level: int) -> str:
    """Return the upper-case display name of the range a numeric level falls in."""
    for bound, name in _LEVEL_BOUNDS:
        if level < bound:
            return name
    return "EMERGENCY"


def is_sensitive_key(key: str) -> bool:
    """Tell whether an attribute key holds information that must be redacted."""
    return key.lower() in _SENSITIVE_KEYS


def _text_value(value: Any) -> str:
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    if text == "" or any(c.isspace() or c in '"=' or not c.isprintable() for c in text):
        return json.dumps(text, ensure_ascii=False)
    return text


class _StructuredFormatter(logging.Formatter):
    """Formats records as key=value text or as one JSON object per line."""

    def __init__(self, json_output: bool) -> None:
        super().__init__()
        self._json_output = json_output

    def _fields(self, record: logging.LogRecord) -> dict[str, Any]:
        timestamp = datetime.fromtimestamp(record.created).astimezone()
        fields: dict[str, Any] = {
            "time": timestamp.isoformat(timespec="milliseconds"),
            "level": level_name(record.levelno),
            "msg": record.getMessage(),
        }
        fields.update(getattr(record, "attrs", None) or {})
        if record.exc_info:
            fields["exc"] = self.formatException(record.exc_info)
        return {key: REDACTED if is_sensitive_key(key) else value for key, value in fields.items()}

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        if self._json_output:
            return json.dumps(fields, default=str, ensure_ascii=False)
        return " ".join(f"{key}={_text_value(value)}" for key, value in fields.items())


class LoggerService:
    """A logger writing to one stream, with a level that can be changed later."""

    def __init__(self, level: str = "info", fmt: str = "text", stream: TextIO | None = None) -> None:
        self.handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        self.handler.setFormatter(_StructuredFormatter(fmt.lower() == "json"))
        self.handler.setLevel(parse_level(level))
        self.logger = logging.Logger(f"flowmcp.{id(self)}", LEVEL_DEBUG)
        self.logger.propagate = False
        self.logger.addHandler(self.handler)

    @property
    def level(self) -> int:
        return self.handler.level

    def set_level(self, level: str) -> None:
        """Change the minimum level this service writes."""
        self.handler.setLevel(parse_level(level))

    def log(self, level: int, msg: str, **attrs: Any) -> None:
        self.logger.log(level, msg, extra={"attrs": attrs})

    def debug(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_DEBUG, msg, **attrs)

    def info(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_INFO, msg, **attrs)

    def notice(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_NOTICE, msg, **attrs)

    def warning(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_WARNING, msg, **attrs)

    def error(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_ERROR, msg, **attrs)

    def critical(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_CRITICAL, msg, **attrs)

    def alert(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_ALERT, msg, **attrs)

    def emergency(self, msg: str, **attrs: Any) -> None:
        self.log(LEVEL_EMERGENCY, msg, **attrs)


_default_service: LoggerService | None = None


def new(level: str, fmt: str, stream: TextIO | None) -> LoggerService:
    """Create a logger service; fmt "json" gives JSON lines, anything else text."""
    return LoggerService(level, fmt, stream)


def init(level: str, fmt: str, stream: TextIO | None) -> LoggerService:
    """Install a service as the process-wide default, routing the root logger to it."""
    global _default_service
    root = logging.getLogger()
    if _default_service is not None:
        root.removeHandler(_default_service.handler)
    _default_service = new(level, fmt, stream)
    root.addHandler(_default_service.handler)
    root.setLevel(LEVEL_DEBUG)
    return _default_service


def set_level(level: str) -> None:
    """Change the level of the default service, if one was installed."""
    if _default_service is not None:
        _default_service.set_level(level)