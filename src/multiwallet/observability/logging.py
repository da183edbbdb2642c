"""
Logging setup.

Colored console output plus an optional JSON-lines file carrying the
structured extras. Key material is masked before any handler sees it.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from multiwallet.config.settings import LoggingSettings, Settings

# Subsystem tags, placed at the start of a message
LOG_TAG_TRANSFER = "[TRANSFER]"
LOG_TAG_CACHE = "[CACHE]"
LOG_TAG_CONFIRM = "[CONFIRM]"

__all__ = [
    "setup_logging",
    "get_logger",
    "mask_secrets",
    "SensitiveDataFilter",
    "JSONFormatter",
    "WalletLogFormatter",
    "LOG_TAG_TRANSFER",
    "LOG_TAG_CACHE",
    "LOG_TAG_CONFIRM",
]

_MASK = "***MASKED***"

# Each pattern keeps the `key` group and replaces the secret after it
_SECRET_PATTERNS = (
    re.compile(r"(?P<key>(?:secret|private)[_-]?key['\"]?\s*[:=]\s*['\"]?)[a-fA-F0-9]{32,}", re.IGNORECASE),
    re.compile(r"(?P<key>(?:secret|private)[_-]?key['\"]?\s*[:=]\s*)\[[\d,\s]{20,}\]", re.IGNORECASE),
    re.compile(r"(?P<key>seed['\"]?\s*[:=]\s*['\"]?)[a-fA-F0-9]{32,}", re.IGNORECASE),
    re.compile(r"(?P<key>token['\"]?\s*[:=]\s*['\"]?)[a-zA-Z0-9]{16,}", re.IGNORECASE),
)


def mask_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group("key") + _MASK, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """Masks secret keys, seeds and tokens in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg, record.args = masked, ()
        return True


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the wallet extras when present."""

    EXTRA_KEYS = ("identifier", "signature", "status", "batch_size", "error_code")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({key: getattr(record, key) for key in self.EXTRA_KEYS if hasattr(record, key)})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_jsonable)


class WalletLogFormatter(logging.Formatter):
    """
    Console lines as `HH:MM:SS [LABEL] message`.

    Below WARNING a subsystem tag in the message becomes the label.
    Warnings and errors always show their level.
    """

    RESET = "\033[0m"
    LEVELS = {
        logging.DEBUG: ("DEBUG", "\033[90m"),
        logging.INFO: ("INFO", "\033[92m"),
        logging.WARNING: ("WARN", "\033[93m"),
        logging.ERROR: ("ERROR", "\033[91m"),
        logging.CRITICAL: ("CRITICAL", "\033[1;91m"),
    }
    TAGS = {
        LOG_TAG_TRANSFER: "\033[96m",
        LOG_TAG_CONFIRM: "\033[94m",
        LOG_TAG_CACHE: "\033[90m",
    }

    def __init__(self):
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        label, color = self.LEVELS.get(record.levelno, (record.levelname, ""))
        message = record.getMessage()
        if record.levelno < logging.WARNING:
            for tag, tag_color in self.TAGS.items():
                if tag in message:
                    label, color = tag.strip("[]"), tag_color
                    message = message.replace(tag, "").strip()
                    break

        line = f"{color}{self.formatTime(record, self.datefmt)} [{label}]{self.RESET} {message}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _json_handler(config: LoggingSettings) -> logging.Handler:
    path = Path(config.json_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    if config.json_max_bytes > 0 and config.json_backup_count > 0:
        return RotatingFileHandler(
            path,
            maxBytes=config.json_max_bytes,
            backupCount=config.json_backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(path, encoding="utf-8")


def setup_logging(settings: Settings | None = None) -> logging.Logger:
    """
    Replace the root handlers with a console handler and, if enabled,
    a JSON-lines file handler.

    Returns the root logger.
    """
    if settings is None:
        from multiwallet.config.settings import get_settings

        settings = get_settings()

    level = logging.getLevelName(settings.logging.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers: list[tuple[logging.Handler, logging.Formatter]] = [
        (logging.StreamHandler(sys.stdout), WalletLogFormatter())
    ]
    if settings.logging.json_enabled:
        handlers.append((_json_handler(settings.logging), JSONFormatter()))

    sensitive_filter = SensitiveDataFilter()
    for handler, formatter in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(sensitive_filter)
        root_logger.addHandler(handler)

    for noisy in ("asyncio", "aiohttp"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
