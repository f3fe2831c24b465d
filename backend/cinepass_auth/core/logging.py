"""CinePass auth service logging configuration.

Both formats run every record through TokenRedactionFilter, so an access
or refresh token that ends up in a message is never written out whole.
"""

import json
import logging
import re
import sys
from typing import Any, Literal

SERVICE_NAME = "cinepass-auth"
DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Three base64url segments starting with the encoded '{"' of a JWT header
_JWT_PATTERN = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]*")
# Refresh tokens are 64 random bytes as hex
_REFRESH_TOKEN_PATTERN = re.compile(r"\b[0-9a-f]{128}\b")

# Attributes every LogRecord has; anything else arrived through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def redact_tokens(text: str) -> str:
    """Replace JWTs and refresh token values, keeping a short prefix for correlation."""
    text = _JWT_PATTERN.sub(lambda m: f"{m.group()[:10]}...[redacted]", text)
    return _REFRESH_TOKEN_PATTERN.sub(lambda m: f"{m.group()[:8]}...[redacted]", text)


class TokenRedactionFilter(logging.Filter):
    """Rewrite the record's message with token values redacted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_tokens(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Fields passed with extra= (client_ip, user_id and so on) are copied
    into the object next to the standard ones.
    """

    def __init__(self, service: str = SERVICE_NAME):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                log_entry.setdefault(key, value)
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = redact_tokens(self.formatException(record.exc_info))
        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "dev"] = "dev",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format - 'structured' for JSON, 'dev' for readable
    """
    if format_type == "structured":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logging.root.handlers = [handler]
        logging.root.setLevel(getattr(logging, level.upper()))
    else:
        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=DEV_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
            stream=sys.stdout,
            force=True,
        )

    for root_handler in logging.root.handlers:
        root_handler.addFilter(TokenRedactionFilter())

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "httpx"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    )

    logger = logging.getLogger("cinepass")
    logger.info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the cinepass prefix."""
    return logging.getLogger(f"cinepass.{name}")
