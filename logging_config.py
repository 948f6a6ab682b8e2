"""Logging setup shared by the API and the core services."""

import logging
import sys
from typing import Optional

import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s%(context)s"
_STDLIB_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()) | {
    "message",
    "asctime",
    "context",
    "taskName",
}

_configured = False


class ContextFormatter(logging.Formatter):
    """Appends the record's ``extra`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        fields = {
            k: v for k, v in vars(record).items()
            if k not in _STDLIB_KEYS and not k.startswith("_")
        }
        record.context = "".join(f" {k}={v}" for k, v in sorted(fields.items()))
        return super().format(record)


def configure_logging(level: Optional[str] = None, handler: Optional[logging.Handler] = None) -> None:
    global _configured
    root = logging.getLogger("freelance")
    if _configured and handler is None:
        return
    for existing in list(root.handlers):
        root.removeHandler(existing)
    handler = handler or logging.StreamHandler(sys.stderr)
    handler.setFormatter(ContextFormatter(_FORMAT))
    root.addHandler(handler)
    root.setLevel(level or settings.LOG_LEVEL)
    root.propagate = False
    _configured = True


def reset_logging() -> None:
    global _configured
    root = logging.getLogger("freelance")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.propagate = True
    root.setLevel(logging.NOTSET)
    _configured = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"freelance.{name}")
