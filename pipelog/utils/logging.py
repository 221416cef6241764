import datetime
import json
import logging
import sys
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through `extra=`
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_HANDLER_NAME = "pipelog"


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line. Fields passed via ``extra=`` (offsets, counts)
    are emitted as top-level keys so log shippers can index them.
    """
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.datetime.fromtimestamp(record.created, tz=datetime.timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_extra_fields(record))
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line development output; extras are appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extra_fields(record)
        if extras:
            suffix = " ".join(f"{k}={v}" for k, v in extras.items())
            first, _, rest = line.partition("\n")
            line = f"{first} [{suffix}]" + (f"\n{rest}" if rest else "")
        return line


def setup_logging(level: int | str = logging.INFO, log_format: Optional[str] = None) -> logging.Handler:
    """
    Installs the pipelog handler on the root logger, replacing a previous one.

    ``log_format`` is ``"json"`` or ``"text"``; it defaults to the LOG_FORMAT setting.
    Handlers installed by other code (pytest's capture, uvicorn) are left alone.
    """
    if log_format is None:
        from pipelog.settings import settings
        log_format = settings.LOG_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if log_format.lower() == "json" else ConsoleFormatter())

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("uvicorn.access", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"pipelog.{name}")
