"""Application and upload loggers with a key=value text format."""

from __future__ import annotations

import json
import logging
import os
import string
import sys
from datetime import datetime
from typing import Optional

_APP_LOGGER = "chunkvault"
_UPLOAD_LOGGER = "chunkvault.upload"
_PLAIN = set(string.ascii_letters + string.digits + "-._/@^+")
_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


def _quote(text: str) -> str:
    if text and all(ch in _PLAIN for ch in text):
        return text
    return json.dumps(text, ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    """Formats records as: time="..." level=info msg="..."."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="seconds")
        level = _LEVEL_NAMES.get(record.levelno, record.levelname.lower())
        line = f'time="{stamp}" level={level} msg={_quote(record.getMessage())}'
        if record.exc_info:
            line += " error=" + _quote(self.formatException(record.exc_info))
        return line


class _StdoutHandler(logging.StreamHandler):
    """Writes to whatever sys.stdout currently is."""

    def __init__(self) -> None:
        super().__init__(sys.stdout)

    def emit(self, record: logging.LogRecord) -> None:
        self.stream = sys.stdout
        super().emit(record)

    def flush(self) -> None:
        self.stream = sys.stdout
        super().flush()


def get_logger() -> logging.Logger:
    """Return the application logger, writing to stdout at INFO level."""
    logger = logging.getLogger(_APP_LOGGER)
    if not any(isinstance(h, _StdoutHandler) for h in logger.handlers):
        handler = _StdoutHandler()
        handler.setFormatter(_TextFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


def get_upload_logger(log_path: Optional[str] = "logs/upload.log") -> logging.Logger:
    """Return the upload logger, appending to log_path or, failing that, stdout."""
    logger = logging.getLogger(_UPLOAD_LOGGER)
    wanted = os.path.abspath(log_path) if log_path else None
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == wanted:
            return logger

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler: logging.Handler
    try:
        if wanted is None:
            raise OSError("no log path")
        handler = logging.FileHandler(wanted, mode="a", encoding="utf-8")
    except OSError:
        handler = _StdoutHandler()
    handler.setFormatter(_TextFormatter())
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger