"""Structured logging setup for bleepclient.

Every module logs through ``logging.getLogger(__name__)``; nothing here is
required for the library to work. Applications (and the CLI) call
``configure_logging`` to get either plain text or one JSON object per
line on stderr.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import TextIO

# LogRecord attributes promoted to top-level JSON keys when present.
EXTRA_FIELDS = ("method", "path", "status", "duration_ms", "upload_id", "part_number")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# "AWS AKID:signature" and "Signature=..." query values.
_SIGNATURE_RE = re.compile(r"(AWS [^:\s]+:|Signature=)[A-Za-z0-9+/=%]+")


class JSONFormatter(logging.Formatter):
    """Render a record as a single-line JSON object.

    Keys: timestamp (UTC, ISO 8601), level, logger, message, then any of
    EXTRA_FIELDS set on the record, then ``exception`` if one is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class RedactSignatures(logging.Filter):
    """Mask header and presigned-URL signatures in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SIGNATURE_RE.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(
    level: str = "INFO", fmt: str = "text", stream: TextIO | None = None
) -> logging.Handler:
    """Install a single stderr handler on the root logger.

    Handlers installed earlier are removed first, so calling this twice
    does not duplicate output.

    Args:
        level: Level name; unknown names fall back to INFO.
        fmt: "json" for JSONFormatter, anything else for plain text.
        stream: Where to write; defaults to sys.stderr.

    Returns:
        The installed handler.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    handler.addFilter(RedactSignatures())
    root.addHandler(handler)

    # httpx logs every request line at INFO.
    logging.getLogger("httpx").setLevel(
        logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    )
    return handler
