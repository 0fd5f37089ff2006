"""
Log output for the suggestion service.

Production writes one JSON object per line. Development and tests get a
short text line, colored when stderr is a terminal. Both keep the context
the services attach through ``extra=``.
"""

import json
import logging
import sys
import time

# ``extra=`` keys set by the services and the timing middleware
CONTEXT_FIELDS = ("request_id", "principal_id", "suggestion_id", "event_type", "duration_ms")


def record_context(record: logging.LogRecord) -> dict:
    """Context fields present on *record*, in ``CONTEXT_FIELDS`` order."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, UTC timestamps taken from the record."""

    converter = time.gmtime
    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03dZ"

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO    logger: message [suggestion_id=... event_type=...]``"""

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def __init__(self, color: bool = False):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S")
        self.color = color

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = record_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        if self.color:
            line = f"\033[{self.LEVEL_COLORS.get(record.levelno, '0')}m{line}\033[0m"
        return line


def configure_logging(app):
    """Route all logging through a single stderr handler.

    ``LOG_LEVEL`` overrides the default of INFO in production and DEBUG
    everywhere else.
    """
    production = not (app.debug or app.testing)
    level_name = (app.config.get("LOG_LEVEL") or ("INFO" if production else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        JSONFormatter() if production else ReadableFormatter(color=sys.stderr.isatty())
    )
    # force=True so repeated app creation in tests replaces the handler
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.testing:
        app.logger.info("Logging at %s (%s)", level_name, "json" if production else "text")
