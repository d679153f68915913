"""Logging for oci-structure.

Everything logs below the ``oci_structure`` logger. Evaluation code logs
through a context adapter so that each line carries the image being
checked; the structured format appends those fields as ``key=value``.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

ROOT_LOGGER = "oci_structure"

PLAIN_FORMAT = "%(levelname)s: %(message)s"
STRUCTURED_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _render_value(value: Any) -> str:
    text = str(value)
    if not text or any(c.isspace() for c in text) or '"' in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """Formatter that appends context fields as sorted key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = getattr(record, "context", None)
        if not fields:
            return message
        pairs = " ".join(f"{k}={_render_value(fields[k])}" for k in sorted(fields))
        return f"{message} {pairs}"


def configure_logging(
    level: str | int = "WARNING",
    structured: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Send oci-structure logs to stderr (or ``stream``).

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR) or number
        structured: Timestamped lines with context fields appended
        stream: Destination, stderr by default
    """
    if isinstance(level, str):
        number = logging.getLevelName(level.upper())
        if not isinstance(number, int):
            raise ValueError(f"unknown log level: {level}")
        level = number

    handler = logging.StreamHandler(stream or sys.stderr)
    if structured:
        handler.setFormatter(StructuredFormatter(STRUCTURED_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers = [handler]
    root.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get the logger for a module, e.g. ``get_logger("layers")``."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


class ContextAdapter(logging.LoggerAdapter):
    """Adds fixed context fields to every record.

    Fields passed per call through ``extra={"context": {...}}`` are merged
    over the adapter's own.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**(self.extra or {}), **extra.get("context", {})}
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger_with_context(name: str, **context: Any) -> ContextAdapter:
    """Get a module logger whose records carry ``context``.

    Example:
        logger = get_logger_with_context("check", image=reference)
        logger.debug("evaluated %d condition(s)", count)
    """
    return ContextAdapter(get_logger(name), context)


@contextmanager
def log_duration(
    logger: logging.Logger | logging.LoggerAdapter, stage: str
) -> Iterator[None]:
    """Log how long a stage took at debug level, also when it fails."""
    start = time.monotonic()
    try:
        yield
    finally:
        logger.debug("%s took %.3fs", stage, time.monotonic() - start)
