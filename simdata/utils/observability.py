from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator


_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for command-line runs.

    Library code only uses module loggers; handlers are the caller's business.
    """
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=_FORMAT)
    # httpx logs every request at INFO; a run submits thousands of them.
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))


@contextmanager
def log_duration(logger: Any, operation: str, **fields: object) -> Iterator[None]:
    """Log duration of an operation.

    Uses logger.info with a stable key=value format to keep logs parseable even without
    a JSON logging formatter.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        extras = " ".join(f"{k}={v}" for k, v in fields.items())
        if extras:
            logger.info("op=%s duration_ms=%.2f %s", operation, elapsed_ms, extras)
        else:
            logger.info("op=%s duration_ms=%.2f", operation, elapsed_ms)
