"""
Centralized logging configuration for the wealthify client.

Every record carries the service name and the id of the request being
processed (``-`` outside of a request), so log lines from the pipeline,
httpx and websockets can be correlated:

    2024-01-01 12:00:00.000 | INFO     | wealthify-client | 3f9a2c1d0 | ...
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<yellow>{extra[request_id]}</yellow> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Client libraries whose stdlib loggers are routed into loguru
LIBRARY_LOGGERS = ("httpx", "httpcore", "websockets")


class InterceptHandler(logging.Handler):
    """
    Route standard library log records (httpx, websockets) into loguru.
    See: https://loguru.readthedocs.io/en/stable/overview.html#entirely-compatible-with-standard-logging
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from the logging module to report the real caller
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


@contextmanager
def request_context(request_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with a request id.

    Works across awaits: loguru stores the value in a context variable.
    """
    with logger.contextualize(request_id=request_id):
        yield


def setup_logging(level: str | None = None, serialize: bool | None = None) -> None:
    """
    Configure loguru as the single sink for client logs.

    Args:
        level: Minimum level to emit. Defaults to settings.LOG_LEVEL.
        serialize: Emit one JSON object per record instead of the text format.
            Defaults to settings.LOG_JSON.
    """
    from wealthify_core.config import settings

    if serialize is None:
        serialize = settings.LOG_JSON

    logger.remove()
    logger.configure(extra={"service": settings.SERVICE_NAME, "request_id": "-"})

    if serialize:
        logger.add(sys.stdout, level=level or settings.LOG_LEVEL, serialize=True)
    else:
        logger.add(
            sys.stdout,
            format=LOG_FORMAT,
            level=level or settings.LOG_LEVEL,
            colorize=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in LIBRARY_LOGGERS:
        _logger = logging.getLogger(name)
        _logger.handlers = [InterceptHandler()]
        _logger.propagate = False

    logger.info(f"Logging initialized for {settings.SERVICE_NAME}")
