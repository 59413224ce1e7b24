"""Logging for the queue, client and CLI, built on loguru.

Queue internals log through get_logger(__name__); per-operation messages use
bind_operation() so the operation id and kind travel with the record. Records
from stdlib loggers (httpx, httpcore, asyncio) are forwarded to loguru by
InterceptHandler.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger, Record

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_CONSOLE_FORMAT = (
    "<dim>{{time:HH:mm:ss}}</dim> | "
    "<level>{{level: <8}}</level> | "
    "<cyan>{source}</cyan> - "
    "<level>{{message}}</level>\n{{exception}}"
)

_FILE_FORMAT = (
    "{{time:YYYY-MM-DD HH:mm:ss.SSS}} | "
    "{{level: <8}} | "
    "{source}:{{function}}:{{line}} | "
    "{{extra}} | "
    "{{message}}\n{{exception}}"
)

_configured = False


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the original caller."""

    def emit(self, record: logging.LogRecord) -> None:
        """Re-emit a stdlib record through loguru."""
        from types import FrameType

        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        # Skip frames inside the logging module itself
        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame is not None:
            if frame.f_code.co_filename != logging.__file__:
                break
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _source(record: Record) -> str:
    return "{extra[name]}" if "name" in record["extra"] else "{name}"


def _console_format(record: Record) -> str:
    return _CONSOLE_FORMAT.format(source=_source(record))


def _file_format(record: Record) -> str:
    return _FILE_FORMAT.format(source=_source(record))


def setup_logging(
    level: LogLevel = "INFO",
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    serialize: bool = False,
) -> Logger:
    """Install the console sink (and optional rotating file sink).

    Args:
        level: Level from settings
        verbose: Force DEBUG; wins over quiet
        quiet: Force WARNING
        log_file: Rotating file sink path; always records DEBUG and up
        rotation: loguru rotation rule for the file sink
        retention: loguru retention rule for the file sink
        serialize: Write the file sink as JSON lines

    Returns:
        The configured loguru logger
    """
    global _configured

    effective_level: LogLevel
    if verbose:
        effective_level = "DEBUG"
    elif quiet:
        effective_level = "WARNING"
    else:
        effective_level = level

    logger.remove()
    logger.add(
        sys.stderr,
        level=effective_level,
        format=_console_format,
        colorize=True,
        backtrace=True,
        diagnose=True,
    )

    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format=_file_format,
            rotation=rotation,
            retention=retention,
            compression="gz",
            serialize=serialize,
        )

    _route_stdlib_logging(effective_level)

    _configured = True
    return logger


def _route_stdlib_logging(level: LogLevel) -> None:
    """Send stdlib logging through loguru; httpx request lines only at DEBUG."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    http_level = logging.DEBUG if level in ("TRACE", "DEBUG") else logging.WARNING
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(http_level)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> Logger:
    """Logger with the module name bound as ``name``."""
    return logger.bind(name=name)


def bind_operation(op_id: str, kind: str) -> Logger:
    """Logger carrying a queued operation's id and kind."""
    return logger.bind(name="queue", op=op_id, kind=kind)


class LogContext:
    """Bind extra fields to every record logged inside the ``with`` block.

    apply_operations() uses it to tag a bulk run:

        with LogContext(bulk_total=len(specs)):
            ...
    """

    def __init__(self, **context: Any) -> None:
        self._context = context
        self._token: Any = None

    def __enter__(self) -> Logger:
        self._token = logger.contextualize(**self._context)
        self._token.__enter__()
        return logger

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._token:
            self._token.__exit__(exc_type, exc_val, exc_tb)


def is_configured() -> bool:
    """Whether setup_logging() has run since the last reset."""
    return _configured


def reset_logging() -> None:
    """Remove all sinks (used by tests)."""
    global _configured
    logger.remove()
    _configured = False
