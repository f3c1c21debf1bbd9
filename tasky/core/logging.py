import logging
import os
from collections import OrderedDict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import structlog

ROOT_LOGGER_NAME = "tasky"


def _enforce_key_order_processor(key_order: list[str]):
    def _processor(_logger, _method_name, event_dict):
        ordered = OrderedDict()
        for key in key_order:
            if key in event_dict:
                ordered[key] = event_dict.pop(key)
        for k in sorted(event_dict.keys()):
            ordered[k] = event_dict[k]
        return ordered

    return _processor


def setup_logging(
    level: str | int = logging.INFO,
    *,
    json_logs: bool = False,
    log_dir: Optional[str | Path] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog and the stdlib ``tasky`` logger.

    Log records are rendered by structlog and emitted through a stream handler
    and, when ``log_dir`` is given, a rotating file handler at
    ``{log_dir}/tasky.log``.

    Args:
        level: Logger level, either a name ("INFO") or a logging constant.
        json_logs: If True, render JSON lines; otherwise use the console renderer.
        log_dir: Optional directory for the rotating log file.
        max_bytes: Maximum size in bytes before rotating the log file.
        backup_count: Number of rotated files to keep.

    Returns:
        structlog.stdlib.BoundLogger: The root ``tasky`` logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _enforce_key_order_processor(
                [
                    "timestamp",
                    "level",
                    "event",
                    "request_id",
                    "method",
                    "path",
                    "status_code",
                    "duration_ms",
                    "logger",
                ]
            ),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    stdlib_logger = logging.getLogger(ROOT_LOGGER_NAME)
    stdlib_logger.handlers.clear()
    stdlib_logger.setLevel(level)
    stdlib_logger.propagate = False

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    stdlib_logger.addHandler(stream_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=os.path.join(log_dir, f"{ROOT_LOGGER_NAME}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        stdlib_logger.addHandler(file_handler)

    return structlog.get_logger(ROOT_LOGGER_NAME)


def get_logger(name: str | None = ROOT_LOGGER_NAME, **bind) -> structlog.stdlib.BoundLogger:
    """Create or retrieve a named logger under the ``tasky`` namespace.

    Example:
        .. code-block:: python

            from tasky.core.logging import get_logger

            logger = get_logger("services.tasks")
            logger.info("task_created", task_id="...")
    """
    if not name:
        name = ROOT_LOGGER_NAME
    full_name = name if name.startswith(ROOT_LOGGER_NAME) else f"{ROOT_LOGGER_NAME}.{name}"
    logger = structlog.get_logger(full_name)
    if bind:
        logger = logger.bind(**bind)
    return logger
