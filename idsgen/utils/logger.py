"""
Structured JSON logging for the IDS scenario generator.

Only the ``idsgen`` root logger gets handlers. Every library module logs
through ``logging.getLogger(__name__)`` and inherits them, attaching
pipeline context (flow counts, windows, seeds) through ``extra``; those keys
become top-level fields of each JSON record.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from pythonjsonlogger.json import JsonFormatter


_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def setup_logger(
    name: str = "idsgen",
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10_485_760,
    backup_count: int = 5,
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the package logger with a stdout handler and an optional rotating file.

    Module loggers (``idsgen.simulation.*``, ``idsgen.export.*``) inherit these
    handlers. Calling it again on a configured logger only updates the level.

    Args:
        name: Logger name.
        level: Logging level string.
        log_file: Optional path for rotating file handler.
        max_bytes: Max bytes per log file before rotation.
        backup_count: Number of rotated backup files to keep.
        json_format: Whether to use structured JSON output.

    Returns:
        Configured Logger instance.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if logger.handlers:
        return logger

    logger.propagate = False

    # ── Formatter ───────────────────────────────────────────────────
    if json_format:
        formatter: logging.Formatter = JsonFormatter(
            _LOG_FORMAT,
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter(_LOG_FORMAT)

    # ── Console handler ─────────────────────────────────────────────
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    # ── File handler (rotating) ─────────────────────────────────────
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
