"""Logging utility with verbosity levels and file logging."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

DEFAULT_LOGS_DIR = Path.home() / "gwanli" / "logs"


def file_formatter() -> logging.Formatter:
    """Formatter for DEBUG log files, with the calling function and line."""
    return logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    logs_dir: Optional[str] = None,
) -> logging.Logger:
    """
    Set up logging with verbosity levels and file output.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional log file path. If None, a timestamped file is
            created under ``logs_dir``.
        logs_dir: Directory for timestamped log files (default: ~/gwanli/logs)

    Returns:
        Configured logger instance
    """
    # Determine log level based on verbosity
    if verbosity <= 0:
        log_level = logging.WARNING
    elif verbosity == 1:
        log_level = logging.INFO
    else:
        log_level = logging.DEBUG

    if log_file is None:
        directory = Path(logs_dir).expanduser() if logs_dir else DEFAULT_LOGS_DIR
        directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = directory / f"log_{timestamp}.log"
    else:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # Console goes to stderr so command output stays clean on stdout
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    # File handler (always DEBUG level to capture everything)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter())
    root_logger.addHandler(file_handler)

    # The HTTP client logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Verbosity: {verbosity}, Log file: {log_path}")

    return logger
