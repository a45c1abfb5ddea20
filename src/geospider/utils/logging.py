"""
Logging with Rich for readable console output and a plain-text log file.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install as install_rich_traceback

install_rich_traceback(show_locals=False)

# Global console for rich output
console = Console()

LOGGER_NAME = "geospider"


class SafeFileHandler(logging.FileHandler):
    """FileHandler that ensures the log directory exists before every write."""

    def emit(self, record):
        """Emit a record, recreating the log directory if it was removed."""
        try:
            Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            # Let the parent handler report the write failure
            pass
        super().emit(record)


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> logging.Logger:
    """
    Set up the geospider logger with a Rich console handler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for a plain-text log

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    console_handler = RichHandler(console=console, rich_tracebacks=True, markup=True)
    console_handler.setLevel(getattr(logging, level.upper()))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = SafeFileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    return logger


def log_error(error: Exception, logger: logging.Logger, context: str = "") -> None:
    """Log an error with optional context."""
    if context:
        logger.error(f"ERROR: {context}: {error}")
    else:
        logger.error(f"ERROR: {error}")


def log_status(message: str, logger: logging.Logger, tag: str = "INFO") -> None:
    """Log a tagged status message."""
    logger.info(f"{tag}: {message}" if tag else message)
