"""
Logging Configuration
Sets up the package logger. The TUI owns the terminal, so records go to a
file unless a console stream is requested explicitly.
"""
import logging
from pathlib import Path
from typing import Optional, TextIO


def default_log_file() -> Path:
    return Path.home() / ".metascope" / "metascope.log"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configures the logger for the 'metascope' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Path of the log file. Defaults to ~/.metascope/metascope.log
        stream: Optional console stream (used by non-interactive commands)

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger("metascope")
    logger.setLevel(level)
    logger.propagate = False

    # Avoid duplicate handlers when called twice (tests, trogon relaunch)
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    # Format: Time - Module - Level - Message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    path = Path(log_file) if log_file else default_log_file()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    except OSError:
        file_handler = None
    if file_handler is not None:
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if stream is not None:
        console_handler = logging.StreamHandler(stream)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.debug("Logging initialized (%s)", path)
    return logger
