"""Logging configuration for the brand extraction service.

Console output stays at INFO (or ``BRAND_LOG_LEVEL``); the log file also
keeps the DEBUG lines each provider attempt writes, including raw model replies.
"""
import logging
import os
from pathlib import Path
from datetime import datetime

# Create logs directory
LOGS_DIR = Path(os.getenv("BRAND_LOG_DIR", "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Create log file with timestamp
LOG_FILE = LOGS_DIR / f"brandkit_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

# HTTP client libraries log every request at INFO
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "openai")


def resolve_level(value, default: int = logging.INFO) -> int:
    """Accept a level name ("debug") or number ("10"); anything else gives ``default``."""
    if not value:
        return default
    value = str(value).strip()
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


def setup_logger(name: str = "brandkit", level: int = logging.INFO) -> logging.Logger:
    """Set up a logger with file and console handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    file_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(detailed_formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    return logger


# Create default logger instance
logger = setup_logger(level=resolve_level(os.getenv("BRAND_LOG_LEVEL")))
