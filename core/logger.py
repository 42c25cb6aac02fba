"""
Habit Mindmap logging setup.

Handlers:
- logs/system.log: regular operations (INFO+)
- logs/error.log: failures and rejected commands that indicate corruption (ERROR+)
- console: only what is useful to the user (WARNING+)

HABIT_MINDMAP_LOG_LEVEL overrides the file level (e.g. DEBUG).
"""
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGS_DIR = Path(__file__).parent.parent / "logs"

MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3

ROOT_LOGGER_NAME = "habit_mindmap"

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "[%(levelname)s] %(message)s"


def _rotating_handler(filename: str, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        LOGS_DIR / filename,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _level_from_env(default: int) -> int:
    name = os.getenv("HABIT_MINDMAP_LOG_LEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def setup_logging(
    log_level: Optional[int] = None,
    console_level: int = logging.WARNING,
) -> logging.Logger:
    """
    Attach file and console handlers to the project root logger.

    Safe to call more than once; previous handlers are replaced.

    Args:
        log_level: level of system.log (default INFO, or HABIT_MINDMAP_LOG_LEVEL)
        console_level: level of the stderr handler

    Returns:
        the project root logger
    """
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    if log_level is None:
        log_level = _level_from_env(logging.INFO)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    file_formatter = logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    root.addHandler(_rotating_handler("system.log", log_level, file_formatter))
    root.addHandler(_rotating_handler("error.log", logging.ERROR, file_formatter))

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``habit_mindmap.<name>``, or the project root logger."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)


def log_corruption(source: str, raw_content: str, error_msg: str) -> None:
    """
    Append an unreadable state payload to logs/corruption_dump.log.

    Args:
        source: where the payload came from (file path, request)
        raw_content: the offending content, truncated to 500 chars
        error_msg: what was wrong with it
    """
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().isoformat()
    with open(LOGS_DIR / "corruption_dump.log", "a", encoding="utf-8") as dump:
        dump.write(f"[{stamp}] {source}: {error_msg}\n")
        dump.write(f"  Raw: {raw_content[:500]}\n")
        dump.write("-" * 50 + "\n")

    get_logger("state_repository").warning(f"Corrupted state in {source}: {error_msg}")
