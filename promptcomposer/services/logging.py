# promptcomposer/services/logging.py
import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.paths import get_user_log_dir

CONSOLE_FORMAT = "<level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process} | {thread.name} | {name}:{function}:{line} - {message}"

def _console_filter(verbose: bool):
    # Third-party records only reach the console in verbose mode
    def _filter(record) -> bool:
        return verbose or record["name"].startswith("promptcomposer")
    return _filter

def _add_file_sink(log_dir: Optional[Path]) -> Optional[str]:
    try:
        target_dir = log_dir if log_dir is not None else get_user_log_dir()
        target_dir.mkdir(parents=True, exist_ok=True)
        log_file_str = str(target_dir / "promptcomposer_{time:YYYY-MM-DD}.log")
        logger.add(
            log_file_str,
            level="DEBUG", # Everything goes to the file
            format=FILE_FORMAT,
            rotation="1 day",
            retention="7 days",
            compression="zip",
            enqueue=True,
            encoding="utf-8",
        )
        return log_file_str
    except Exception as e:
        # Fallback if file logging fails (e.g., permissions)
        logger.error(f"Could not configure file logging in {log_dir or '<user log dir>'}: {e}")
        logger.warning("File logging disabled.")
        return None

def setup_logging(level="INFO", verbose=False, log_to_file=True, log_dir: Optional[Path] = None):
    """
    Configures Loguru sinks for the CLI: a colored stderr sink and a daily rotated file.

    PROMPTCOMPOSER_LOG_LEVEL overrides `level` unless `verbose` is set.
    """
    log_level = "DEBUG" if verbose else os.environ.get("PROMPTCOMPOSER_LOG_LEVEL", level).upper()

    logger.remove()
    logger.enable("promptcomposer")

    logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        colorize=True,
        filter=_console_filter(verbose),
        enqueue=True # Make logging calls non-blocking
    )

    log_file_str = _add_file_sink(log_dir) if log_to_file else None
    logger.info(f"Logging initialized. Level: {log_level}. Log file: {log_file_str or 'disabled'}")
    return log_file_str
