# folderplan/services/logging.py
import sys
from loguru import logger

from ..config.paths import get_user_log_dir

CONSOLE_FORMAT = "<level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process} | {thread.name} | {name}:{function}:{line} - {message}"


def _add_file_sink() -> str:
    """Daily folderplan_<date>.log in the user log dir; returns its path pattern."""
    pattern = str(get_user_log_dir() / "folderplan_{time:YYYY-MM-DD}.log")
    logger.add(pattern, level="DEBUG", format=FILE_FORMAT, rotation="1 day",
               retention="7 days", compression="zip", enqueue=True, encoding="utf-8")
    return pattern

def setup_logging(level="INFO", verbose=False, log_to_file=True):
    """Replaces loguru's default sink with folderplan's console (and file) sinks."""
    log_level = "DEBUG" if verbose else level
    logger.remove()
    logger.add(sys.stderr, level=log_level, format=CONSOLE_FORMAT, colorize=True)

    if not log_to_file:
        logger.debug(f"Logging initialized. Level: {log_level}. File logging disabled.")
        return
    try:
        pattern = _add_file_sink()
    except (OSError, ValueError) as e:
        logger.error(f"Could not configure file logging: {e}")
        return
    logger.info(f"Logging initialized. Level: {log_level}. Log file: {pattern}")
