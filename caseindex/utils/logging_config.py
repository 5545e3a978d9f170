import sys
from pathlib import Path

from loguru import logger

from caseindex.utils.logging_utils import add_optional_sinks, env_log_level

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message} | {extra}"


def configure_logger(
    log_file: str = "caseindex.log",
    level: str | None = None,
    log_dir: str | Path = "logs",
) -> None:
    """
    Replace loguru's default sink with the caseindex sinks.

    Console output goes to stderr so CLI JSON on stdout stays clean.
    """
    level = (level or env_log_level()).upper()
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level)
    logger.add(
        log_dir / log_file,
        rotation="10 MB",
        retention="10 days",
        level=level,
        format=FILE_FORMAT,
        backtrace=True,
        diagnose=True,
    )
    add_optional_sinks(log_dir)
    logger.debug(f"Logging configured at {level} (files under {log_dir})")
