import sys
from loguru import logger
from .config import settings


def setup_logging(level: str | None = None, serialize: bool | None = None):
    """
    Replace loguru's default sink with one configured from settings.

    Structured fields passed as keyword arguments (logger.info("msg", key=value))
    land in the record's ``extra`` and are included in JSON output when
    LOG_JSON is enabled.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        serialize=settings.log_json if serialize is None else serialize,
        backtrace=False,
        diagnose=False,
    )
    return logger
