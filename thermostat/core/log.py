import logging
from logging.handlers import RotatingFileHandler

from .config import settings

_configured = False


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    global _configured
    if _configured:
        return

    logger = logging.getLogger()
    logger.setLevel((level or settings.log_level).upper())

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file (avoid filling SD card)
    path = settings.log_file if log_file is None else log_file
    if path:
        fh = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Silence per-request access lines
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True
