import logging
import os
from logging.handlers import RotatingFileHandler
from typing import List

from site_inspector.platform.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_handlers: List[logging.Handler] = []


def _build_handlers() -> List[logging.Handler]:
    # Built once and shared: several RotatingFileHandlers on one file break rollover
    if _handlers:
        return _handlers

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(settings.LOG_DIR, settings.LOG_FILE),
                maxBytes=settings.LOG_MAX_BYTES,
                backupCount=settings.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    _handlers.extend(handlers)
    return _handlers


def get_logger(name: str) -> logging.Logger:
    """
    Module logger writing to stderr and, unless LOG_DIR is empty, to a
    rotating file under LOG_DIR.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(settings.LOG_LEVEL.upper())
    for handler in _build_handlers():
        logger.addHandler(handler)
    logger.propagate = False

    return logger
