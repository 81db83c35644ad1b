import logging
from typing import Optional

from backend.app.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(name: str = "backend", level: Optional[str] = None,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Returns a logger with a console handler (and a file handler when
    LOG_FILE is configured). Handlers are attached only once per name.
    """
    logger = logging.getLogger(name)
    level = (level or settings.LOG_LEVEL).upper()
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        log_file = log_file if log_file is not None else settings.LOG_FILE
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
