import logging
import os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ROOT_LOGGER_NAME = "room_booking"


def _level_from_env() -> int:
    name = os.getenv("ROOM_BOOKING_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(level: int | str | None = None) -> logging.Logger:
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    effective_level = level if level is not None else _level_from_env()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(effective_level)

    # Avoid duplicate console handlers
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)
    for handler in logger.handlers:
        handler.setLevel(effective_level)

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = logging.getLogger(ROOT_LOGGER_NAME)
    if not name or name == ROOT_LOGGER_NAME:
        return base
    if name.startswith(ROOT_LOGGER_NAME + "."):
        name = name[len(ROOT_LOGGER_NAME) + 1 :]
    return base.getChild(name)
