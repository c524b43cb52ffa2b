import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("gradcheck")
logger.setLevel(logging.INFO)

if not logger.handlers:
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.INFO)
    ch.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(ch)


def get_logger(name: str) -> logging.Logger:
    """Child logger of the package logger, e.g. ``gradcheck.core.checks``."""
    if name.startswith("gradcheck."):
        name = name[len("gradcheck."):]
    return logger.getChild(name)


def set_log_level(level):
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
