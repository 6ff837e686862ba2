# dexarb/logger.py
import logging
import sys


def setup_console_logger(name: str = "dexarb", level: str = "INFO") -> logging.Logger:
    """
    Sets up the standard Python logger for console output.
    Safe to call repeatedly; handlers are only attached once.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(module)s | %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
