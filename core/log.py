import os
import sys

from loguru import logger


def configure_logging(level=None):
    logger.remove()
    logger.add(sys.stderr, level=(level or os.getenv("LOG_LEVEL", "INFO")).upper())
