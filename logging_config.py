# logging_config.py
import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FILE = os.environ.get("LOG_FILE_PATH", "/tmp/quest_engine.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def setup_logging():
    """Configures a rotating file logger for the API, the worker and the CLI."""
    logger = logging.getLogger()

    # Avoid adding handlers multiple times
    if any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        return

    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    # 10MB per file, keep last 5 files
    handler = RotatingFileHandler(LOG_FILE, maxBytes=10*1024*1024, backupCount=5)
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logger.addHandler(handler)
