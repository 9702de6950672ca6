"""
Centralized logging configuration for the drug orders service.

Every module logs through ``logging.getLogger(__name__)``; this module wires
those loggers to the console (and optionally a file) with one shared format.
"""
import logging
import sys

from . import config

LOG_FORMAT = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"


def setup_logging(level: str = None, log_file: str = None) -> None:
    """
    Configure the root logger for the service.

    Args:
        level: Log level name, defaults to LOG_LEVEL from the environment
        log_file: Optional path of a persistent log file, defaults to LOG_FILE
    """
    level = (level or config.LOG_LEVEL).upper()
    log_file = log_file if log_file is not None else config.LOG_FILE

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Reduce verbosity from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
