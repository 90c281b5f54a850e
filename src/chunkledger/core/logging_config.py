import logging
import os
import sys
from typing import Optional

LOG_LEVEL_ENV = "CHUNKLEDGER_LOG_LEVEL"


def setup_logging(
    component_name: str = "chunkledger",
    log_level: Optional[str] = None,
) -> logging.Logger:
    """
    Set up logging for the package (or one of its components).

    Library modules only create loggers with logging.getLogger(__name__);
    applications call this once to attach a handler.

    Args:
        component_name: Logger name, "chunkledger" configures the whole package
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to
            CHUNKLEDGER_LOG_LEVEL env var or INFO

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = os.getenv(LOG_LEVEL_ENV, "INFO")

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    logger.addHandler(handler)
    logger.propagate = False

    return logger
