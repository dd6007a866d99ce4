"""
Logging helpers shared by the bilr_tools modules and the analysis scripts.
"""

import logging
import sys

LOGGER_NAME = 'bilr_tools'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(log_file=None, log_level=logging.INFO):
    """
    Configure the package logger.

    Parameters:
    -----------
    log_file : str, optional
        Path of a file to log to in addition to the console
    log_level : int
        Logging level (e.g. logging.INFO)

    Returns:
    --------
    logging.Logger
        The configured 'bilr_tools' logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)

    # Drop handlers from an earlier call so messages are not duplicated
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_print(message, level='info'):
    """Log a message on the package logger at the named level."""
    logger = logging.getLogger(LOGGER_NAME)
    log_method = getattr(logger, level.lower(), None)
    if log_method is None:
        raise ValueError(f"Unknown log level: {level}")
    log_method(message)
