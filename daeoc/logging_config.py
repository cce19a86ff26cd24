"""
Console and file logging for applications built on daeoc.

The library itself only attaches a NullHandler to the 'daeoc' logger;
setup_logging is meant for scripts that want solver progress printed.
"""
import logging
import sys
from typing import Optional

LOGGER_NAME = "daeoc"
FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


def _is_own(handler: logging.Handler) -> bool:
    return getattr(handler, '_daeoc_handler', False)


def setup_logging(level: int = logging.INFO,
                  log_file: Optional[str] = None,
                  stream=None) -> logging.Logger:
    """
    Sends 'daeoc' records to stream (stderr by default) and, optionally, to
    log_file. Handlers installed by an earlier call are closed and replaced;
    handlers added by the application are left alone.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in [h for h in logger.handlers if _is_own(h)]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(FORMAT, datefmt='%H:%M:%S')
    handlers = [logging.StreamHandler(sys.stderr if stream is None else stream)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._daeoc_handler = True
        logger.addHandler(handler)

    logger.debug("Logging to %s", log_file if log_file else "console")
    return logger
