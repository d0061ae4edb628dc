"""Shared logger for the calculator server and client."""
import logging
import os
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def make_logger(name: str) -> logging.Logger:
    """
    Build (once) a logger writing to stderr.

    The level defaults to INFO and can be overridden with ``LINE_CALCULATOR_LOG_LEVEL``;
    unknown level names fall back to INFO.

    :param str name: Logger name

    :return: Configured logger
    :rtype: logging.Logger
    """
    log = logging.getLogger(name)
    if log.handlers:
        return log

    level = os.environ.get("LINE_CALCULATOR_LOG_LEVEL", "INFO").upper()
    # getLevelName() maps known names to their number and unknown ones to a string
    if not isinstance(logging.getLevelName(level), int):
        level = "INFO"
    log.setLevel(level)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(handler)
    return log


logger = make_logger("line_calculator")
