"""
log.py — Role-tagged logging with elapsed time.

    [AGT] 0.12s - QueryRequest received from http://example.com/tam
"""
import logging
import sys
import time

logger = logging.getLogger("teep")

START_TIME = time.time()


def log(role, msg):
    """Structured logging with timing information."""
    logger.info("[%s] %.2fs - %s", role, time.time() - START_TIME, msg)


def log_err(role, msg):
    """Error logging."""
    logger.warning("[%s] %.2fs - %s", role, time.time() - START_TIME, msg)


def configure_logging(verbose=False):
    """Send the teep logger to stderr; the library itself never configures handlers."""
    global START_TIME
    START_TIME = time.time()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False
