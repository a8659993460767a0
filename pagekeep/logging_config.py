"""
Logging configuration for pagekeep.

Quiet by default; PAGEKEEP_VERBOSE=1 or --verbose turns on debug output.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# HTTP client libraries log every request at INFO/DEBUG
_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "openai", "anthropic")

OPS_LOG_NAME = "pagekeep-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

_DEBUG_FORMAT = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")
_OPS_FORMAT = logging.Formatter("%(asctime)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


def configure_quiet_mode(quiet: bool = True):
    """Silence library warnings and the HTTP client loggers (no-op if ``quiet`` is False)."""
    if not quiet:
        return
    warnings.filterwarnings("ignore")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def _has_stderr_handler(logger: logging.Logger) -> bool:
    return any(getattr(h, "stream", None) is sys.stderr for h in logger.handlers)


def enable_debug_mode():
    """Send DEBUG records from pagekeep and its HTTP clients to stderr."""
    warnings.filterwarnings("default")
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not _has_stderr_handler(root):
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG)
        console.setFormatter(_DEBUG_FORMAT)
        root.addHandler(console)
    for name in ("pagekeep", *_NOISY_LOGGERS):
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """
    Attach the store's operations log (``pagekeep-ops.log``, rotated).

    The log records saves, edits, deletes and enrichment at INFO whether
    or not debug output is on. Callers remove the returned handler when
    they close the store.
    """
    store_dir = Path(store_path)
    store_dir.mkdir(parents=True, exist_ok=True)
    ops = RotatingFileHandler(
        store_dir / OPS_LOG_NAME,
        maxBytes=OPS_LOG_MAX_BYTES,
        backupCount=OPS_LOG_BACKUPS,
        encoding="utf-8",
    )
    ops.setLevel(logging.INFO)
    ops.setFormatter(_OPS_FORMAT)

    package_logger = logging.getLogger("pagekeep")
    package_logger.addHandler(ops)
    # Quiet mode must not hide INFO from the file
    if package_logger.level == logging.NOTSET or package_logger.level > logging.INFO:
        package_logger.setLevel(logging.INFO)
    return ops
