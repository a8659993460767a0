"""
Error types and error logging for pagekeep.

Only StorageFailure is meant to reach callers of CRUD operations.
The other categories are recovered locally with a deterministic fallback.
"""

import logging
import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class PagekeepError(Exception):
    """Base class for pagekeep errors."""


class StorageFailure(PagekeepError):
    """The durable medium is unavailable or rejected a write."""


class NotFoundOrStorageFailure(StorageFailure):
    """An update could not be applied to the keyed record."""


class EnhancementFailure(PagekeepError):
    """Summarization or tag extraction failed."""


class RerankFailure(PagekeepError):
    """Semantic reranking was unavailable, timed out, or returned bad output."""


class PreferenceFailure(PagekeepError):
    """Search preferences could not be read or written."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting PAGEKEEP_STORE_PATH."""
    store = os.environ.get("PAGEKEEP_STORE_PATH")
    if store:
        return Path(store) / "pagekeep-errors.log"
    return Path.home() / ".pagekeep" / "pagekeep-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Append ``exc`` and its traceback to the error log.

    The log is created owner-only. Failure to write it is ignored so the
    caller can still report the original error.

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    header = datetime.now(timezone.utc).isoformat()
    if context:
        header = f"{header} {context}"
    entry = "\n".join([
        "",
        "-" * 60,
        header,
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    ])
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(entry)
    except OSError:
        logging.getLogger(__name__).debug("Could not write %s", log_path)
    return log_path
