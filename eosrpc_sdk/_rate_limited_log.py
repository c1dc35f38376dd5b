"""
Rate-limited warnings shared across the SDK.

A node that keeps returning the same malformed head-block time, or keeps
demanding a key the caller does not hold, would otherwise flood the log
once per transaction.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# One entry per (level, message), forgotten after an hour
_seen_cache = TTLCache(maxsize=256, ttl=3600)
_seen_cache_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    logger_instance: Optional[logging.Logger] = None
) -> None:
    """
    Emit ``message`` once, then suppress identical messages until the
    cache entry expires.

    Args:
        message: Message to log
        level: Log level name (debug, info, warning, error, critical)
        logger_instance: Logger to use, defaults to this module's logger
    """
    target = logger_instance or logger
    emit = getattr(target, level.lower(), target.warning)
    key = f"{level}:{message}"

    with _seen_cache_lock:
        if key in _seen_cache:
            return
        emit(message)
        _seen_cache[key] = True


def reset_rate_limited_log() -> None:
    """Forget every message seen so far."""
    with _seen_cache_lock:
        _seen_cache.clear()
