"""
Expiration window helpers.

The node reports ``head_block_time`` as a timezone-less UTC timestamp such
as ``2023-01-01T00:00:00`` (sometimes with a ``.500`` fraction). The
transaction expiration is written back in the same shape.
"""
import logging
from datetime import datetime, timedelta

from ._rate_limited_log import rate_limited_log

logger = logging.getLogger(__name__)

CHAIN_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def parse_chain_time(value: str) -> datetime:
    """
    Parse a node timestamp.

    Raises:
        ValueError: If ``value`` is not in ``YYYY-MM-DDTHH:MM:SS[.fff]`` form
    """
    if not isinstance(value, str):
        raise ValueError(f"Chain time must be a string, got {type(value).__name__}")
    seconds, dot, fraction = value.partition(".")
    parsed = datetime.strptime(seconds, CHAIN_TIME_FORMAT)
    if dot:
        if not fraction.isdigit():
            raise ValueError(f"Invalid fractional seconds in chain time: {value!r}")
        parsed += timedelta(microseconds=int(fraction[:6].ljust(6, "0")))
    return parsed


def format_chain_time(value: datetime) -> str:
    """Format a naive UTC datetime the way the node expects it."""
    return value.strftime(CHAIN_TIME_FORMAT)


def add_milliseconds(head_block_time: str, offset_ms: int) -> str:
    """
    Shift a chain timestamp by ``offset_ms`` milliseconds.

    Day, month and year rollover are handled by ``datetime``. If
    ``head_block_time`` cannot be parsed it is returned unchanged: the
    expiration is advisory on the client side and the node will reject a
    transaction whose expiration it does not accept.

    Args:
        head_block_time: Timestamp in ``YYYY-MM-DDTHH:MM:SS`` form, UTC
        offset_ms: Milliseconds to add

    Returns:
        The shifted timestamp, or ``head_block_time`` itself on parse failure
    """
    try:
        shifted = parse_chain_time(head_block_time) + timedelta(milliseconds=offset_ms)
        return format_chain_time(shifted)
    except (ValueError, TypeError, OverflowError) as e:
        rate_limited_log(
            f"Could not compute expiration from head block time {head_block_time!r}: {e}",
            level="warning",
            logger_instance=logger,
        )
        return head_block_time
