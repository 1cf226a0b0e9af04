"""
Helpers shared by the feature managers.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def iso_time(value: Optional[datetime]) -> str:
    """UTC ISO-8601 time with millisecond precision and a ``Z`` suffix."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def get_hash(*args: Any) -> str:
    """
    Deterministic SHA-1 over the string forms of ``args``.

    ``None`` contributes nothing; datetimes contribute their UTC ISO form.

    Example:

    .. code-block:: python

        get_hash("+6281100000", message.time, "+6281234567", "Hello")
    """
    sha = hashlib.sha1()
    for arg in args:
        if arg is None:
            continue
        if isinstance(arg, datetime):
            arg = iso_time(arg)
        sha.update(str(arg).encode("utf-8"))
    return sha.hexdigest()


def intl_number(number: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """
    Normalize a phone number to international format.

    A leading ``0`` is replaced by ``country_code``; a plain digit string
    longer than 5 digits gets a ``+``. Short codes and alphanumeric senders
    are returned unchanged.

    Args:
        number: Phone number
        country_code: International prefix, e.g. "+62" or "62"

    Returns:
        Normalized number
    """
    if not number:
        return number
    if number.startswith("0") and len(number) > 5:
        if not country_code:
            logger.debug(f"No country code configured, leaving {number} as is")
            return number
        number = country_code.lstrip("+") + number[1:]
    if number.isdigit() and len(number) > 5:
        number = "+" + number
    return number


def localize_number(number: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """
    Convert an international number of the configured country to local format.

    Example:

    .. code-block:: python

        localize_number("+6281234567", "+62")    # '081234567'
    """
    if not number or not country_code:
        return number
    prefix = "+" + country_code.lstrip("+")
    if number.startswith(prefix):
        return "0" + number[len(prefix):]
    return number
