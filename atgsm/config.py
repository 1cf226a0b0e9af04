"""
Modem configuration.

All durations are in seconds.
"""

import logging
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class ModemConfig:
    """
    Tunables for a single modem instance.

    Attributes:
        timeout: Default per-read timeout for AT transactions
        send_timeout: Timeout for the SMS commit step (network round trip)
        ussd_timeout: Time to wait for a +CUSD response per USSD step
        monitor_interval: Period of the signal/storage monitors
        timeout_threshold: Cumulative timeouts before the modem is reported unresponsive
        delete_message_on_read: Delete messages from storage once dispatched
        request_message_status: Request delivery reports for sent messages
        request_message_reply: Set the reply path flag on sent messages
        send_message_as_flash: Send messages as class 0 (flash)
        empty_when_full: Empty the SMS storage when it reports full
        msg_ref_file: JSON file persisting the concatenation reference counter
        country_code: International prefix (e.g. "+62") used to normalize local numbers
        backlog_max_lines: Maximum unresolved notification lines kept for recovery
        backlog_max_age: Maximum age of an unresolved notification line
        log_notifications: Log unsolicited notifications at INFO level
    """
    timeout: float = 5.0
    send_timeout: float = 60.0
    ussd_timeout: float = 30.0
    monitor_interval: float = 600.0
    timeout_threshold: int = 100
    delete_message_on_read: bool = False
    request_message_status: bool = True
    request_message_reply: bool = False
    send_message_as_flash: bool = False
    empty_when_full: bool = False
    msg_ref_file: Optional[str] = None
    country_code: Optional[str] = None
    backlog_max_lines: int = 64
    backlog_max_age: float = 300.0
    log_notifications: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModemConfig":
        """
        Build a configuration from a mapping.

        Keys may be snake_case or camelCase; unknown keys are ignored.

        Example:

        .. code-block:: python

            config = ModemConfig.from_dict({"sendTimeout": 90, "emptyWhenFull": True})
        """
        names = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _snake_case(key)
            if name in names:
                values[name] = value
            else:
                logger.debug(f"Ignoring unknown config key: {key}")
        return cls(**values)

    def merge(self, **overrides: Any) -> "ModemConfig":
        """Return a copy with non-None overrides applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
