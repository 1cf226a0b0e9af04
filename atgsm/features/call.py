"""
Voice call manager.
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ..core.events import EVENT_DIAL
from ..driver import DriverKeys as K
from ..exceptions import GsmError
from ..utils import get_hash, intl_number

if TYPE_CHECKING:
    from ..core import ModemCore

logger = logging.getLogger(__name__)


class CallManager:
    """
    Dial, answer and hang up voice calls.

    Incoming calls are reported by the modem as "ring" events.
    """

    def __init__(self, modem_core: "ModemCore") -> None:
        """
        Initialize call manager.

        Args:
            modem_core: ModemCore instance for AT command execution
        """
        self.modem = modem_core
        logger.debug("Initialized CallManager")

    def dial(self, number: str, hash: Optional[str] = None) -> dict:
        """
        Dial a voice call.

        Emits "dial" with ``(success, info)`` where info holds the number,
        the dial time and a hash identifying the attempt: ``hash`` when given,
        otherwise one derived from the international number and the time.

        Returns:
            The dial info

        Raises:
            ATCommandError: If the modem rejects the call

        Example:

        .. code-block:: python

            modem.on("dial", lambda success, info: print(success, info["number"]))
            modem.call.dial("+1234567890")
        """
        logger.info(f"Dialing {number}")
        return self.modem.run(lambda: self.do_dial(number, hash), {"op": "dial", "number": number})

    def do_dial(self, number: str, hash: Optional[str] = None) -> dict:
        time = datetime.now(timezone.utc)
        hash = hash or get_hash(intl_number(number, self.modem.config.country_code), time)
        info = {"number": number, "time": time, "hash": hash}
        try:
            self.modem.do_query(self.modem.get_cmd(K.CMD_DIAL, PHONE_NUMBER=number))
        except GsmError:
            self.modem.events.emit(EVENT_DIAL, False, info)
            raise
        self.modem.events.emit(EVENT_DIAL, True, info)
        return info

    def answer(self) -> None:
        """Answer an incoming call."""
        logger.info("Answering call")
        self.modem.query(self.modem.get_cmd(K.CMD_ANSWER))
        self.modem.apply({"ringing": False})

    def hangup(self) -> None:
        """Hang up the current call."""
        logger.info("Hanging up")
        self.modem.query(self.modem.get_cmd(K.CMD_HANGUP))
        self.modem.apply({"ringing": False})
