"""
USSD manager.

Runs USSD sessions: a service code optionally followed by menu replies.
"""

import logging
import queue
from typing import TYPE_CHECKING, Optional

from ..core.events import EVENT_USSD_DIAL
from ..core.state import USSD_WAIT
from ..driver import DriverKeys as K
from ..exceptions import GsmError, USSDError
from ..parsers.pdu import encode_ussd
from ..types import UssdResponse
from ..utils import get_hash

if TYPE_CHECKING:
    from ..core import ModemCore

logger = logging.getLogger(__name__)


class USSDManager:
    """
    Manages USSD sessions.

    A session code such as ``"*123#,1,2"`` is sent as the service code
    ``*123#`` followed by the menu replies ``1`` and ``2``; each step waits
    for its ``+CUSD`` response. While a session runs, USSD responses are
    delivered to it instead of being emitted as "ussd" events.
    """

    def __init__(self, modem_core: "ModemCore") -> None:
        """
        Initialize USSD manager.

        Args:
            modem_core: ModemCore instance for AT command execution
        """
        self.modem = modem_core
        self._responses: "queue.Queue[UssdResponse]" = queue.Queue()
        logger.debug("Initialized USSDManager")

    @property
    def waiting(self) -> bool:
        """Check if a session is waiting for responses."""
        return self.modem.state.get(USSD_WAIT)

    def deliver(self, response: UssdResponse) -> bool:
        """
        Hand a received response to the running session.

        Returns:
            True if a session consumed it
        """
        if not self.waiting:
            return False
        self._responses.put(response)
        return True

    def dial(
        self,
        code: str,
        timeout: Optional[float] = None,
        hash: Optional[str] = None
    ) -> list[UssdResponse]:
        """
        Run a USSD session.

        Args:
            code: Service code, optionally followed by comma separated replies
            timeout: Per-step response timeout (config ``ussd_timeout`` if None)
            hash: Identifier put in the "ussd-dial" event info (hash of the
                code if None)

        Returns:
            One response per step

        Raises:
            USSDError: If a step gets no response in time

        Example:

        .. code-block:: python

            responses = modem.ussd.dial("*123#")
            print(responses[-1].message)
        """
        logger.info(f"Dialing USSD {code}")
        return self.modem.run(lambda: self.do_dial(code, timeout, hash), {"op": "ussd", "code": code})

    def do_dial(
        self,
        code: str,
        timeout: Optional[float] = None,
        hash: Optional[str] = None
    ) -> list[UssdResponse]:
        timeout = timeout if timeout is not None else self.modem.config.ussd_timeout
        steps = [step.strip() for step in code.split(",") if step.strip()]
        responses: list[UssdResponse] = []
        info = {"code": code, "hash": hash or get_hash(code), "responses": responses}

        self.modem.state.set(USSD_WAIT, True)
        try:
            for step in steps:
                responses.append(self._step(step, timeout))
        except GsmError:
            self.modem.events.emit(EVENT_USSD_DIAL, False, info)
            raise
        finally:
            self.modem.state.set(USSD_WAIT, False)

        self.modem.events.emit(EVENT_USSD_DIAL, True, info)
        return responses

    def _step(self, step: str, timeout: float) -> UssdResponse:
        while not self._responses.empty():
            self._responses.get_nowait()

        encoding = int(self.modem.get_cmd(K.PARAM_USSD_ENCODING) or 15)
        service = step
        if self.modem.get_cmd(K.PARAM_USSD_ENCODED) == "1":
            service = encode_ussd(encoding, step)

        self.modem.do_query(self.modem.get_cmd(K.CMD_USSD_SEND, SERVICE_NUMBER=service, ENC=encoding))
        try:
            response = self._responses.get(timeout=timeout)
        except queue.Empty:
            raise USSDError(f"No USSD response for {step} within {timeout}s") from None
        logger.debug(f"USSD response: {response}")
        return response

    def cancel(self) -> None:
        """Cancel the USSD session on the network side."""
        logger.info("Cancelling USSD session")
        self.modem.query(self.modem.get_cmd(K.CMD_USSD_CANCEL))
