"""
Exception hierarchy for atgsm.

Every error carries the command and modem response that produced it, when
there is one, so log lines point straight at the failing exchange.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .core.response import Transaction


class GsmError(Exception):
    """
    Root of all atgsm errors.

    Args:
        message: What went wrong
        command: AT command involved, if any
        response: Lines the modem answered with, if any
    """

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        response: Optional[list[str]] = None
    ) -> None:
        self.command = command
        self.response = response
        super().__init__(message)

    def __str__(self) -> str:
        text = super().__str__()
        if self.command:
            text += f" | Command: {self.command}"
        if self.response:
            text += f" | Response: {self.response}"
        return text


class TransactionError(GsmError):
    """
    A single AT transaction ended badly.

    The finished transaction is kept as ``transaction``; command and response
    default to its own.
    """

    def __init__(
        self,
        message: str,
        transaction: Optional["Transaction"] = None,
        command: Optional[str] = None,
        response: Optional[list[str]] = None
    ) -> None:
        self.transaction = transaction
        if transaction is not None:
            command = command or transaction.command
            response = response if response is not None else list(transaction.responses)
        super().__init__(message, command=command, response=response)


class ATTimeoutError(TransactionError):
    """
    No data arrived for a command within its timeout.

    Usually the modem hung, the port is wrong, or the command (network scan,
    SMS submit) needs a longer timeout.
    """


class ATCommandError(TransactionError):
    """
    The modem answered with an error marker.

    ``code`` holds the detail of ``+CME ERROR:`` and ``+CMS ERROR:``
    replies, e.g. ``"500"`` or ``"SIM busy"``.
    """

    @property
    def code(self) -> Optional[str]:
        if self.transaction is None:
            return None
        return self.transaction.error_code


class ATParseError(GsmError):
    """A reply did not have the expected shape (missing fields, unbalanced quotes)."""


class TransportError(GsmError):
    """The byte channel to the modem failed."""


class DeviceDisconnectedError(TransportError):
    """
    The modem went away (USB unplugged, port closed).

    The connection cannot recover; close the modem and open it again.
    """


class ModemNotStartedError(GsmError):
    """Work was requested while the modem is stopped or disconnected."""


class DriverError(GsmError):
    """A driver table lookup or registration failed."""


class SMSError(GsmError):
    """
    An SMS operation failed.

    Raised for rejected submissions, a modem stuck in text mode, and bad
    storage indexes.
    """


class PDUError(SMSError):
    """A PDU could not be encoded or decoded."""


class USSDError(GsmError):
    """A USSD session got no answer in time or was refused by the network."""
