"""
atgsm - Python library for driving GSM modems via AT commands.
"""

from .version import __version__
from .modem import GsmModem
from .pool import ModemPool
from .config import ModemConfig
from .driver import Driver, DriverKeys, DriverRegistry

from .types import (
    SmsMode,
    SmsStat,
    UssdCode,
    Network,
    SignalQuality,
    StorageInfo,
    SmsMessage,
    SmsStatusReport,
    MessageEnvelope,
    UssdResponse,
    ModemInfo,
)

from .exceptions import (
    GsmError,
    TransactionError,
    ATTimeoutError,
    ATCommandError,
    ATParseError,
    TransportError,
    DeviceDisconnectedError,
    ModemNotStartedError,
    DriverError,
    SMSError,
    PDUError,
    USSDError,
)

__all__ = [
    "__version__",
    "GsmModem",
    "ModemPool",
    "ModemConfig",
    "Driver",
    "DriverKeys",
    "DriverRegistry",
    "SmsMode",
    "SmsStat",
    "UssdCode",
    "Network",
    "SignalQuality",
    "StorageInfo",
    "SmsMessage",
    "SmsStatusReport",
    "MessageEnvelope",
    "UssdResponse",
    "ModemInfo",
    "GsmError",
    "TransactionError",
    "ATTimeoutError",
    "ATCommandError",
    "ATParseError",
    "TransportError",
    "DeviceDisconnectedError",
    "ModemNotStartedError",
    "DriverError",
    "SMSError",
    "PDUError",
    "USSDError",
]
