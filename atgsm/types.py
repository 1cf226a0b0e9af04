"""
Data types and structures for atgsm.

Provides type-safe representations of modem data.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Optional, Union


class SmsMode(IntEnum):
    """SMS message format modes (AT+CMGF)."""
    PDU = 0
    TEXT = 1


class SmsStat(IntEnum):
    """SMS storage status filter for PDU mode listing (AT+CMGL)."""
    RECV_UNREAD = 0
    RECV_READ = 1
    STORED_UNSENT = 2
    STORED_SENT = 3
    ALL = 4


class UssdCode(IntEnum):
    """USSD response status (first field of +CUSD)."""
    NO_ACTION = 0
    ACTION_REQUIRED = 1
    TERMINATED = 2
    LOCAL_RESPOND = 3
    NOT_SUPPORTED = 4
    TIMEOUT = 5


class UssdEncoding(IntEnum):
    """USSD data coding schemes understood by the USSD helpers."""
    GSM7 = 15
    UCS2 = 72


class NetworkMode(IntEnum):
    """Network selection mode (AT+COPS)."""
    AUTOMATIC = 0
    MANUAL = 1
    DEREGISTER = 2
    SET_FORMAT = 3
    MANUAL_AUTOMATIC = 4


class NetworkFormat(IntEnum):
    """Operator name format (AT+COPS)."""
    LONG_ALPHA = 0
    SHORT_ALPHA = 1
    NUMERIC = 2


class NetworkStatus(IntEnum):
    """Operator availability in a network scan (AT+COPS=?)."""
    UNKNOWN = 0
    AVAILABLE = 1
    CURRENT = 2
    FORBIDDEN = 3


@dataclass
class Network:
    """
    Network operator.

    Built either from the current operator (``+COPS: <mode>,<format>,<oper>[,<act>]``)
    or from one entry of a network scan
    (``(<stat>,"long","short","numeric"[,<act>])``).
    """
    code: Optional[str] = None            # Operator name/code in the reported format
    mode: Optional[int] = None            # Selection mode (current operator only)
    format: Optional[int] = None          # Name format (current operator only)
    status: Optional[int] = None          # Availability (scan entries only)
    long_name: Optional[str] = None
    short_name: Optional[str] = None
    numeric: Optional[str] = None
    act: Optional[int] = None             # Access technology

    @classmethod
    def from_tokens(cls, tokens: list) -> "Network":
        """Create from ``+COPS?`` tokens."""
        return cls(
            mode=_to_int(_at(tokens, 0)),
            format=_to_int(_at(tokens, 1)),
            code=_at(tokens, 2) or None,
            act=_to_int(_at(tokens, 3)),
        )

    @classmethod
    def from_scan(cls, entry: list) -> "Network":
        """Create from one ``+COPS=?`` list entry."""
        numeric = _at(entry, 3) or None
        return cls(
            status=_to_int(_at(entry, 0)),
            long_name=_at(entry, 1) or None,
            short_name=_at(entry, 2) or None,
            numeric=numeric,
            code=numeric,
            act=_to_int(_at(entry, 4)),
        )


@dataclass
class SignalQuality:
    """
    Signal quality from AT+CSQ.

    RSSI (Received Signal Strength Indicator):
        0: -113 dBm or less
        1: -111 dBm
        2...30: -109 to -53 dBm
        31: -51 dBm or greater
        99: Not known or not detectable
    """
    rssi: int
    ber: Optional[int] = None

    @property
    def rssi_dbm(self) -> Optional[int]:
        """Convert RSSI to dBm value."""
        if self.rssi == 99:
            return None
        if self.rssi == 0:
            return -113
        if self.rssi == 31:
            return -51
        return -113 + (self.rssi * 2)

    @property
    def is_valid(self) -> bool:
        """Check if signal quality reading is valid."""
        return self.rssi != 99


@dataclass
class StorageInfo:
    """Message storage usage from AT+CPMS."""
    storage: str                    # Storage name (SM, ME, SR, ...)
    used: int                       # Number of messages stored
    total: int                      # Total storage capacity

    @property
    def is_full(self) -> bool:
        """Check if the storage has no free slot."""
        return self.total > 0 and self.used >= self.total


@dataclass
class SmsMessage:
    """
    Received (SMS-DELIVER) or outgoing (SMS-SUBMIT) message.

    Concatenation metadata (``reference``, ``total``, ``part``) is only set
    for fragments of a long message.
    """
    address: str                             # Sender (deliver) or destination (submit)
    text: str                                # Decoded message content
    time: Optional[datetime] = None          # Service centre timestamp
    smsc: Optional[str] = None               # Service centre address
    encoding: str = "gsm7"                   # gsm7, ucs2 or 8bit
    reference: Optional[int] = None          # Concatenation reference
    total: Optional[int] = None              # Total parts
    part: Optional[int] = None               # Part index, 1 based
    tpdu_length: int = 0                     # TPDU octets, excluding SMSC
    pdu: Optional[str] = None                # Raw PDU hex
    hash: Optional[str] = None               # Deduplication hash
    message_reference: Optional[int] = None  # TP-MR assigned by the modem on send

    @property
    def is_fragment(self) -> bool:
        """Check if the message is one part of a concatenated message."""
        return self.reference is not None and (self.total or 0) > 1


@dataclass
class SmsStatusReport:
    """Delivery report (SMS-STATUS-REPORT)."""
    message_reference: int
    address: str
    status: int
    time: Optional[datetime] = None          # Service centre timestamp
    discharge_time: Optional[datetime] = None
    smsc: Optional[str] = None
    tpdu_length: int = 0
    pdu: Optional[str] = None

    @property
    def delivered(self) -> bool:
        """Check if the report indicates a completed delivery."""
        return self.status < 0x20


Message = Union[SmsMessage, SmsStatusReport]


@dataclass
class MessageEnvelope:
    """A decoded message plus where it was read from."""
    message: Message
    storage: Optional[str] = None
    index: Optional[int] = None
    status: Optional[str] = None


@dataclass
class UssdResponse:
    """USSD response from +CUSD."""
    code: int
    message: Optional[str] = None
    dcs: Optional[int] = None


@dataclass
class ModemInfo:
    """Modem identification gathered during initialization."""
    friendly_name: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    version: Optional[str] = None
    serial: Optional[str] = None
    imsi: Optional[str] = None
    has_call: bool = False
    has_sms: bool = False
    has_ussd: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


def _at(tokens: list, index: int) -> Optional[str]:
    if index < len(tokens) and not isinstance(tokens[index], list):
        return tokens[index]
    return None


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None
