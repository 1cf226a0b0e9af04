"""
Modem driver tables.

A driver maps symbolic keys to literal AT command templates and response
prefixes. Templates may contain ``%NAME%`` placeholders (substituted per
invocation; ``NONE``, ``CR`` and ``LF`` are always available) and ``$XX``
hex character escapes.
"""

import logging
import re
from typing import Any, Optional

from .exceptions import DriverError

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = "Generic"

_HEX_ESCAPE = re.compile(r"\$([a-zA-Z0-9]{2})")
_PLACEHOLDER = re.compile(r"%([A-Z0-9_]+)%")


class DriverKeys:
    """Symbolic keys understood by drivers."""

    PARAM_TERMINATOR = "PARAM_TERMINATOR"
    PARAM_DEVICE_NAME = "PARAM_DEVICE_NAME"
    PARAM_KEYPAD_CHARSET = "PARAM_KEYPAD_CHARSET"
    PARAM_SMS_MODE = "PARAM_SMS_MODE"
    PARAM_SMS_COMMIT = "PARAM_SMS_COMMIT"
    PARAM_SMS_CANCEL = "PARAM_SMS_CANCEL"
    PARAM_SMS_STORAGE = "PARAM_SMS_STORAGE"
    PARAM_SMS_WAIT_PROMPT = "PARAM_SMS_WAIT_PROMPT"
    PARAM_REPORT_STORAGE = "PARAM_REPORT_STORAGE"
    PARAM_USSD_ENCODED = "PARAM_USSD_ENCODED"
    PARAM_USSD_ENCODING = "PARAM_USSD_ENCODING"
    PARAM_USSD_RESPONSE_ENCODED = "PARAM_USSD_RESPONSE_ENCODED"

    CMD_INIT = "CMD_INIT"
    CMD_QUERY_FRIENDLY_NAME = "CMD_QUERY_FRIENDLY_NAME"
    CMD_QUERY_MANUFACTURER = "CMD_QUERY_MANUFACTURER"
    CMD_QUERY_MODEL = "CMD_QUERY_MODEL"
    CMD_QUERY_VERSION = "CMD_QUERY_VERSION"
    CMD_QUERY_IMEI = "CMD_QUERY_IMEI"
    CMD_QUERY_IMSI = "CMD_QUERY_IMSI"
    CMD_QUERY_SMSC = "CMD_QUERY_SMSC"
    CMD_DIAL = "CMD_DIAL"
    CMD_ANSWER = "CMD_ANSWER"
    CMD_HANGUP = "CMD_HANGUP"
    CMD_CALL_MONITOR = "CMD_CALL_MONITOR"
    CMD_SMS_MONITOR = "CMD_SMS_MONITOR"
    CMD_SMS_STORAGE_GET = "CMD_SMS_STORAGE_GET"
    CMD_SMS_STORAGE_SET = "CMD_SMS_STORAGE_SET"
    CMD_SMS_READ = "CMD_SMS_READ"
    CMD_SMS_DELETE = "CMD_SMS_DELETE"
    CMD_SMS_LIST = "CMD_SMS_LIST"
    CMD_SMS_MODE_SET = "CMD_SMS_MODE_SET"
    CMD_SMS_MODE_GET = "CMD_SMS_MODE_GET"
    CMD_SMS_SEND_PDU = "CMD_SMS_SEND_PDU"
    CMD_SMS_SEND_TEXT = "CMD_SMS_SEND_TEXT"
    CMD_SMS_SEND_COMMIT = "CMD_SMS_SEND_COMMIT"
    CMD_USSD_SET = "CMD_USSD_SET"
    CMD_USSD_CANCEL = "CMD_USSD_CANCEL"
    CMD_USSD_SEND = "CMD_USSD_SEND"
    CMD_KEYPAD = "CMD_KEYPAD"
    CMD_KEYPAD_ACCESS = "CMD_KEYPAD_ACCESS"
    CMD_KEYPAD_LOCK = "CMD_KEYPAD_LOCK"
    CMD_CSQ = "CMD_CSQ"
    CMD_CHARSET_LIST = "CMD_CHARSET_LIST"
    CMD_CHARSET_GET = "CMD_CHARSET_GET"
    CMD_CHARSET_SET = "CMD_CHARSET_SET"
    CMD_NETWORK_LIST = "CMD_NETWORK_LIST"
    CMD_NETWORK_GET = "CMD_NETWORK_GET"

    RESPONSE_OK = "RESPONSE_OK"
    RESPONSE_ERROR = "RESPONSE_ERROR"
    RESPONSE_RING = "RESPONSE_RING"
    RESPONSE_NO_CARRIER = "RESPONSE_NO_CARRIER"
    RESPONSE_NOT_SUPPORTED = "RESPONSE_NOT_SUPPORTED"
    RESPONSE_SMSC = "RESPONSE_SMSC"
    RESPONSE_SMS_PROMPT = "RESPONSE_SMS_PROMPT"
    RESPONSE_NEW_MESSAGE = "RESPONSE_NEW_MESSAGE"
    RESPONSE_NEW_MESSAGE_DIRECT = "RESPONSE_NEW_MESSAGE_DIRECT"
    RESPONSE_DELIVERY_REPORT = "RESPONSE_DELIVERY_REPORT"
    RESPONSE_DELIVERY_REPORT_DIRECT = "RESPONSE_DELIVERY_REPORT_DIRECT"
    RESPONSE_CPMS = "RESPONSE_CPMS"
    RESPONSE_CMGF = "RESPONSE_CMGF"
    RESPONSE_CMGR = "RESPONSE_CMGR"
    RESPONSE_CMGL = "RESPONSE_CMGL"
    RESPONSE_CMGS = "RESPONSE_CMGS"
    RESPONSE_CLIP = "RESPONSE_CLIP"
    RESPONSE_CUSD = "RESPONSE_CUSD"
    RESPONSE_CSCS = "RESPONSE_CSCS"
    RESPONSE_CLCK = "RESPONSE_CLCK"
    RESPONSE_CSQ = "RESPONSE_CSQ"
    RESPONSE_RSSI = "RESPONSE_RSSI"
    RESPONSE_CALL_END = "RESPONSE_CALL_END"
    RESPONSE_COPS = "RESPONSE_COPS"
    RESPONSE_MEM_FULL = "RESPONSE_MEM_FULL"
    RESPONSE_UNSOLICITED_IND = "RESPONSE_UNSOLICITED_IND"
    RESPONSE_CME_ERROR = "RESPONSE_CME_ERROR"
    RESPONSE_CMS_ERROR = "RESPONSE_CMS_ERROR"

    @staticmethod
    def init(n: int = 0) -> str:
        """Key of the n-th initialization command (``CMD_INIT``, ``CMD_INIT1``, ...)."""
        return DriverKeys.CMD_INIT + (str(n) if n > 0 else "")


K = DriverKeys

DEFAULT_COMMANDS: dict[str, str] = {
    K.PARAM_TERMINATOR: "%CR%%LF%",
    K.PARAM_DEVICE_NAME: "%MANUF% %MODEL%",
    K.PARAM_KEYPAD_CHARSET: "%NONE%",
    K.PARAM_SMS_MODE: "0",
    K.PARAM_SMS_COMMIT: "\x1a",
    K.PARAM_SMS_CANCEL: "\x1b",
    K.PARAM_SMS_STORAGE: "%NONE%",
    K.PARAM_SMS_WAIT_PROMPT: "1",
    K.PARAM_REPORT_STORAGE: "%NONE%",
    K.PARAM_USSD_ENCODED: "0",
    K.PARAM_USSD_ENCODING: "15",
    K.PARAM_USSD_RESPONSE_ENCODED: "0",
    K.CMD_INIT: "ATZ",
    K.init(1): "ATE0",
    K.CMD_QUERY_FRIENDLY_NAME: "ATI",
    K.CMD_QUERY_MANUFACTURER: "AT+CGMI",
    K.CMD_QUERY_MODEL: "AT+CGMM",
    K.CMD_QUERY_VERSION: "AT+CGMR",
    K.CMD_QUERY_IMEI: "AT+CGSN",
    K.CMD_QUERY_IMSI: "AT+CIMI",
    K.CMD_QUERY_SMSC: "AT+CSCA?",
    K.CMD_CALL_MONITOR: "AT+CLIP=1",
    K.CMD_SMS_MONITOR: "AT+CNMI=2,1,,2",
    K.CMD_DIAL: "ATD%PHONE_NUMBER%;",
    K.CMD_ANSWER: "ATA",
    K.CMD_HANGUP: "ATH",
    K.CMD_SMS_STORAGE_GET: "AT+CPMS?",
    K.CMD_SMS_STORAGE_SET: 'AT+CPMS="%STORAGE%"',
    K.CMD_SMS_READ: "AT+CMGR=%SMS_ID%",
    K.CMD_SMS_DELETE: "AT+CMGD=%SMS_ID%",
    K.CMD_SMS_LIST: "AT+CMGL=%SMS_STAT%",
    K.CMD_SMS_MODE_GET: "AT+CMGF?",
    K.CMD_SMS_MODE_SET: "AT+CMGF=%SMS_MODE%",
    K.CMD_SMS_SEND_PDU: "AT+CMGS=%SMS_LEN%",
    K.CMD_SMS_SEND_TEXT: 'AT+CMGS="%PHONE_NUMBER%"',
    K.CMD_SMS_SEND_COMMIT: "%MESSAGE%%COMMIT%",
    K.CMD_USSD_SET: "AT+CUSD=1",
    K.CMD_USSD_CANCEL: "AT+CUSD=2",
    K.CMD_USSD_SEND: 'AT+CUSD=1,"%SERVICE_NUMBER%",%ENC%',
    K.CMD_KEYPAD: 'AT+CKPD="%KEYS%"',
    K.CMD_KEYPAD_ACCESS: "AT+CMEC=2",
    K.CMD_KEYPAD_LOCK: 'AT+CLCK="CS",%VALUE%',
    K.CMD_CSQ: "AT+CSQ",
    K.CMD_CHARSET_LIST: "AT+CSCS=?",
    K.CMD_CHARSET_GET: "AT+CSCS?",
    K.CMD_CHARSET_SET: 'AT+CSCS="%CHARSET%"',
    K.CMD_NETWORK_LIST: "AT+COPS=?",
    K.CMD_NETWORK_GET: "AT+COPS?",
    K.RESPONSE_OK: "OK",
    K.RESPONSE_ERROR: "ERROR",
    K.RESPONSE_RING: "RING",
    K.RESPONSE_NO_CARRIER: "NO CARRIER",
    K.RESPONSE_NOT_SUPPORTED: "COMMAND NOT SUPPORT",
    K.RESPONSE_SMSC: "+CSCA:",
    K.RESPONSE_SMS_PROMPT: "> ",
    K.RESPONSE_NEW_MESSAGE: "+CMTI:",
    K.RESPONSE_NEW_MESSAGE_DIRECT: "+CMT:",
    K.RESPONSE_DELIVERY_REPORT: "+CDSI:",
    K.RESPONSE_DELIVERY_REPORT_DIRECT: "+CDS:",
    K.RESPONSE_CPMS: "+CPMS:",
    K.RESPONSE_CMGF: "+CMGF:",
    K.RESPONSE_CMGR: "+CMGR:",
    K.RESPONSE_CMGL: "+CMGL:",
    K.RESPONSE_CMGS: "+CMGS:",
    K.RESPONSE_CLIP: "+CLIP:",
    K.RESPONSE_CUSD: "+CUSD:",
    K.RESPONSE_CSCS: "+CSCS:",
    K.RESPONSE_CLCK: "+CLCK:",
    K.RESPONSE_CSQ: "+CSQ:",
    K.RESPONSE_RSSI: "%NONE%",
    K.RESPONSE_CALL_END: "%NONE%",
    K.RESPONSE_COPS: "+COPS:",
    K.RESPONSE_MEM_FULL: "%NONE%",
    K.RESPONSE_UNSOLICITED_IND: "%NONE%",
    K.RESPONSE_CME_ERROR: "+CME ERROR:",
    K.RESPONSE_CMS_ERROR: "+CMS ERROR:",
}


class Driver:
    """
    A named command table.

    A driver created with a parent starts from the parent's commands;
    ``import_commands`` then overrides individual keys.

    Example:

    .. code-block:: python

        wavecom = Driver("Wavecom", parent=registry.get("Generic"))
        wavecom.import_commands({DriverKeys.RESPONSE_RSSI: "+CSQ:"})
        wavecom.get(DriverKeys.CMD_DIAL, PHONE_NUMBER="123")  # 'ATD123;'
    """

    def __init__(
        self,
        name: str = DEFAULT_DRIVER,
        desc: Optional[str] = None,
        parent: Optional["Driver"] = None,
        commands: Optional[dict[str, str]] = None
    ) -> None:
        self.name = name
        self.desc = desc or name
        self.parent = parent
        self.commands: dict[str, str] = {}
        self.import_commands(DEFAULT_COMMANDS)
        if parent is not None:
            self.import_commands(parent.commands)
        if commands:
            self.import_commands(commands)

    def import_commands(self, commands: dict[str, str]) -> None:
        """Add or override commands."""
        for key, value in commands.items():
            self.add(key, value)

    def add(self, key: str, value: str) -> None:
        """Add or override a single command."""
        if not key:
            raise DriverError("Driver key must be defined")
        self.commands[key] = value

    def has(self, key: str) -> bool:
        """Check if a key is defined (even if it resolves to nothing)."""
        return key in self.commands

    def get(self, key: str, **variables: Any) -> Optional[str]:
        """
        Resolve a key to its literal value.

        Args:
            key: Driver key (see DriverKeys)
            **variables: Placeholder values, e.g. ``SMS_ID=3``

        Returns:
            Resolved string ("" when the template is ``%NONE%``) or None when
            the key is not defined
        """
        if not key:
            raise DriverError("Driver key must be defined")
        value = self.commands.get(key)
        if not value:
            return None

        value = _HEX_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)

        replacements = {"NONE": "", "CR": "\r", "LF": "\n"}
        replacements.update({k: str(v) for k, v in variables.items()})

        def substitute(match: re.Match) -> str:
            name = match.group(1)
            if name in replacements:
                return replacements[name]
            return match.group(0)

        return _PLACEHOLDER.sub(substitute, value)

    def __repr__(self) -> str:
        return f"<Driver name={self.name!r}>"


class DriverRegistry:
    """
    Collection of drivers keyed by name.

    The generic driver is always registered.
    """

    def __init__(self) -> None:
        self._drivers: dict[str, Driver] = {}
        self.add(Driver(DEFAULT_DRIVER))

    def create(
        self,
        name: str,
        desc: Optional[str] = None,
        parent: Optional[str] = None,
        commands: Optional[dict[str, str]] = None
    ) -> Driver:
        """
        Create and register a driver.

        Args:
            name: Driver name, matched against the modem's friendly name
            desc: Human readable description
            parent: Name of a registered driver to inherit from
            commands: Command overrides

        Returns:
            The registered driver
        """
        parent_driver = self.get(parent) if parent else None
        driver = Driver(name, desc=desc, parent=parent_driver, commands=commands)
        self.add(driver)
        return driver

    def add(self, driver: Driver) -> None:
        """Register a driver."""
        if driver.name in self._drivers:
            raise DriverError(f"Driver {driver.name} already registered")
        self._drivers[driver.name] = driver
        logger.debug(f"Registered driver {driver.name}")

    def get(self, name: str) -> Driver:
        """
        Get a driver by name.

        Raises:
            DriverError: If no driver has that name
        """
        try:
            return self._drivers[name]
        except KeyError:
            raise DriverError(f"Unknown driver {name}") from None

    def names(self) -> list[str]:
        """Get registered driver names."""
        return list(self._drivers)

    def match(self, text: str) -> str:
        """
        Find the driver whose name best matches a modem description.

        An exact (case-insensitive) name wins; otherwise the longest driver
        name contained in ``text``.

        Returns:
            Driver name, or "" if nothing matches
        """
        text = text.lower()
        best = ""
        for name in self._drivers:
            lowered = name.lower()
            if text == lowered:
                return name
            if lowered in text and len(name) > len(best):
                best = name
        return best
