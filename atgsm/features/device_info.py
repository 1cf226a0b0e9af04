"""
Device information manager.

Handles modem detection and identification.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..driver import DEFAULT_DRIVER, DriverKeys as K, DriverRegistry
from ..exceptions import GsmError
from ..types import ModemInfo

if TYPE_CHECKING:
    from ..core import ModemCore
    from ..core.response import Transaction

logger = logging.getLogger(__name__)

_INFO_COMMANDS = [
    K.CMD_QUERY_FRIENDLY_NAME,
    K.CMD_QUERY_MANUFACTURER,
    K.CMD_QUERY_MODEL,
    K.CMD_QUERY_VERSION,
    K.CMD_QUERY_IMEI,
    K.CMD_QUERY_IMSI,
    K.CMD_CALL_MONITOR,
    K.CMD_SMS_MONITOR,
    K.CMD_USSD_SET,
    K.CMD_CHARSET_LIST,
]


class DeviceManager:
    """
    Manages device detection and identity.

    Provides the AT probe, driver selection and the initialization batch.
    """

    def __init__(self, modem_core: "ModemCore") -> None:
        """
        Initialize device manager.

        Args:
            modem_core: ModemCore instance for AT command execution
        """
        self.modem = modem_core
        self.info = ModemInfo()

        logger.debug("Initialized DeviceManager")

    def detect(self, registry: Optional[DriverRegistry] = None) -> str:
        """
        Probe the modem and select the matching driver.

        Sends ``AT`` (1 second timeout) then ``ATI``; the driver whose name
        best matches the identification is selected.

        Args:
            registry: Drivers to choose from (generic only if None)

        Returns:
            Selected driver name

        Raises:
            ATTimeoutError: If the modem does not answer

        Example:

        .. code-block:: python

            registry = DriverRegistry()
            registry.create("Wavecom", parent="Generic", commands={...})
            modem.device.detect(registry)
        """
        registry = registry or DriverRegistry()
        return self.modem.run(lambda: self.do_detect(registry), {"op": "detect"})

    def do_detect(self, registry: DriverRegistry) -> str:
        logger.info("Detecting modem")
        self.modem.do_query("AT", timeout=1.0)
        tx = self.modem.do_query(self.modem.get_cmd(K.CMD_QUERY_FRIENDLY_NAME) or "ATI")
        identification = tx.res().strip()

        name = registry.match(identification) or DEFAULT_DRIVER
        logger.info(f"Detected '{identification}', using driver {name}")
        self.modem.use_driver(registry.get(name))
        self.info.friendly_name = identification or None
        return name

    def initialize(self) -> ModemInfo:
        """
        Run the driver's initialization commands and gather identity.

        Failing commands are skipped. Support for calls, SMS and USSD is
        derived from whether their monitor/setup commands succeed.

        Returns:
            ModemInfo
        """
        return self.modem.run(self.do_initialize, {"op": "initialize"})

    def do_initialize(self) -> ModemInfo:
        logger.info("Initializing modem")
        self.modem.protocol.send_batch([K.init(n) for n in range(10)])

        results = self.modem.protocol.send_batch(_INFO_COMMANDS)

        def value(key: str) -> Optional[str]:
            tx = results.get(key)
            if tx is None or not tx.okay:
                return None
            return tx.res().strip() or None

        def okay(key: str) -> bool:
            tx = results.get(key)
            return tx is not None and tx.okay

        info = self.info
        info.manufacturer = value(K.CMD_QUERY_MANUFACTURER)
        info.model = value(K.CMD_QUERY_MODEL)
        info.version = value(K.CMD_QUERY_VERSION)
        info.serial = value(K.CMD_QUERY_IMEI)
        info.imsi = value(K.CMD_QUERY_IMSI)
        info.friendly_name = value(K.CMD_QUERY_FRIENDLY_NAME) or info.friendly_name or \
            self.modem.get_cmd(K.PARAM_DEVICE_NAME, MANUF=info.manufacturer or "",
                               MODEL=info.model or "").strip() or None
        info.has_call = okay(K.CMD_CALL_MONITOR)
        info.has_sms = okay(K.CMD_SMS_MONITOR)
        info.has_ussd = okay(K.CMD_USSD_SET)

        charsets = results.get(K.CMD_CHARSET_LIST)
        if charsets is not None and charsets.okay:
            self._handle(charsets)
            info.extra["charsets"] = charsets.result.get("charsets", [])

        self.modem.apply({"info": info})
        return info

    def _handle(self, tx: "Transaction") -> None:
        try:
            self.modem.handle_responses(tx)
        except GsmError as e:
            logger.debug(f"Ignoring {tx.command} response: {e}")
