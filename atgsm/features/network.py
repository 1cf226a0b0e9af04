"""
Network manager.

Handles signal quality, operator, character set and SMSC queries, plus the
periodic monitors for modems without unsolicited signal or storage reports.
"""

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from ..driver import DriverKeys as K
from ..exceptions import ATParseError, GsmError
from ..types import Network, SignalQuality

if TYPE_CHECKING:
    from ..core import ModemCore

logger = logging.getLogger(__name__)


class _Monitor:
    """Runs an action every ``interval`` seconds on its own thread."""

    def __init__(self, name: str, interval: float, action: Callable[[], None]) -> None:
        self.name = name
        self.interval = interval
        self.action = action
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.action()
            except GsmError as e:
                logger.debug(f"{self.name} skipped: {e}")


class NetworkManager:
    """
    Manages network related queries.

    Provides methods for signal quality, current operator, operator scan,
    character sets and the SMS service centre.
    """

    def __init__(self, modem_core: "ModemCore") -> None:
        """
        Initialize network manager.

        Args:
            modem_core: ModemCore instance for AT command execution
        """
        self.modem = modem_core
        self._monitors: list[_Monitor] = []

        logger.debug("Initialized NetworkManager")

    def get_signal_quality(self) -> SignalQuality:
        """
        Get signal quality (RSSI and BER).

        Returns:
            SignalQuality with rssi and ber values

        Raises:
            ATParseError: If the modem reported no signal quality

        Example:

        .. code-block:: python

            signal = modem.network.get_signal_quality()
            if signal.is_valid:
                print(f"Signal: {signal.rssi_dbm} dBm")
        """
        logger.info("Getting signal quality")
        tx = self.modem.query(self.modem.get_cmd(K.CMD_CSQ))
        signal = tx.result.get("rssi")
        if signal is None:
            raise ATParseError("Failed to parse signal quality", command=tx.command, response=tx.responses)
        logger.debug(f"Signal quality: {signal}")
        return signal

    def get_network(self) -> Optional[Network]:
        """
        Get the current operator.

        Returns:
            Network, or None if not registered
        """
        logger.info("Getting current operator")
        tx = self.modem.query(self.modem.get_cmd(K.CMD_NETWORK_GET))
        return tx.result.get("network")

    def list_networks(self, timeout: float = 120.0) -> list[Network]:
        """
        Scan for available operators.

        This can take a few minutes.

        Args:
            timeout: Read timeout for the scan

        Returns:
            List of operators found
        """
        logger.info("Scanning networks")
        tx = self.modem.query(self.modem.get_cmd(K.CMD_NETWORK_LIST), timeout=timeout)
        networks = tx.result.get("networks", [])
        logger.info(f"Found {len(networks)} network(s)")
        return networks

    def get_charset(self) -> Optional[str]:
        """Get the TE character set."""
        tx = self.modem.query(self.modem.get_cmd(K.CMD_CHARSET_GET))
        return tx.result.get("charset")

    def set_charset(self, charset: str) -> None:
        """
        Select the TE character set.

        Example:

        .. code-block:: python

            modem.network.set_charset("GSM")
        """
        logger.info(f"Setting charset to {charset}")
        self.modem.query(self.modem.get_cmd(K.CMD_CHARSET_SET, CHARSET=charset))
        self.modem.apply({"charset": charset})

    def list_charsets(self) -> list[str]:
        """Get the supported character sets."""
        tx = self.modem.query(self.modem.get_cmd(K.CMD_CHARSET_LIST))
        return tx.result.get("charsets", [])

    def get_smsc(self) -> Optional[str]:
        """Get the SMS service centre address."""
        tx = self.modem.query(self.modem.get_cmd(K.CMD_QUERY_SMSC))
        return tx.result.get("smsc")

    def get_keylock(self) -> Optional[bool]:
        """Check if the keypad is locked."""
        tx = self.modem.query(self.modem.get_cmd(K.CMD_KEYPAD_LOCK, VALUE=2))
        return tx.result.get("keylock")

    # Monitors

    def start_monitors(self, interval: Optional[float] = None) -> None:
        """
        Start periodic polling for what the modem does not report on its own.

        Signal quality is polled when the driver has no unsolicited RSSI
        signature, storage usage when it has no memory-full signature.

        Args:
            interval: Poll period (config ``monitor_interval`` if None)
        """
        self.stop_monitors()
        interval = interval or self.modem.config.monitor_interval

        if not self.modem.get_cmd(K.RESPONSE_RSSI):
            self._monitors.append(_Monitor("SignalMonitor", interval, self._poll_signal))
        if not self.modem.get_cmd(K.RESPONSE_MEM_FULL):
            self._monitors.append(_Monitor("StorageMonitor", interval, self._poll_storage))

        for monitor in self._monitors:
            monitor.start()
            logger.info(f"Started {monitor.name} (every {interval}s)")

    def stop_monitors(self) -> None:
        """Stop the periodic monitors."""
        for monitor in self._monitors:
            monitor.stop()
        self._monitors = []

    def _poll_signal(self) -> None:
        cmd = self.modem.get_cmd(K.CMD_CSQ)
        self.modem.submit(lambda: self.modem.do_query(cmd), {"op": "monitor", "cmd": cmd})

    def _poll_storage(self) -> None:
        cmd = self.modem.get_cmd(K.CMD_SMS_STORAGE_GET)
        self.modem.submit(lambda: self.modem.do_query(cmd), {"op": "monitor", "cmd": cmd})
