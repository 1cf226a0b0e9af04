"""
Pool of named modems.
"""

import logging
import threading
from typing import Any, Callable, Optional

from .config import ModemConfig
from .core import Transport
from .driver import DriverRegistry
from .modem import GsmModem

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], Transport]


class ModemPool:
    """
    Opens modems by name and keeps them for reuse.

    Each modem is independent: its own transport, threads and state.

    Example:

    .. code-block:: python

        from atgsm.core import SerialTransport

        pool = ModemPool(lambda port: SerialTransport(port), ModemConfig(country_code="+62"))
        modem = pool.open("/dev/ttyUSB0")
        modem.send_message("081234567", "Hello")
        pool.close()
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        config: Optional[ModemConfig] = None,
        registry: Optional[DriverRegistry] = None
    ) -> None:
        """
        Initialize pool.

        Args:
            transport_factory: Creates the transport of a named modem (e.g. from a port path)
            config: Configuration shared by the modems
            registry: Drivers used for detection
        """
        self.transport_factory = transport_factory
        self.config = config or ModemConfig()
        self.registry = registry or DriverRegistry()
        self._modems: dict[str, GsmModem] = {}
        self._lock = threading.Lock()

    def open(self, name: str, **options: Any) -> GsmModem:
        """
        Open, detect and initialize a modem, or return the cached one.

        Args:
            name: Modem name passed to the transport factory
            **options: ModemConfig fields overriding the pool configuration

        Returns:
            The started modem

        Raises:
            TransportError: If the transport cannot be opened
            ATTimeoutError: If the modem does not answer the AT check
        """
        cached = self.get(name)
        if cached is not None:
            return cached

        # Detection can take seconds; other modems open meanwhile
        modem = GsmModem(
            transport=self.transport_factory(name),
            registry=self.registry,
            config=self.config.merge(**options),
            name=name,
        )
        try:
            modem.start()
            driver = modem.detect()
            info = modem.initialize()
        except Exception:
            modem.close()
            raise

        with self._lock:
            cached = self._modems.get(name)
            if cached is None:
                self._modems[name] = modem
        if cached is not None:
            logger.info(f"Modem {name} was opened concurrently, keeping the first one")
            modem.close()
            return cached

        logger.info(
            f"Modem {name}: {info.friendly_name or 'unknown'} "
            f"(driver={driver}, imei={info.serial}, imsi={info.imsi}, "
            f"call={info.has_call}, sms={info.has_sms}, ussd={info.has_ussd})"
        )
        return modem

    def get(self, name: str) -> Optional[GsmModem]:
        """Get an opened modem."""
        with self._lock:
            return self._modems.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._modems)

    def close(self, name: Optional[str] = None) -> None:
        """
        Close one modem, or all of them.

        Args:
            name: Modem to close (all if None)
        """
        with self._lock:
            names = [name] if name is not None else list(self._modems)
            modems = [self._modems.pop(n) for n in names if n in self._modems]
        for modem in modems:
            modem.close()
