"""
Main GsmModem class.

User-facing API that coordinates all feature managers.
"""

import logging
import threading
from typing import Any, Optional

from .config import ModemConfig
from .core import ModemCore, SerialTransport, Transport
from .core.events import (
    EventCallback, EVENT_MESSAGE, EVENT_MULTIPART_MESSAGE, EVENT_PROP, EVENT_RING,
    EVENT_STATUS_REPORT, EVENT_STORAGE, EVENT_USSD
)
from .core.state import STORAGE_CLEANING
from .driver import Driver, DriverKeys as K, DriverRegistry
from .exceptions import GsmError
from .features import (
    CallManager, DeviceManager, MessageReassembler, NetworkManager, SMSManager,
    StorageManager, USSDManager
)
from .types import MessageEnvelope, ModemInfo, SmsMessage, SmsStat, SmsStatusReport, StorageInfo

logger = logging.getLogger(__name__)


class GsmModem:
    """
    Main interface for GSM modem control.

    Provides a high-level API for modem operations through feature managers:

    - device: Detection, driver selection and identity
    - network: Signal quality, operators, charsets, SMSC
    - sms: Sending SMS (PDU mode, long messages)
    - storage: Message storages
    - call: Voice calls
    - ussd: USSD sessions

    Received messages, delivery reports, rings and USSD responses are
    delivered as events (see ``on``). Storage maintenance (emptying a full
    storage, clearing delivery reports) runs whenever the modem becomes idle.

    Example usage with context manager:

    .. code-block:: python

        with GsmModem(port="/dev/ttyUSB0") as modem:
            modem.detect()
            modem.initialize()

            modem.on("message", lambda message, envelopes: print(message.text))
            modem.sms.send_message("+1234567890", "Hello!")

    Example usage with manual lifecycle management:

    .. code-block:: python

        modem = GsmModem(port="/dev/ttyUSB0")
        modem.start()
        # ... use modem ...
        modem.close()
    """

    def __init__(
        self,
        port: Optional[str] = None,
        transport: Optional[Transport] = None,
        baudrate: int = 115200,
        driver: Optional[Driver] = None,
        registry: Optional[DriverRegistry] = None,
        config: Optional[ModemConfig] = None,
        name: Optional[str] = None,
        auto_start: bool = False,
        on_disconnect: Optional[callable] = None,
        **options: Any
    ) -> None:
        """
        Initialize GsmModem.

        Args:
            port: Serial port path (e.g., "/dev/ttyUSB0"). Either port or transport required.
            transport: Custom transport instance (for testing). Overrides port if provided.
            baudrate: Serial port baud rate (default: 115200)
            driver: Command table (generic driver if None)
            registry: Drivers available to ``detect``
            config: Modem configuration
            name: Name used in log messages (defaults to the port)
            auto_start: Automatically start reader thread (default: False)
            on_disconnect: Optional callback function called when device disconnects.
                          Signature: callback(exception: Exception) -> None
            **options: ModemConfig fields overriding ``config``

        Raises:
            ValueError: If neither port nor transport is provided
            TransportError: If serial port cannot be opened

        Example:

        .. code-block:: python

            # Using serial port
            modem = GsmModem(port="/dev/ttyUSB0", send_timeout=90)

            # Using custom transport (for testing)
            from atgsm.core import MockTransport
            modem = GsmModem(transport=MockTransport())
        """
        if transport is None and port is None:
            raise ValueError("Either 'port' or 'transport' must be provided")

        if transport is None:
            transport = SerialTransport(port=port, baudrate=baudrate)
            logger.info(f"Created serial transport for {port}")

        self.name = name or port or "modem"
        self.config = (config or ModemConfig()).merge(**options)
        self.registry = registry or DriverRegistry()

        self._core = ModemCore(
            transport=transport,
            driver=driver,
            config=self.config,
            on_disconnect=on_disconnect
        )

        self.device = DeviceManager(self._core)
        self.network = NetworkManager(self._core)
        self.sms = SMSManager(self._core)
        self.storage = StorageManager(self._core)
        self.call = CallManager(self._core)
        self.ussd = USSDManager(self._core)
        self.reassembler = MessageReassembler(
            on_message=self._on_message,
            on_report=self._on_report,
            country_code=self.config.country_code,
        )

        # Ring and storage tracking, touched from the reader and worker threads
        self._lock = threading.Lock()
        self._rings = 0
        self._caller: Optional[str] = None
        self._memfull: Optional[str] = None
        self._hasreport = False
        self._maintenance_pending = False

        self._core.events.on(EVENT_PROP, self._on_prop)
        self._core.state.add_listener(self._on_state)

        logger.info(f"Initialized GsmModem {self.name}")

        if auto_start:
            self.start()

    # Lifecycle

    def start(self) -> None:
        """
        Start the modem reader thread and operation queue.

        Must be called before using the modem (unless auto_start=True or using context manager).
        """
        self._core.start()
        logger.info("Modem started")

    def stop(self) -> None:
        """Stop the monitors, the operation queue and the reader thread."""
        self.network.stop_monitors()
        self._core.stop()
        logger.info("Modem stopped")

    def close(self) -> None:
        """
        Close the modem connection.

        Stops the threads and closes the transport.
        """
        self.network.stop_monitors()
        self._core.close()
        logger.info("Modem closed")

    def is_running(self) -> bool:
        return self._core.is_running()

    def is_disconnected(self) -> bool:
        return self._core.is_disconnected()

    def detect(self) -> str:
        """
        Probe the modem and select the best matching driver from ``registry``.

        Returns:
            Selected driver name
        """
        return self.device.detect(self.registry)

    def initialize(self, monitors: bool = True) -> ModemInfo:
        """
        Bring the modem into a known state.

        Runs the initialization batch, gathers identity, then queries the
        character set, selects the SMS mode, reads the SMSC, operator and
        default storage and starts the monitors. Failures of the optional
        steps are logged and skipped.

        Args:
            monitors: Start the signal/storage monitors

        Returns:
            ModemInfo
        """
        info = self._core.run(self._initialize, {"op": "initialize"})
        if monitors:
            self.network.start_monitors()
        return info

    def _initialize(self) -> ModemInfo:
        info = self.device.do_initialize()
        core = self._core

        steps = [
            ("charset", lambda: core.do_query(core.get_cmd(K.CMD_CHARSET_GET))),
            ("sms mode", lambda: self.sms.do_set_sms_mode()),
            ("smsc", lambda: core.do_query(core.get_cmd(K.CMD_QUERY_SMSC))),
            ("network", lambda: core.do_query(core.get_cmd(K.CMD_NETWORK_GET))),
            ("storage", lambda: self.storage.do_set_storage(core.get_cmd(K.PARAM_SMS_STORAGE))),
            ("storage usage", lambda: self.storage.do_get_storage()),
        ]
        for label, step in steps:
            try:
                step()
            except GsmError as e:
                logger.warning(f"Initialization step '{label}' failed: {e}")
        return info

    # Events

    def on(self, event: str, callback: EventCallback) -> None:
        """
        Register an event callback.

        Events: "state", "prop", "message", "multipart-message",
        "status-report", "pdu", "storage", "ring", "dial", "ussd",
        "ussd-dial", "disconnect".

        Callbacks run on the modem's threads. They may queue operations
        (``submit``) but must not wait for them.

        Example:

        .. code-block:: python

            modem.on("ring", lambda caller, count: print(f"{caller} ({count})"))
        """
        self._core.events.on(event, callback)

    def off(self, event: str, callback: Optional[EventCallback] = None) -> bool:
        """Unregister an event callback (all callbacks of the event if None)."""
        return self._core.events.off(event, callback)

    # Properties

    @property
    def props(self) -> dict:
        """Snapshot of the decoded device properties."""
        return dict(self._core.props)

    @property
    def state(self) -> list[str]:
        """Active state flags (empty when idle)."""
        return self._core.state.active

    @property
    def driver(self) -> Driver:
        return self._core.driver

    @property
    def core(self) -> ModemCore:
        return self._core

    # Raw access

    def query(self, cmd: str, **kwargs: Any):
        """
        Send a raw command through the operation queue.

        Accepts the ``expect``, ``ignore``, ``timeout`` and ``context``
        options of ``ModemCore.query``.

        Returns:
            Transaction with ``responses`` and decoded ``result``

        Example:

        .. code-block:: python

            tx = modem.query("AT+CSQ")
            print(tx.responses)
        """
        return self._core.query(cmd, **kwargs)

    def send_message(self, number: str, text: str, hash: Optional[str] = None) -> list[SmsMessage]:
        """Shortcut for ``sms.send_message``."""
        return self.sms.send_message(number, text, hash)

    # Update handling

    def _on_prop(self, update: dict) -> None:
        if "messages" in update:
            self.reassembler.add(update["messages"])
        if "queues" in update:
            for op in update["queues"]:
                self._queue(op)
        if "ussd" in update:
            if not self.ussd.deliver(update["ussd"]):
                self._core.events.emit(EVENT_USSD, update["ussd"])
        if "ringing" in update or "caller" in update:
            self._on_ring(update)
        if "storages" in update:
            self._on_storages(update["storages"])
        if "memfull" in update:
            with self._lock:
                self._memfull = update["memfull"] or self._sms_storage()
            logger.warning(f"Storage {self._memfull} is full")
            self._schedule_maintenance()

    def _queue(self, op: dict) -> None:
        kind = op.get("op")
        try:
            if kind == "read":
                self.storage.submit_read(op["index"], op.get("storage"))
            elif kind == "delete":
                self.storage.submit_delete(op["index"], op.get("storage"))
            elif kind == "command":
                cmd = op["cmd"]
                self._core.submit(lambda: self._core.do_query(cmd), op)
            else:
                logger.warning(f"Unknown queued operation: {op}")
        except GsmError as e:
            logger.error(f"Unable to queue {op}: {e}")

    def _on_ring(self, update: dict) -> None:
        emit = None
        with self._lock:
            if update.get("ringing") is False:
                self._rings = 0
                self._caller = None
            else:
                if update.get("ringing"):
                    self._rings += 1
                    if self._caller:
                        emit = (self._caller, self._rings)
                caller = update.get("caller")
                if caller and caller != self._caller:
                    self._caller = caller
                    if self._rings:
                        emit = (caller, self._rings)
        if emit:
            logger.info(f"Incoming call from {emit[0]} (ring {emit[1]})")
            self._core.events.emit(EVENT_RING, *emit)

    def _on_storages(self, storages: dict[str, StorageInfo]) -> None:
        report_storage = self._core.get_cmd(K.PARAM_REPORT_STORAGE)
        with self._lock:
            for name, info in storages.items():
                if info.is_full:
                    self._memfull = name
                if report_storage and name == report_storage and info.used > 0:
                    self._hasreport = True
        self._core.events.emit(EVENT_STORAGE, storages)
        self._schedule_maintenance()

    def _sms_storage(self) -> Optional[str]:
        return self._core.get_cmd(K.PARAM_SMS_STORAGE) or self._core.prop("storage")

    # Dispatch

    def _on_message(self, message: SmsMessage, envelopes: list[MessageEnvelope]) -> None:
        event = EVENT_MULTIPART_MESSAGE if len(envelopes) > 1 else EVENT_MESSAGE
        logger.info(f"Message from {message.address} ({len(envelopes)} part(s))")
        self._core.events.emit(event, message, envelopes)
        if self.config.delete_message_on_read:
            for envelope in envelopes:
                self._delete(envelope)

    def _on_report(self, report: SmsStatusReport, envelope: MessageEnvelope) -> None:
        logger.info(f"Status report for message {report.message_reference}: {report.status}")
        self._core.events.emit(EVENT_STATUS_REPORT, report, envelope)
        self._delete(envelope)

    def _delete(self, envelope: MessageEnvelope) -> None:
        if envelope.index is None:
            return
        try:
            self.storage.submit_delete(envelope.index, envelope.storage)
        except GsmError as e:
            logger.error(f"Unable to queue delete of message {envelope.index}: {e}")

    # Maintenance

    def _on_state(self, active: list[str]) -> None:
        if not active:
            self._schedule_maintenance()

    def _schedule_maintenance(self) -> None:
        """Queue one maintenance pass if storage flags are set; it starts once idle."""
        if not self._core.is_running():
            return
        with self._lock:
            if self._maintenance_pending or not (self._memfull or self._hasreport):
                return
            self._maintenance_pending = True
        try:
            self._core.submit(self._maintain, {"op": "maintenance"})
        except GsmError as e:
            logger.error(f"Unable to queue storage maintenance: {e}")
            with self._lock:
                self._maintenance_pending = False

    def _maintain(self) -> None:
        # Flags raised while this pass runs describe the state it is fixing
        with self._lock:
            memfull, hasreport = self._memfull, self._hasreport

        report_storage = self._core.get_cmd(K.PARAM_REPORT_STORAGE)
        try:
            with self._core.state.flag(STORAGE_CLEANING):
                if memfull and memfull != report_storage:
                    if self.config.empty_when_full:
                        self.storage.do_empty_storage(memfull)
                    else:
                        logger.warning(f"Storage {memfull} is full, enable empty_when_full to clear it")
                if hasreport or (memfull and memfull == report_storage):
                    self.storage.do_list_messages(SmsStat.ALL, report_storage)
        except GsmError as e:
            logger.error(f"Storage maintenance failed: {e}")
        finally:
            with self._lock:
                self._memfull, self._hasreport = None, False
                self._maintenance_pending = False

    def __enter__(self):
        """Context manager entry."""
        if not self._core.is_running():
            self.start()
        return self

    def __exit__(self, *exc):
        """Context manager exit."""
        self.close()
