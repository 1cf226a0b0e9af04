"""
The engine underneath :class:`~atgsm.modem.GsmModem`.

One reader thread owns the transport's input. While a command is in flight
its chunks go to :class:`ATProtocol`; otherwise they are framed into lines and
matched against the notification table. Work that sends commands runs on the
:class:`OperationQueue` worker, one operation at a time.
"""

import logging
import re
import threading
import time
from typing import Any, Callable, Iterable, Optional

from .events import EventEmitter, EVENT_DISCONNECT, EVENT_PROP, EVENT_STATE
from .framer import LineFramer
from .processor import NotificationProcessor, UnprocessedBacklog
from .protocol import ATProtocol, BatchItem
from .queue import OperationQueue
from .response import Patterns, Transaction
from .state import BUSY, PROCESSING, DeviceState
from .transport import Transport
from ..config import ModemConfig
from ..driver import DEFAULT_DRIVER, Driver, DriverKeys
from ..exceptions import DeviceDisconnectedError, ModemNotStartedError
from ..parsers.handlers import SIGNATURES

logger = logging.getLogger(__name__)

# Update keys announced on the property channel but not stored in props
TRANSIENT_KEYS = frozenset({
    "messages", "queues", "ussd", "ringing", "caller", "storages", "memfull",
})

# Reader gives up after this many failed reads in a row
MAX_READ_ERRORS = 5


class ModemCore:
    """
    Reader thread, transaction engine, notification path and operation queue
    for one modem.

    Decoded notification fields are merged into ``props`` by :meth:`apply`
    and announced on the "prop" channel. Flag changes are announced on the
    "state" channel.

    Args:
        transport: Byte channel to the modem
        driver: Command table, the generic one when None
        config: Modem options, defaults when None
        on_disconnect: Called with the error when the modem goes away
    """

    def __init__(
        self,
        transport: Transport,
        driver: Optional[Driver] = None,
        config: Optional[ModemConfig] = None,
        on_disconnect: Optional[Callable[[Exception], None]] = None
    ) -> None:
        self.transport = transport
        self.config = config or ModemConfig()
        self.driver = driver or Driver(DEFAULT_DRIVER)

        self.events = EventEmitter()
        self.state = DeviceState()
        self.props: dict[str, Any] = {}
        self._props_lock = threading.Lock()

        self.protocol = ATProtocol(
            transport,
            self.driver,
            default_timeout=self.config.timeout,
            timeout_threshold=self.config.timeout_threshold,
            on_busy=lambda busy: self.state.set(BUSY, busy),
            on_extras=self.process,
        )
        self.processor = NotificationProcessor(self.driver, SIGNATURES)
        self.backlog = UnprocessedBacklog(
            max_lines=self.config.backlog_max_lines,
            max_age=self.config.backlog_max_age,
        )
        self.queue = OperationQueue(gate=lambda: self.state.is_idle)

        self._framer = LineFramer(self.protocol.terminator)
        self._process_lock = threading.RLock()
        self.state.add_listener(self._on_state)

        self._reader: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._running = False
        self._disconnected = False
        self._read_errors = 0
        self._on_disconnect = on_disconnect

    # Lifecycle

    def start(self) -> None:
        """Start the reader thread and the operation queue."""
        if self._running:
            logger.warning("Modem core is already running")
            return

        self._disconnected = False
        self._read_errors = 0
        self._stop_event.clear()
        self._reader = threading.Thread(target=self._read_forever, daemon=True, name="atgsm-reader")
        self._reader.start()
        self.queue.start()
        self._running = True
        logger.info(f"Modem core started ({self.driver.name} driver)")

    def stop(self) -> None:
        """
        Stop the reader and the queue worker.

        Operations that did not start yet are cancelled.
        """
        # After a disconnection the reader is gone but the queue still runs
        if not self._running and not self.queue.is_running():
            return

        self.queue.stop()
        self._stop_event.set()
        if self._reader:
            self._reader.join(timeout=1.0)
            if self._reader.is_alive():
                logger.warning("Reader thread still alive after 1s")
        self._running = False
        logger.info("Modem core stopped")

    def close(self) -> None:
        """Stop, then release the transport."""
        self.stop()
        self.transport.close()

    def is_running(self) -> bool:
        return self._running

    def is_disconnected(self) -> bool:
        """True once the transport reported the device gone."""
        return self._disconnected

    def use_driver(self, driver: Driver) -> None:
        """Switch the command table used by every layer."""
        logger.info(f"Using driver {driver.name}")
        self.driver = driver
        self.protocol.driver = driver
        self.processor.driver = driver
        self._framer = LineFramer(self.protocol.terminator)

    # Reader side

    def _read_forever(self) -> None:
        while not self._stop_event.is_set():
            try:
                data = self.transport.read(timeout=0.1)
                self._read_errors = 0
                if data:
                    self._on_data(data)
            except DeviceDisconnectedError as e:
                if not self._stop_event.is_set():
                    self._lost(e)
                return
            except Exception as e:
                if not self._read_failed(e):
                    return

    def _lost(self, error: DeviceDisconnectedError) -> None:
        logger.error(f"Modem disconnected: {error}")
        self._running = False
        self._disconnected = True
        self.events.emit(EVENT_DISCONNECT, error)
        if self._on_disconnect:
            self._on_disconnect(error)

    def _read_failed(self, error: Exception) -> bool:
        """Back off after a failed read; False once the reader should give up."""
        self._read_errors += 1
        logger.error(f"Read failed ({self._read_errors}/{MAX_READ_ERRORS}): {error}")
        if self._read_errors >= MAX_READ_ERRORS:
            logger.error("Too many read failures, reader stopped")
            self._running = False
            return False
        # 0.1s, 0.2s, 0.4s, ...
        time.sleep(0.1 * 2 ** (self._read_errors - 1))
        return True

    def _on_data(self, data: bytes) -> None:
        if self.protocol.feed(data):
            return
        self._framer.add(data)
        if self._framer.is_complete():
            self.process(self._framer.drain())

    def process(self, lines: Iterable[str]) -> None:
        """
        Process notification lines.

        Matched fields are applied; unmatched lines go through the recovery
        backlog. Never raises.
        """
        lines = list(lines)
        if not lines:
            return

        with self._process_lock:
            self.state.set(PROCESSING, True)
            try:
                for line in lines:
                    if self.config.log_notifications:
                        logger.info(f"Notification: {line}")
                    else:
                        logger.debug(f"Notification: {line}")

                result = self.processor.process(lines, self)
                for update in result.updates:
                    self.apply(update)

                if result.unprocessed or len(self.backlog):
                    recovered = self.backlog.resolve(self.processor, result.unprocessed, self)
                    if recovered is not None:
                        for update in recovered.updates:
                            self.apply(update)
            except Exception as e:
                logger.error(f"Notification processing failed: {e}", exc_info=True)
            finally:
                self.state.set(PROCESSING, False)

    # State

    def apply(self, update: dict) -> None:
        """
        Apply a decoded state update.

        Persistent fields are merged into ``props``; the whole update is
        announced on the "prop" channel. Updates are applied one at a time
        whether they come from the reader or from the operation worker.
        """
        if not update:
            return
        with self._process_lock:
            with self._props_lock:
                for key, value in update.items():
                    if key not in TRANSIENT_KEYS:
                        self.props[key] = value
            self.events.emit(EVENT_PROP, update)

    def prop(self, key: str, default: Any = None) -> Any:
        """Get a device property."""
        with self._props_lock:
            return self.props.get(key, default)

    def _on_state(self, active: list[str]) -> None:
        logger.debug(f"Device state: {active or 'idle'}")
        self.events.emit(EVENT_STATE, active)
        self.queue.notify()

    @property
    def current(self) -> Optional[dict]:
        """Info of the running queued operation."""
        return self.queue.current

    def get_cmd(self, key: str, **variables: Any) -> Optional[str]:
        """Resolve a driver key."""
        return self.driver.get(key, **variables)

    # Commands

    def run(self, work: Callable[[], Any], info: Optional[dict] = None) -> Any:
        """
        Run an operation on the queue and wait for it.

        Called from inside a queued operation, the work runs immediately.

        Raises:
            ModemNotStartedError: If the modem is not started
        """
        if self.queue.in_worker():
            return work()
        return self.submit(work, info).result()

    def submit(self, work: Callable[[], Any], info: Optional[dict] = None):
        """
        Queue an operation without waiting.

        Returns:
            concurrent.futures.Future of the operation

        Raises:
            ModemNotStartedError: If the modem is not started
        """
        if not self._running:
            raise ModemNotStartedError("Modem not started. Call start() first.")
        return self.queue.enqueue(info or {"op": "command"}, work)

    def query(
        self,
        cmd: str,
        expect: Patterns = None,
        ignore: Patterns = None,
        timeout: Optional[float] = None,
        context: Any = None
    ) -> Transaction:
        """
        Send a command through the queue and decode its response.

        Args:
            cmd: Command text
            expect: Prefixes accepted as success besides OK
            ignore: Prefixes dropped from the response
            timeout: Per-read timeout (default if None)
            context: Dict or object receiving the decoded fields

        Returns:
            Finished transaction; decoded fields are in ``transaction.result``

        Raises:
            ATTimeoutError: If the command times out
            ATCommandError: If the modem answers with an error

        Example:

        .. code-block:: python

            tx = core.query("AT+CSQ")
            print(tx.result["rssi"].rssi_dbm)
        """
        return self.run(
            lambda: self.do_query(cmd, expect, ignore, timeout, context),
            {"op": "query", "cmd": cmd},
        )

    def do_query(
        self,
        cmd: str,
        expect: Patterns = None,
        ignore: Patterns = None,
        timeout: Optional[float] = None,
        context: Any = None
    ) -> Transaction:
        """
        ``query`` without the queue; call from inside a queued operation.

        Storage selections are only recorded once the modem accepted them.
        """
        transaction = self.protocol.send(cmd, expect=expect, ignore=ignore, timeout=timeout)
        self._save_storage(cmd)
        self.handle_responses(transaction, context)
        return transaction

    def batch(self, items: Iterable[BatchItem]) -> dict[str, Transaction]:
        """Run ``send_batch`` through the queue."""
        items = list(items)
        return self.run(lambda: self.protocol.send_batch(items), {"op": "batch"})

    def handle_responses(self, transaction: Transaction, context: Any = None) -> dict:
        """
        Decode a transaction's response lines.

        Updates are applied; the merged fields are stored in
        ``transaction.result`` and copied into ``context``. Runs under the
        same lock as notification processing.
        """
        with self._process_lock:
            result = self.processor.process(transaction.responses, self)
            for update in result.updates:
                self.apply(update)
        transaction.result = result.result
        if context is not None:
            _merge(context, transaction.result)
        return transaction.result

    def _save_storage(self, cmd: str) -> None:
        """Track the storage and index addressed by storage commands."""
        K = DriverKeys
        patterns = [
            (K.CMD_SMS_STORAGE_SET, "storage"),
            (K.CMD_SMS_READ, "storage_index"),
            (K.CMD_SMS_DELETE, "storage_index"),
        ]
        for key, prop in patterns:
            template = self.driver.get(key)
            if not template:
                continue
            regex = re.escape(template)
            regex = regex.replace(re.escape("%STORAGE%"), "([A-Za-z]+)")
            regex = regex.replace(re.escape("%SMS_ID%"), r"(\d+)")
            match = re.fullmatch(regex, cmd)
            if match and match.groups():
                value = match.group(1)
                with self._props_lock:
                    self.props[prop] = int(value) if value.isdigit() else value
                return

    def __enter__(self):
        """Context manager entry."""
        if not self._running:
            self.start()
        return self

    def __exit__(self, *exc):
        """Context manager exit."""
        self.close()


def _merge(context: Any, values: dict) -> None:
    if isinstance(context, dict):
        context.update(values)
        return
    for key, value in values.items():
        setattr(context, key, value)
