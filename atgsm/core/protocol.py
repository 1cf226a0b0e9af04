"""
AT command protocol handler.

Owns the stream while a command is outstanding: transmits one command at a
time, frames the reply, runs the transaction matcher and applies a rolling
per-read timeout.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

from .framer import LineFramer
from .response import Patterns, Transaction, as_patterns
from .transport import Transport
from ..driver import Driver, DriverKeys
from ..exceptions import ATCommandError, ATTimeoutError, GsmError

logger = logging.getLogger(__name__)

BatchItem = Union[str, tuple[str, dict]]


@dataclass
class _Active:
    """The in-flight transaction token."""
    transaction: Transaction
    framer: LineFramer
    timeout: float
    partials: list[str]
    deadline: float = 0.0
    done: threading.Event = field(default_factory=threading.Event)

    def rearm(self) -> None:
        self.deadline = time.monotonic() + self.timeout


class ATProtocol:
    """
    AT command protocol handler.

    Only one transaction is in flight at a time. While it is, every chunk
    fed by the reader thread belongs to it; otherwise ``feed`` returns False
    and the caller routes the data to the notification path.

    Busy tracking is explicit: the in-flight token is set before the command
    is written and cleared exactly once, by whichever of completion, timeout
    or write failure happens first. ``on_busy`` is called on both edges.
    """

    def __init__(
        self,
        transport: Transport,
        driver: Driver,
        default_timeout: float = 5.0,
        timeout_threshold: int = 100,
        on_busy: Optional[Callable[[bool], None]] = None,
        on_extras: Optional[Callable[[list[str]], None]] = None
    ) -> None:
        """
        Initialize AT protocol handler.

        Args:
            transport: Transport instance for communication
            driver: Driver resolving marker and command keys
            default_timeout: Default per-read timeout in seconds
            timeout_threshold: Cumulative timeouts before warning that the modem is unresponsive
            on_busy: Called with True when a transaction starts and False when it ends
            on_extras: Called with lines received after a conclusive match
        """
        self.transport = transport
        self.driver = driver
        self.default_timeout = default_timeout
        self.timeout_threshold = timeout_threshold
        self.timeouts = 0

        self._on_busy = on_busy
        self._on_extras = on_extras

        # Serializes callers; _lock guards the token
        self._tx_lock = threading.Lock()
        self._lock = threading.Lock()
        self._active: Optional[_Active] = None

        logger.info("Initialized AT protocol handler")

    @property
    def terminator(self) -> str:
        return self.driver.get(DriverKeys.PARAM_TERMINATOR) or "\r\n"

    @property
    def busy(self) -> bool:
        """Check if a transaction is in flight."""
        with self._lock:
            return self._active is not None

    def send(
        self,
        data: str,
        expect: Patterns = None,
        ignore: Patterns = None,
        timeout: Optional[float] = None
    ) -> Transaction:
        """
        Transmit a command and wait for its conclusion.

        Args:
            data: Command text (terminator is appended)
            expect: Literal prefixes accepted as success besides OK
            ignore: Literal prefixes dropped from the captured response
            timeout: Per-read timeout in seconds (default if None)

        Returns:
            The successful transaction

        Raises:
            ATTimeoutError: If no conclusive line arrives within the window
            ATCommandError: If the modem answered with an error marker
            TransportError: If the write fails

        Example:

        .. code-block:: python

            tx = protocol.send("AT+CMGS=23", expect="> ")
            tx = protocol.send("AT+CSQ")
            print(tx.responses)    # ['+CSQ: 24,99']
        """
        if not data:
            raise GsmError("No data to transmit")

        with self._tx_lock:
            transaction = self._new_transaction(data, expect, ignore)
            active = _Active(
                transaction=transaction,
                framer=LineFramer(self.terminator),
                timeout=timeout if timeout is not None else self.default_timeout,
                partials=as_patterns(expect),
            )

            with self._lock:
                self._active = active
            self._busy(True)

            if self.timeouts >= self.timeout_threshold:
                logger.warning(
                    f"Timeout threshold reached ({self.timeouts}), "
                    "modem may be unresponsive. Try to restart"
                )

            logger.debug(f"TX> {data}")
            active.rearm()
            try:
                self.transport.write((data + self.terminator).encode("utf-8"))
            except Exception as e:
                logger.error(f"ERR> {e}")
                self._release(active)
                raise

            while not active.done.is_set():
                remaining = active.deadline - time.monotonic()
                if remaining > 0:
                    active.done.wait(remaining)
                    continue
                if self._release(active):
                    self.timeouts += 1
                    transaction.finish_timeout()
                    logger.error(f"AT command timed out: {data}")
                    raise ATTimeoutError(f"{data}: Operation timeout", transaction)
                # Completion won the race and is about to signal
                active.done.wait(0.01)

            logger.debug(f"Received response: {transaction.responses}")
            if transaction.error:
                logger.error(f"AT command failed: {transaction.describe()}")
                raise ATCommandError(transaction.describe(), transaction)
            return transaction

    def feed(self, data: bytes) -> bool:
        """
        Offer a received chunk to the in-flight transaction.

        Called from the reader thread.

        Returns:
            True if a transaction consumed the chunk
        """
        with self._lock:
            active = self._active
        if active is None:
            return False

        active.rearm()
        logger.debug(f"RX> {data!r}")
        active.framer.add(data)
        if not active.framer.is_complete(active.partials):
            return True

        transaction = active.transaction
        if not transaction.check(active.framer.drain()):
            return True

        if not self._release(active):
            # Lost the race against the timeout
            return True
        active.done.set()

        if transaction.extras and self._on_extras:
            self._on_extras(list(transaction.extras))
        return True

    def send_batch(self, items: Iterable[BatchItem]) -> dict[str, Transaction]:
        """
        Send a fixed list of driver commands, tolerating failures.

        Args:
            items: Driver keys, or ``(key, variables)`` tuples

        Returns:
            Mapping of key to its finished transaction (successful or not).
            Keys the driver does not define are skipped.
        """
        results: dict[str, Transaction] = {}
        for item in items:
            key, variables = item if isinstance(item, tuple) else (item, {})
            command = self.driver.get(key, **variables)
            if not command:
                continue
            try:
                results[key] = self.send(command)
            except (ATTimeoutError, ATCommandError) as e:
                logger.debug(f"Batch command {command} failed: {e}")
                results[key] = e.transaction
        return results

    def _new_transaction(self, data: str, expect: Patterns, ignore: Patterns) -> Transaction:
        get = self.driver.get
        K = DriverKeys
        return Transaction(
            data,
            expect=expect,
            ignore=ignore,
            ok_markers=[get(K.RESPONSE_OK)],
            error_markers=[
                get(K.RESPONSE_ERROR),
                get(K.RESPONSE_NO_CARRIER),
                get(K.RESPONSE_NOT_SUPPORTED),
                get(K.RESPONSE_CME_ERROR),
                get(K.RESPONSE_CMS_ERROR),
            ],
            retained_markers=[get(K.RESPONSE_CME_ERROR), get(K.RESPONSE_CMS_ERROR)],
        )

    def _release(self, active: _Active) -> bool:
        """Clear the token if it is still ``active``; True for the one caller that did."""
        with self._lock:
            if self._active is not active:
                return False
            self._active = None
        self._busy(False)
        return True

    def _busy(self, busy: bool) -> None:
        if self._on_busy:
            try:
                self._on_busy(busy)
            except Exception as e:
                logger.error(f"Busy callback failed: {e}", exc_info=True)
