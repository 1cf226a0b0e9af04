"""
Byte channels between the engine and a modem.

A channel delivers raw chunks; nothing here knows about lines or AT syntax.
``SerialTransport`` talks to a real port through pyserial, ``MockTransport``
plays back scripted modem replies for tests and examples.
"""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Optional, Union

import serial
from serial import SerialException

from ..exceptions import DeviceDisconnectedError, TransportError

logger = logging.getLogger(__name__)

# pyserial reports an unplugged USB modem through these messages
_UNPLUGGED_MARKERS = (
    "device disconnected",
    "device reports readiness to read but returned no data",
    "no such device",
    "device not configured",
    "input/output error",
)


def _as_bytes(data: Union[bytes, str]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


class Transport(ABC):
    """Duplex byte channel used by :class:`~atgsm.core.modem.ModemCore`."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Send bytes to the modem.

        Args:
            data: Encoded command, terminator included

        Returns:
            Count of bytes accepted by the channel

        Raises:
            DeviceDisconnectedError: If the modem is gone
            TransportError: If the channel rejects the data
        """

    @abstractmethod
    def read(self, timeout: Optional[float] = None) -> bytes:
        """
        Wait for the next chunk from the modem.

        Chunks can hold several lines or a fragment of one.

        Args:
            timeout: Seconds to block before giving up

        Returns:
            The chunk, or ``b""`` when the timeout expires

        Raises:
            DeviceDisconnectedError: If the modem is gone
            TransportError: If the channel fails
        """

    @abstractmethod
    def reset_input_buffer(self) -> None:
        """Drop unread input."""

    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel can still carry data."""

    @abstractmethod
    def close(self) -> None:
        """Release the channel."""


class SerialTransport(Transport):
    """Channel over a serial port (USB dongles, UART modules)."""

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        timeout: float = 0.1
    ) -> None:
        """
        Open the port.

        Args:
            port: Device path such as ``/dev/ttyUSB0`` or ``COM3``
            baudrate: Line speed
            timeout: Default poll interval for :meth:`read`

        Raises:
            TransportError: If pyserial cannot open the port
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout

        try:
            self._serial = serial.Serial(port=port, baudrate=baudrate, timeout=timeout)
        except SerialException as e:
            logger.error(f"Cannot open {port}: {e}")
            raise TransportError(f"Cannot open {port}: {e}") from e
        logger.info(f"{port} open ({baudrate} baud)")

    def write(self, data: bytes) -> int:
        try:
            count = self._serial.write(data)
            self._serial.flush()
        except SerialException as e:
            raise self._classify(e, "write") from e
        logger.debug(f"{self.port} >> {data!r}")
        return count

    def read(self, timeout: Optional[float] = None) -> bytes:
        """Return everything already buffered, or block up to ``timeout`` for one byte."""
        try:
            if timeout is not None and timeout != self._serial.timeout:
                self._serial.timeout = timeout
            chunk = self._serial.read(self._serial.in_waiting or 1)
        except SerialException as e:
            raise self._classify(e, "read") from e
        if chunk:
            logger.debug(f"{self.port} << {chunk!r}")
        return chunk

    def reset_input_buffer(self) -> None:
        try:
            self._serial.reset_input_buffer()
        except SerialException as e:
            raise self._classify(e, "flush") from e

    def is_open(self) -> bool:
        return bool(self._serial and self._serial.is_open)

    def close(self) -> None:
        if self.is_open():
            self._serial.close()
            logger.info(f"{self.port} closed")

    def _classify(self, error: SerialException, operation: str) -> TransportError:
        text = str(error).lower()
        if any(marker in text for marker in _UNPLUGGED_MARKERS):
            logger.error(f"{self.port} unplugged during {operation}: {error}")
            return DeviceDisconnectedError(
                f"{self.port} disconnected: {error}", response=[str(error)]
            )
        logger.error(f"{self.port} {operation} failed: {error}")
        return TransportError(f"{self.port} {operation} failed: {error}")


class MockTransport(Transport):
    """
    Scripted modem for tests.

    Replies queued with :meth:`add_response` are held back until the next
    :meth:`write`, the way a modem answers only once a command arrives.
    :meth:`feed` injects unsolicited data at once. After :meth:`close`
    both directions raise :class:`DeviceDisconnectedError`, as an unplugged
    dongle would.

    Example:

    .. code-block:: python

        transport = MockTransport()
        transport.add_response(["+CSQ: 24,99", "OK"])
        transport.add_raw_response([b"\\r\\n> "])      # SMS prompt, no terminator
        transport.feed(b"\\r\\nRING\\r\\n")
    """

    def __init__(self, terminator: str = "\r\n") -> None:
        self.terminator = terminator
        self._open = True
        self._incoming: "queue.Queue[bytes]" = queue.Queue()
        self._replies: list[list[bytes]] = []
        self._lock = threading.Lock()
        self.writes: list[str] = []

    def add_response(self, lines: list[str]) -> None:
        """
        Script the reply to the next unanswered write.

        Args:
            lines: Reply lines without terminators, e.g. ``["+CSQ: 24,99", "OK"]``
        """
        self.add_raw_response(["".join(line + self.terminator for line in lines)])

    def add_raw_response(self, chunks: list[Union[bytes, str]]) -> None:
        """
        Script a reply delivered verbatim, one read per chunk.

        Args:
            chunks: Pieces of the reply; no terminator is added
        """
        with self._lock:
            self._replies.append([_as_bytes(c) for c in chunks])

    def feed(self, data: Union[bytes, str]) -> None:
        """Push unsolicited modem output."""
        self._incoming.put(_as_bytes(data))

    def _check_open(self) -> None:
        if not self._open:
            raise DeviceDisconnectedError(
                "mock modem unplugged", response=["MockTransport closed"]
            )

    def write(self, data: bytes) -> int:
        self._check_open()
        with self._lock:
            self.writes.append(data.decode("utf-8", errors="replace"))
            reply = self._replies.pop(0) if self._replies else []
        logger.debug(f"mock >> {data!r} ({len(reply)} reply chunk(s))")
        for chunk in reply:
            self._incoming.put(chunk)
        return len(data)

    def read(self, timeout: Optional[float] = None) -> bytes:
        self._check_open()
        try:
            return self._incoming.get(timeout=0.1 if timeout is None else timeout)
        except queue.Empty:
            return b""

    def reset_input_buffer(self) -> None:
        while not self._incoming.empty():
            try:
                self._incoming.get_nowait()
            except queue.Empty:
                break

    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        self._open = False
        # unblock the reader so it notices
        self._incoming.put(b"")

    def clear_responses(self) -> None:
        """Forget scripted replies that were never released."""
        with self._lock:
            self._replies.clear()

    @property
    def commands(self) -> list[str]:
        """Everything written so far, terminators stripped."""
        end = self.terminator
        with self._lock:
            return [w[:-len(end)] if w.endswith(end) else w for w in self.writes]
