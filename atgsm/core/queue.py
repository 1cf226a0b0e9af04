"""
Operation queue.

Runs modem operations one at a time, in submission order, on a dedicated
worker thread. An entry only starts when the gate predicate allows it.
"""

import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Iterable, Optional

logger = logging.getLogger(__name__)

Work = Callable[[], Any]


@dataclass
class QueueEntry:
    """One queued operation."""
    info: dict
    work: Work = field(repr=False)
    future: Future = field(default_factory=Future, repr=False)


def run_steps(steps: Iterable[Work]) -> list[Any]:
    """
    Run callables in order, stopping at the first failure.

    Args:
        steps: Zero-argument callables

    Returns:
        List of step results

    Raises:
        Exception: The first step failure; later steps are not run
    """
    results = []
    for step in steps:
        results.append(step())
    return results


class OperationQueue:
    """
    Strict FIFO of operations gated by a predicate.

    The gate is evaluated before each dequeue. Call ``notify()`` whenever the
    gate may have become true (the modem calls it on every idle transition);
    the worker also re-checks periodically.

    A failing entry rejects its future and is logged; the queue continues
    with the next entry.

    Example:

    .. code-block:: python

        queue = OperationQueue(gate=lambda: state.is_idle)
        queue.start()
        future = queue.enqueue({"op": "signal"}, lambda: protocol.send("AT+CSQ"))
        transaction = future.result(timeout=10)
    """

    def __init__(
        self,
        gate: Optional[Callable[[], bool]] = None,
        poll_interval: float = 0.5,
        name: str = "ModemQueueThread"
    ) -> None:
        """
        Initialize operation queue.

        Args:
            gate: Returns True when the next entry may start (always if None)
            poll_interval: Maximum time between gate re-checks
            name: Worker thread name
        """
        self._gate = gate or (lambda: True)
        self._poll_interval = poll_interval
        self._name = name

        self._entries: Deque[QueueEntry] = deque()
        self._current: Optional[QueueEntry] = None
        self._cond = threading.Condition()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the worker thread."""
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._worker.start()
        logger.debug("Started operation queue")

    def stop(self, cancel: bool = True) -> None:
        """
        Stop the worker thread.

        Args:
            cancel: Cancel the futures of entries that did not start
        """
        self._stop_event.set()
        self.notify()
        if self._worker is not None and self._worker is not threading.current_thread():
            self._worker.join(timeout=1.0)
            if self._worker.is_alive():
                logger.warning("Queue worker did not terminate in time")
        self._worker = None
        if cancel:
            self.clear()
        logger.debug("Stopped operation queue")

    def enqueue(self, info: dict, work: Work) -> Future:
        """
        Append an operation.

        Args:
            info: Label describing the operation (e.g. ``{"op": "read", "index": 3}``)
            work: Callable performing the operation

        Returns:
            Future resolved with the callable's result or its exception
        """
        entry = QueueEntry(info=dict(info), work=work)
        with self._cond:
            self._entries.append(entry)
            logger.debug(f"Queued {entry.info} ({len(self._entries)} pending)")
            self._cond.notify_all()
        return entry.future

    def notify(self) -> None:
        """Re-evaluate the gate."""
        with self._cond:
            self._cond.notify_all()

    def clear(self) -> int:
        """
        Cancel entries that did not start.

        Returns:
            Number of cancelled entries
        """
        with self._cond:
            entries = list(self._entries)
            self._entries.clear()
        for entry in entries:
            entry.future.cancel()
        return len(entries)

    @property
    def current(self) -> Optional[dict]:
        """Info of the running entry, if any."""
        entry = self._current
        return entry.info if entry is not None else None

    @property
    def pending(self) -> list[dict]:
        """Infos of entries waiting to run."""
        with self._cond:
            return [entry.info for entry in self._entries]

    def in_worker(self) -> bool:
        """Check if called from the worker thread."""
        return self._worker is not None and threading.current_thread() is self._worker

    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def __len__(self) -> int:
        with self._cond:
            return len(self._entries)

    def _next(self) -> Optional[QueueEntry]:
        with self._cond:
            while not self._stop_event.is_set():
                if self._entries and self._admit():
                    return self._entries.popleft()
                self._cond.wait(self._poll_interval)
        return None

    def _admit(self) -> bool:
        try:
            return bool(self._gate())
        except Exception as e:
            logger.error(f"Queue gate failed: {e}", exc_info=True)
            return False

    def _run(self) -> None:
        logger.debug("Queue worker started")
        while not self._stop_event.is_set():
            entry = self._next()
            if entry is None:
                break
            if not entry.future.set_running_or_notify_cancel():
                continue

            self._current = entry
            try:
                result = entry.work()
            except Exception as e:
                logger.error(f"Operation {entry.info} failed: {e}")
                entry.future.set_exception(e)
            else:
                entry.future.set_result(result)
            finally:
                self._current = None
        logger.debug("Queue worker stopped")
