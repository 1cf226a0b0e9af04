"""
Device state flags.

The modem is idle when no flag is set. Operations queued on the modem only
start while it is idle.
"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

StateListener = Callable[[list[str]], None]

BUSY = "busy"                          # AT transaction in flight
PROCESSING = "processing"              # Notification processing in progress
SENDING = "sending"                    # Outgoing SMS in progress
STORAGE_CLEANING = "storage_cleaning"  # Storage maintenance in progress
USSD_WAIT = "ussd_wait"                # USSD session awaiting a response


class DeviceState:
    """
    Thread-safe set of named activity flags.

    Listeners are called with the list of active flags whenever the idle
    status changes (they run outside the lock).

    Example:

    .. code-block:: python

        state = DeviceState()
        state.add_listener(lambda active: print("idle" if not active else active))
        state.set(SENDING, True)     # prints ['sending']
        state.set(SENDING, False)    # prints idle
    """

    def __init__(self) -> None:
        self._flags: dict[str, bool] = {}
        self._listeners: list[StateListener] = []
        self._lock = threading.Lock()

    def set(self, name: str, value: bool) -> None:
        """Set or clear a flag."""
        with self._lock:
            was_idle = self._idle()
            self._flags[name] = bool(value)
            now_idle = self._idle()
            active = self._active()
            listeners = list(self._listeners) if was_idle != now_idle else []

        for listener in listeners:
            try:
                listener(active)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    def get(self, name: str) -> bool:
        """Get a flag value."""
        with self._lock:
            return self._flags.get(name, False)

    @property
    def is_idle(self) -> bool:
        """Check if no flag is set."""
        with self._lock:
            return self._idle()

    @property
    def active(self) -> list[str]:
        """Names of the set flags."""
        with self._lock:
            return self._active()

    def add_listener(self, listener: StateListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def flag(self, name: str) -> "_FlagContext":
        """
        Context manager holding a flag for the duration of a block.

        .. code-block:: python

            with state.flag(SENDING):
                ...
        """
        return _FlagContext(self, name)

    def _idle(self) -> bool:
        return not any(self._flags.values())

    def _active(self) -> list[str]:
        return [name for name, value in self._flags.items() if value]

    def __repr__(self) -> str:
        return f"<DeviceState active={self.active}>"


class _FlagContext:
    def __init__(self, state: DeviceState, name: str) -> None:
        self.state = state
        self.name = name

    def __enter__(self) -> DeviceState:
        self.state.set(self.name, True)
        return self.state

    def __exit__(self, *exc) -> None:
        self.state.set(self.name, False)
