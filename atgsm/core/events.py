"""
Event emitter.

Dispatches named events to registered callbacks in a thread-safe manner.
"""

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Type alias for event callbacks
EventCallback = Callable[..., None]

# Core events
EVENT_STATE = "state"                      # (active_flags)
EVENT_PROP = "prop"                        # (update)

# Modem events
EVENT_MESSAGE = "message"                  # (message, envelopes)
EVENT_MULTIPART_MESSAGE = "multipart-message"
EVENT_STATUS_REPORT = "status-report"      # (report, envelope)
EVENT_PDU = "pdu"                          # (success, messages)
EVENT_STORAGE = "storage"                  # (storages)
EVENT_RING = "ring"                        # (caller, count)
EVENT_DIAL = "dial"                        # (success, info)
EVENT_USSD = "ussd"                        # (response)
EVENT_USSD_DIAL = "ussd-dial"              # (success, info)
EVENT_DISCONNECT = "disconnect"            # (error)


class EventEmitter:
    """
    Registry of callbacks keyed by event name.

    Features:
    - Several callbacks per event, called in registration order
    - Thread-safe registration
    - Callbacks run outside the lock; exceptions are logged, not raised

    Callbacks run on the thread that emits the event (reader or worker).
    They must not block on operations queued on the same modem.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, list[EventCallback]] = {}
        self._lock = threading.Lock()

    def on(self, event: str, callback: EventCallback) -> None:
        """
        Register a callback for an event.

        Args:
            event: Event name (e.g. "message")
            callback: Function called with the event arguments

        Example:

        .. code-block:: python

            modem.on("message", lambda message, envelopes: print(message.text))
        """
        with self._lock:
            self._callbacks.setdefault(event, []).append(callback)
            logger.debug(f"Registered callback for event: {event}")

    def off(self, event: str, callback: Optional[EventCallback] = None) -> bool:
        """
        Unregister a callback, or every callback of an event.

        Returns:
            True if anything was removed
        """
        with self._lock:
            callbacks = self._callbacks.get(event)
            if not callbacks:
                return False
            if callback is None:
                del self._callbacks[event]
                return True
            if callback in callbacks:
                callbacks.remove(callback)
                return True
            return False

    def emit(self, event: str, *args: Any) -> int:
        """
        Call the callbacks of an event.

        Returns:
            Number of callbacks called
        """
        with self._lock:
            callbacks = list(self._callbacks.get(event, ()))

        for callback in callbacks:
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Callback for '{event}' failed: {e}", exc_info=True)
        return len(callbacks)

    def listeners(self, event: str) -> list[EventCallback]:
        """Get the callbacks of an event."""
        with self._lock:
            return list(self._callbacks.get(event, ()))
