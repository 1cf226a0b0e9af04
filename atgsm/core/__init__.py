"""
Core modem infrastructure.

Provides low-level building blocks for modem communication:
- Transport: Serial communication abstraction
- LineFramer / Transaction: Framing and response matching
- Protocol: AT transactions with rolling timeout
- NotificationProcessor: Signature matching and recovery
- OperationQueue: Idle-gated FIFO of modem operations
- ModemCore: Coordination of all core components
"""

from .transport import Transport, SerialTransport, MockTransport
from .framer import LineFramer
from .response import Transaction
from .protocol import ATProtocol
from .processor import (
    IncompleteMatch, NotificationProcessor, ProcessorResult, Signature, UnprocessedBacklog
)
from .queue import OperationQueue, QueueEntry, run_steps
from .state import DeviceState
from .events import EventEmitter
from .modem import ModemCore

__all__ = [
    "Transport",
    "SerialTransport",
    "MockTransport",
    "LineFramer",
    "Transaction",
    "ATProtocol",
    "IncompleteMatch",
    "NotificationProcessor",
    "ProcessorResult",
    "Signature",
    "UnprocessedBacklog",
    "OperationQueue",
    "QueueEntry",
    "run_steps",
    "DeviceState",
    "EventEmitter",
    "ModemCore",
]
