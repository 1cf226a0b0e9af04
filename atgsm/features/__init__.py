"""
Feature managers for modem functionality.

Provides high-level managers for different modem capabilities:
- DeviceManager: Detection, driver selection, identity
- NetworkManager: Signal, operators, charsets, SMSC, monitors
- SMSManager: SMS sending (PDU mode, concatenated)
- StorageManager: Message storages, read/list/delete
- CallManager: Dial, answer, hang up
- USSDManager: USSD sessions
- MessageReassembler: Long message reassembly
"""

from .device_info import DeviceManager
from .network import NetworkManager
from .sms import SMSManager, MessageReferenceCounter
from .storage import StorageManager
from .call import CallManager
from .ussd import USSDManager
from .reassembly import MessageReassembler

__all__ = [
    "DeviceManager",
    "NetworkManager",
    "SMSManager",
    "MessageReferenceCounter",
    "StorageManager",
    "CallManager",
    "USSDManager",
    "MessageReassembler",
]
