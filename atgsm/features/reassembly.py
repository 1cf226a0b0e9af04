"""
Concatenated message reassembly.

Buffers received message envelopes, joins the parts of long messages and
dispatches complete messages and delivery reports.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Iterable, Optional

from ..types import MessageEnvelope, SmsMessage, SmsStatusReport
from ..utils import get_hash, intl_number

logger = logging.getLogger(__name__)

MessageCallback = Callable[[SmsMessage, list[MessageEnvelope]], None]
ReportCallback = Callable[[SmsStatusReport, MessageEnvelope], None]


def message_hash(message: SmsMessage, country_code: Optional[str] = None) -> str:
    """
    Deduplication hash of a message (SMSC, time, international sender, text).

    The SMSC is the one carried in the received PDU, not the modem's
    configured service centre, so the hash of a stored message does not
    change when the modem's SMSC setting does.
    """
    return get_hash(message.smsc, message.time, intl_number(message.address, country_code), message.text)


class MessageReassembler:
    """
    Reassembly buffer.

    After each arrival the buffer is scanned from the front:

    - delivery reports are dispatched at once
    - a fragment whose set is complete (parts sharing reference and total)
      is joined in part order and dispatched as one message
    - while a fragment set is incomplete, the first plain message buffered
      after it is dispatched instead, so stalled sets never block others
    - plain messages are dispatched at once

    Every dispatched message carries its deduplication hash.

    Example:

    .. code-block:: python

        reassembler = MessageReassembler(
            on_message=lambda message, envelopes: print(message.text),
            on_report=lambda report, envelope: print(report.status),
        )
        reassembler.add(envelopes)
    """

    def __init__(
        self,
        on_message: Optional[MessageCallback] = None,
        on_report: Optional[ReportCallback] = None,
        country_code: Optional[str] = None
    ) -> None:
        self.on_message = on_message
        self.on_report = on_report
        self.country_code = country_code
        self._buffer: list[MessageEnvelope] = []
        self._lock = threading.RLock()

    @property
    def pending(self) -> list[MessageEnvelope]:
        """Buffered envelopes, in arrival order."""
        with self._lock:
            return list(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer = []

    def add(self, envelopes: Iterable[MessageEnvelope]) -> list:
        """
        Buffer new envelopes and dispatch what is ready.

        Safe to call from several threads; one call scans the buffer at a
        time.

        Returns:
            Dispatched messages and reports, in dispatch order
        """
        with self._lock:
            self._buffer.extend(envelopes)
            return self._dispatch()

    def _dispatch(self) -> list:
        dispatched = []
        i = 0
        while i < len(self._buffer):
            envelope = self._buffer[i]
            message = envelope.message

            if isinstance(message, SmsStatusReport):
                del self._buffer[i]
                self._report(message, envelope)
                dispatched.append(message)
                continue

            if not message.is_fragment:
                del self._buffer[i]
                dispatched.append(self._message(message, [envelope]))
                continue

            key = (message.reference, message.total)
            parts = [e for e in self._buffer if _fragment_key(e) == key]
            by_part = {e.message.part: e for e in parts}
            if len(by_part) >= message.total:
                self._buffer = [e for e in self._buffer if _fragment_key(e) != key]
                dispatched.append(self._join(sorted(by_part.values(), key=lambda e: e.message.part)))
                continue

            # Set incomplete: let the first plain message behind it through
            for j in range(i + 1, len(self._buffer)):
                other = self._buffer[j]
                if isinstance(other.message, SmsMessage) and not other.message.is_fragment:
                    del self._buffer[j]
                    dispatched.append(self._message(other.message, [other]))
                    break
            else:
                logger.debug(f"Waiting for parts of message {key}: have {sorted(by_part)}")
                i += 1

        return dispatched

    def _join(self, envelopes: list[MessageEnvelope]) -> SmsMessage:
        first = envelopes[0].message
        text = "".join(e.message.text for e in envelopes)
        joined = replace(first, text=text, part=None, pdu=None,
                         tpdu_length=sum(e.message.tpdu_length for e in envelopes))
        logger.debug(f"Joined {len(envelopes)} parts of message {first.reference}")
        return self._message(joined, envelopes)

    def _message(self, message: SmsMessage, envelopes: list[MessageEnvelope]) -> SmsMessage:
        message.hash = message_hash(message, self.country_code)
        if self.on_message:
            self.on_message(message, envelopes)
        return message

    def _report(self, report: SmsStatusReport, envelope: MessageEnvelope) -> None:
        if self.on_report:
            self.on_report(report, envelope)


def _fragment_key(envelope: MessageEnvelope) -> Optional[tuple]:
    message = envelope.message
    if isinstance(message, SmsMessage) and message.is_fragment:
        return message.reference, message.total
    return None
