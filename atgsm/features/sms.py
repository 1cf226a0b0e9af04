"""
SMS manager.

Handles SMS sending in PDU mode, including long (concatenated) messages.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ..core.events import EVENT_PDU
from ..core.queue import run_steps
from ..core.state import SENDING
from ..driver import DriverKeys as K
from ..exceptions import GsmError, PDUError, SMSError
from ..parsers.pdu import concat_udh, detect_encoding, encode_sms_submit, split_message, tpdu_length
from ..types import SmsMessage, SmsMode
from ..utils import get_hash, intl_number

if TYPE_CHECKING:
    from ..core import ModemCore

logger = logging.getLogger(__name__)


class MessageReferenceCounter:
    """
    Concatenation reference allocator (0-255, wrapping).

    With a file path the last used value is persisted as ``{"msgref": n}``
    and every allocation is a read-modify-write with an atomic replace, so
    references keep increasing across restarts. Without one, an in-process
    counter is used.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._value = -1
        self._lock = threading.Lock()

    def next(self) -> int:
        """Allocate the next reference."""
        with self._lock:
            if self.path:
                self._value = self._load()
            self._value = (self._value + 1) % 256
            if self.path:
                self._save(self._value)
            return self._value

    def _load(self) -> int:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return int(json.load(f).get("msgref", -1))
        except FileNotFoundError:
            return -1
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Unreadable message reference file {self.path}: {e}")
            return self._value

    def _save(self, value: int) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".msgref-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"msgref": value}, f)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning(f"Unable to persist message reference to {self.path}: {e}")
            if os.path.exists(tmp):
                os.unlink(tmp)


class SMSManager:
    """
    Manages SMS messaging operations.

    Features:
    - Send SMS in PDU mode (GSM 7-bit or UCS2, detected automatically)
    - Long messages split into concatenated parts
    - Delivery report request, reply path and flash options from the config
    - SMS mode query and selection

    Received messages are handled by the modem through notifications and
    the storage manager.
    """

    def __init__(self, modem_core: "ModemCore") -> None:
        """
        Initialize SMS manager.

        Args:
            modem_core: ModemCore instance for AT command execution
        """
        self.modem = modem_core
        self.references = MessageReferenceCounter(modem_core.config.msg_ref_file)

        logger.debug("Initialized SMSManager")

    def get_sms_mode(self) -> Optional[SmsMode]:
        """
        Get current SMS message mode.

        Returns:
            SmsMode.PDU or SmsMode.TEXT, None if not reported
        """
        tx = self.modem.query(self._cmd(K.CMD_SMS_MODE_GET))
        mode = tx.result.get("sms_mode")
        return SmsMode(mode) if mode is not None else None

    def set_sms_mode(self, mode: Optional[SmsMode] = None) -> None:
        """
        Select the SMS message mode.

        Args:
            mode: Mode to select (driver default if None)
        """
        self.modem.run(lambda: self.do_set_sms_mode(mode), {"op": "sms_mode"})

    def do_set_sms_mode(self, mode: Optional[SmsMode] = None) -> None:
        if mode is None:
            mode = SmsMode(int(self.modem.get_cmd(K.PARAM_SMS_MODE) or 0))
        self.modem.do_query(self._cmd(K.CMD_SMS_MODE_SET, SMS_MODE=int(mode)))
        self.modem.apply({"sms_mode": int(mode)})

    def encode(self, number: str, text: str, hash: Optional[str] = None) -> list[SmsMessage]:
        """
        Encode a message into one PDU per part.

        Args:
            number: Destination phone number
            text: Message text
            hash: Identifier stamped on every part; by default a hash of
                the send time, international number and whole text

        Returns:
            Outgoing messages with ``pdu``, ``tpdu_length``, ``time`` and
            ``hash`` set

        Raises:
            PDUError: If the message cannot be encoded
        """
        config = self.modem.config
        encoding = detect_encoding(text)
        parts = split_message(text, encoding)
        reference = self.references.next() if len(parts) > 1 else None
        time = datetime.now(timezone.utc)
        hash = hash or get_hash(time, intl_number(number, config.country_code), text)

        messages = []
        for i, part in enumerate(parts, start=1):
            udh = concat_udh(reference, len(parts), i) if reference is not None else None
            pdu = encode_sms_submit(
                number=number,
                text=part,
                encoding=encoding,
                flash=config.send_message_as_flash,
                request_status=config.request_message_status,
                reply_path=config.request_message_reply,
                udh=udh,
            )
            messages.append(SmsMessage(
                address=number,
                text=part,
                encoding=encoding,
                reference=reference,
                total=len(parts) if reference is not None else None,
                part=i if reference is not None else None,
                tpdu_length=tpdu_length(pdu),
                pdu=pdu,
                hash=hash,
            ))
        logger.debug(f"Encoded message to {number} as {len(messages)} part(s)")
        return messages

    def send_message(self, number: str, text: str, hash: Optional[str] = None) -> list[SmsMessage]:
        """
        Send an SMS message using PDU mode.

        PDU mode is used for maximum compatibility and to support:
        - Unicode characters (via UCS2)
        - Long messages (automatic concatenation)
        - Delivery reports

        The SMS mode is selected, then each part is sent. When the driver
        waits for the prompt, ``AT+CMGS=<len>`` is sent first and the PDU is
        committed after the ``>`` prompt. The first failing step aborts the
        remaining parts.

        Args:
            number: Recipient phone number (with or without +)
            text: Message text
            hash: Caller identifier for the "pdu" event (see :meth:`encode`)

        Returns:
            Sent parts, with the modem assigned ``message_reference``

        Raises:
            SMSError: If the driver uses text mode or encoding fails
            ATTimeoutError: If the modem does not answer
            ATCommandError: If the modem rejects a part

        Example:

        .. code-block:: python

            # Send simple SMS
            parts = modem.sms.send_message("+1234567890", "Hello!")
            print(parts[0].message_reference)

            # Unicode and long messages are handled automatically
            modem.sms.send_message("+1234567890", "Hello 世界!" * 20)
        """
        logger.info(f"Sending SMS to {number}")
        return self.modem.run(
            lambda: self.do_send_message(number, text, hash),
            {"op": "send", "number": number},
        )

    def do_send_message(self, number: str, text: str, hash: Optional[str] = None) -> list[SmsMessage]:
        if self.modem.get_cmd(K.PARAM_SMS_MODE) == str(int(SmsMode.TEXT)):
            raise SMSError("Text mode SMS sending is not supported")

        try:
            messages = self.encode(number, text, hash)
        except PDUError as e:
            raise SMSError(f"PDU encoding failed: {e}") from e

        steps = [lambda: self.do_set_sms_mode(SmsMode.PDU)]
        for message in messages:
            steps.extend(self._send_steps(message))

        with self.modem.state.flag(SENDING):
            try:
                run_steps(steps)
            except GsmError as e:
                logger.error(f"SMS to {number} failed: {e}")
                self.modem.events.emit(EVENT_PDU, False, messages)
                raise

        logger.info(f"SMS sent to {number} in {len(messages)} part(s)")
        self.modem.events.emit(EVENT_PDU, True, messages)
        return messages

    def _send_steps(self, message: SmsMessage) -> list:
        get = self.modem.get_cmd
        prompt = get(K.RESPONSE_SMS_PROMPT)
        cmd = self._cmd(K.CMD_SMS_SEND_PDU, SMS_LEN=message.tpdu_length)
        commit = self._cmd(
            K.CMD_SMS_SEND_COMMIT,
            MESSAGE=message.pdu,
            COMMIT=get(K.PARAM_SMS_COMMIT) or "\x1a",
        )
        timeout = self.modem.config.send_timeout

        def store_reference(tx) -> None:
            message.message_reference = tx.result.get("message_reference")

        if get(K.PARAM_SMS_WAIT_PROMPT) == "1":
            return [
                lambda: self.modem.do_query(cmd, expect=prompt),
                lambda: store_reference(self.modem.do_query(commit, timeout=timeout)),
            ]

        return [
            lambda: store_reference(self.modem.do_query(
                cmd + "\r" + commit, ignore=prompt, timeout=timeout
            )),
        ]

    def _cmd(self, key: str, **variables) -> str:
        cmd = self.modem.get_cmd(key, **variables)
        if not cmd:
            raise SMSError(f"Driver {self.modem.driver.name} has no {key} command")
        return cmd
