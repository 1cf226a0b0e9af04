"""
SMS PDU codec (3GPP TS 23.040 / 23.038).

Covers what a modem in PDU mode needs: SMS-SUBMIT encoding with optional
concatenation header, SMS-DELIVER and SMS-STATUS-REPORT decoding, the GSM
default alphabet with its escape table, UCS2, and USSD string packing.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from ..exceptions import PDUError
from ..types import SmsMessage, SmsStatusReport, Message


# Default alphabet, indexed by septet value
GSM7_BASIC = (
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞ\x1bÆæßÉ !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÑÜ§¿abcdefghijklmnopqrstuvwxyzäöñüà"
)

ESCAPE = 0x1B

# Characters reached through ESCAPE, and their second septet
GSM7_EXTENDED = {
    "\f": 0x0A, "^": 0x14, "{": 0x28, "}": 0x29, "\\": 0x2F,
    "[": 0x3C, "~": 0x3D, "]": 0x3E, "|": 0x40, "€": 0x65,
}
GSM7_EXTENDED_REV = {v: k for k, v in GSM7_EXTENDED.items()}

_GSM7_INDEX = {char: i for i, char in enumerate(GSM7_BASIC) if i != ESCAPE}

GSM7 = "gsm7"
UCS2 = "ucs2"
EIGHTBIT = "8bit"

# Characters (septets or UCS2 units) per message: alone, as part of a set
_LIMITS = {GSM7: (160, 153), UCS2: (70, 67)}

# TP-MTI, low two bits of the first octet
MTI_DELIVER = 0x00
MTI_SUBMIT = 0x01
MTI_STATUS_REPORT = 0x02

IEI_CONCAT_8BIT = 0x00
IEI_CONCAT_16BIT = 0x08

TOA_INTERNATIONAL = 0x91
TOA_UNKNOWN = 0x81


def _gsm7_septets(text: str) -> list[int]:
    septets = []
    for char in text:
        if char in GSM7_EXTENDED:
            septets += [ESCAPE, GSM7_EXTENDED[char]]
        elif char in _GSM7_INDEX:
            septets.append(_GSM7_INDEX[char])
        else:
            raise PDUError(f"Character '{char}' not in GSM 7-bit alphabet")
    return septets


def _septets_to_text(septets: list[int]) -> str:
    chars = []
    escaped = False
    for septet in septets:
        if escaped:
            chars.append(GSM7_EXTENDED_REV.get(septet, "?"))
            escaped = False
        elif septet == ESCAPE:
            escaped = True
        else:
            chars.append(GSM7_BASIC[septet] if septet < len(GSM7_BASIC) else "?")
    return "".join(chars)


def _pack_septets(septets: list[int], fill_bits: int = 0) -> bytes:
    """Pack septets LSB first, after ``fill_bits`` zero bits."""
    out = bytearray()
    acc, width = 0, fill_bits
    for septet in septets:
        acc |= septet << width
        width += 7
        while width >= 8:
            out.append(acc & 0xFF)
            acc >>= 8
            width -= 8
    if septets and width:
        out.append(acc & 0xFF)
    return bytes(out)


def _unpack_septets(octets: bytes, length: int, fill_bits: int = 0) -> list[int]:
    """Inverse of :func:`_pack_septets`, stopping after ``length`` septets."""
    value = int.from_bytes(octets, "little") >> fill_bits
    available = (len(octets) * 8 - fill_bits) // 7
    return [(value >> (7 * i)) & 0x7F for i in range(max(0, min(length, available)))]


def encode_gsm7(text: str, fill_bits: int = 0) -> bytes:
    """
    Pack text in the GSM default alphabet.

    Args:
        text: Text to encode
        fill_bits: Padding bits that align the text after a user data header

    Returns:
        Packed octets

    Raises:
        PDUError: If a character has no GSM 7-bit code
    """
    return _pack_septets(_gsm7_septets(text), fill_bits)


def decode_gsm7(data: bytes, length: int, fill_bits: int = 0) -> str:
    """
    Unpack GSM default alphabet text.

    Args:
        data: Packed octets
        length: Septet count, escape septets included
        fill_bits: Padding bits to skip first

    Returns:
        Decoded text
    """
    return _septets_to_text(_unpack_septets(data, length, fill_bits))


def gsm7_length(text: str) -> int:
    """Septets used by text; escaped characters take two."""
    return len(text) + sum(1 for char in text if char in GSM7_EXTENDED)


def encode_ucs2(text: str) -> bytes:
    return text.encode("utf-16-be")


def decode_ucs2(data: bytes) -> str:
    return data.decode("utf-16-be", errors="replace")


def detect_encoding(text: str) -> str:
    """``gsm7`` when every character has a GSM code, ``ucs2`` otherwise."""
    if all(char in _GSM7_INDEX or char in GSM7_EXTENDED for char in text):
        return GSM7
    return UCS2


def _swap_nibbles(digits: str) -> bytes:
    if len(digits) % 2:
        digits += "F"
    return bytes.fromhex("".join(digits[i + 1] + digits[i] for i in range(0, len(digits), 2)))


def encode_phone_number(number: str) -> Tuple[bytes, int]:
    """
    Encode an address as swapped semi-octets.

    Args:
        number: Phone number; a leading ``+`` marks it international

    Returns:
        Tuple of (address octets, type-of-address)
    """
    toa = TOA_INTERNATIONAL if number.startswith("+") else TOA_UNKNOWN
    return _swap_nibbles(re.sub(r"\D", "", number)), toa


def decode_phone_number(data: bytes, length: int, type_of_addr: int) -> str:
    """
    Decode an address field.

    Args:
        data: Address octets
        length: Digit count (semi-octets)
        type_of_addr: Type-of-address octet

    Returns:
        The number, ``+`` prefixed when international; alphanumeric senders
        come back as text
    """
    numbering = type_of_addr & 0x70
    if numbering == 0x50:
        return decode_gsm7(data, length * 4 // 7)

    swapped = "".join(f"{octet & 0x0F:X}{octet >> 4:X}" for octet in data)
    number = swapped.replace("F", "")[:length]
    return "+" + number if numbering == 0x10 else number


def _bcd(value: int) -> int:
    return (value % 10) << 4 | value // 10


def _from_bcd(octet: int) -> int:
    return (octet & 0x0F) * 10 + (octet >> 4)


def encode_timestamp(dt: Optional[datetime] = None) -> bytes:
    """
    Encode a service centre timestamp.

    Args:
        dt: Time to encode, now (UTC) by default; its offset becomes the zone

    Returns:
        Seven semi-octet encoded bytes
    """
    dt = dt or datetime.now(timezone.utc)
    quarters = int((dt.utcoffset() or timedelta(0)).total_seconds() // 900)
    zone = _bcd(abs(quarters)) | (0x08 if quarters < 0 else 0)
    fields = (dt.year % 100, dt.month, dt.day, dt.hour, dt.minute, dt.second)
    return bytes([_bcd(f) for f in fields] + [zone])


def decode_timestamp(data: bytes) -> datetime:
    """
    Decode a service centre timestamp.

    Raises:
        PDUError: If the field is short or holds an impossible date
    """
    if len(data) < 7:
        raise PDUError(f"Invalid timestamp length: {len(data)}")

    year, month, day, hour, minute, second = (_from_bcd(o) for o in data[:6])
    quarters = _from_bcd(data[6] & 0xF7)
    if data[6] & 0x08:
        quarters = -quarters
    try:
        return datetime(
            2000 + year, month, day, hour, minute, second,
            tzinfo=timezone(timedelta(minutes=15 * quarters))
        )
    except ValueError as e:
        raise PDUError(f"Invalid timestamp: {data.hex()}") from e


def concat_udh(reference: int, total: int, part: int) -> bytes:
    """Build a user data header with an 8-bit concatenation element."""
    return bytes([0x05, IEI_CONCAT_8BIT, 0x03, reference & 0xFF, total, part])


def tpdu_length(pdu_hex: str) -> int:
    """TPDU length in octets, excluding the leading SMSC information."""
    octets = len(pdu_hex) // 2
    smsc_len = int(pdu_hex[:2], 16) if pdu_hex else 0
    return octets - 1 - smsc_len


def split_message(text: str, encoding: Optional[str] = None) -> list[str]:
    """
    Split text into parts that each fit one PDU.

    GSM 7-bit escape pairs are never split.

    Args:
        text: Message text
        encoding: "gsm7", "ucs2" or None to detect

    Returns:
        List of text parts (one part when no concatenation is needed)
    """
    encoding = encoding or detect_encoding(text)
    if encoding not in _LIMITS:
        raise PDUError(f"Unsupported encoding: {encoding}")

    single, multi = _LIMITS[encoding]

    def size(char: str) -> int:
        if encoding == GSM7:
            return 2 if char in GSM7_EXTENDED else 1
        return len(char.encode("utf-16-be")) // 2

    if sum(size(c) for c in text) <= single:
        return [text]

    parts = []
    current = ""
    used = 0
    for char in text:
        n = size(char)
        if used + n > multi:
            parts.append(current)
            current, used = "", 0
        current += char
        used += n
    if current:
        parts.append(current)
    return parts


def calculate_sms_parts(text: str, encoding: str = "auto") -> int:
    """
    Calculate number of SMS parts needed for text.

    Args:
        text: Message text
        encoding: "gsm7", "ucs2", or "auto"

    Returns:
        Number of SMS parts required
    """
    return len(split_message(text, None if encoding == "auto" else encoding))


def _address_field(number: str) -> list[int]:
    digits, toa = encode_phone_number(number)
    return [len(re.sub(r"\D", "", number)), toa, *digits]


def _relative_validity(minutes: int) -> int:
    """TP-VP relative format for a validity period in minutes."""
    if minutes <= 720:
        vp = minutes // 5 - 1
    elif minutes <= 1440:
        vp = (minutes - 720) // 30 + 143
    elif minutes <= 43200:
        vp = minutes // 1440 + 166
    else:
        vp = minutes // 10080 + 192
    return max(0, min(255, vp))


def encode_sms_submit(
    number: str,
    text: str,
    encoding: str = "auto",
    validity_period: Optional[int] = None,
    flash: bool = False,
    request_status: bool = False,
    reply_path: bool = False,
    udh: Optional[bytes] = None
) -> str:
    """
    Build an SMS-SUBMIT PDU.

    The SMSC field and message reference are left empty so the modem fills
    in its defaults.

    Args:
        number: Destination address
        text: One part worth of text (see :func:`split_message`)
        encoding: "gsm7", "ucs2", or "auto"
        validity_period: Minutes the network keeps trying, omitted when None
        flash: Send as class 0
        request_status: Ask for a delivery report
        reply_path: Set TP-RP
        udh: User data header, e.g. from :func:`concat_udh`

    Returns:
        Upper case hex PDU

    Example:

    .. code-block:: python

        pdu = encode_sms_submit("+15550100", "Hi", request_status=True)
        length = tpdu_length(pdu)      # for AT+CMGS=<length>
    """
    first = MTI_SUBMIT
    for enabled, bit in ((validity_period is not None, 0x10), (request_status, 0x20),
                         (udh, 0x40), (reply_path, 0x80)):
        if enabled:
            first |= bit

    if encoding == "auto":
        encoding = detect_encoding(text)
    dcs, udl, user_data = _encode_user_data(text, encoding, udh)
    if flash:
        dcs |= 0x10

    octets = [0x00, first, 0x00, *_address_field(number), 0x00, dcs]
    if validity_period is not None:
        octets.append(_relative_validity(validity_period))
    octets += [udl, *user_data]
    return bytes(octets).hex().upper()


def encode_sms_deliver(
    sender: str,
    text: str,
    time: Optional[datetime] = None,
    smsc: Optional[str] = None,
    encoding: str = "auto",
    udh: Optional[bytes] = None
) -> str:
    """
    Build an SMS-DELIVER PDU the way a modem reports a received message.

    Used to simulate incoming traffic.

    Args:
        sender: Originating address
        text: One part worth of text
        time: Service centre timestamp, now by default
        smsc: Service centre address, empty field when None
        encoding: "gsm7", "ucs2", or "auto"
        udh: User data header

    Returns:
        Upper case hex PDU
    """
    octets = [0x00]
    if smsc:
        smsc_digits, smsc_toa = encode_phone_number(smsc)
        octets = [len(smsc_digits) + 1, smsc_toa, *smsc_digits]

    # TP-MMS set: no more messages waiting
    first = MTI_DELIVER | 0x04 | (0x40 if udh else 0)

    if encoding == "auto":
        encoding = detect_encoding(text)
    dcs, udl, user_data = _encode_user_data(text, encoding, udh)

    octets += [first, *_address_field(sender), 0x00, dcs, *encode_timestamp(time), udl, *user_data]
    return bytes(octets).hex().upper()


def _encode_user_data(text: str, encoding: str, udh: Optional[bytes]) -> Tuple[int, int, bytes]:
    """Return (dcs, user data length, user data) including the header."""
    header = udh or b""
    if encoding == GSM7:
        header_bits = len(header) * 8
        fill_bits = (7 - header_bits % 7) % 7 if header else 0
        header_septets = (header_bits + fill_bits) // 7
        septets = _gsm7_septets(text)
        body = _pack_septets(septets, fill_bits)
        return 0x00, header_septets + len(septets), header + body
    if encoding == UCS2:
        body = encode_ucs2(text)
        return 0x08, len(header) + len(body), header + body
    raise PDUError(f"Unsupported encoding: {encoding}")


def _alphabet(dcs: int) -> str:
    group = dcs & 0xF0
    if group == 0xF0:
        return EIGHTBIT if dcs & 0x04 else GSM7
    if (dcs & 0xC0) == 0x00 or (dcs & 0xC0) == 0x40:
        alphabet = (dcs >> 2) & 0x03
        if alphabet == 0x02:
            return UCS2
        if alphabet == 0x01:
            return EIGHTBIT
        return GSM7
    if group == 0xE0:
        return UCS2
    return GSM7


class _Reader:
    """Sequential octet reader with PDU-specific errors."""

    def __init__(self, pdu_hex: str) -> None:
        try:
            self.data = bytes.fromhex(pdu_hex.strip())
        except ValueError as e:
            raise PDUError(f"Invalid PDU hex: {pdu_hex}") from e
        self.pos = 0

    def octet(self) -> int:
        if self.pos >= len(self.data):
            raise PDUError("Truncated PDU")
        value = self.data[self.pos]
        self.pos += 1
        return value

    def take(self, count: int) -> bytes:
        if self.pos + count > len(self.data):
            raise PDUError("Truncated PDU")
        value = self.data[self.pos:self.pos + count]
        self.pos += count
        return value

    def rest(self) -> bytes:
        value = self.data[self.pos:]
        self.pos = len(self.data)
        return value

    def smsc(self) -> Tuple[Optional[str], int]:
        length = self.octet()
        if length == 0:
            return None, 0
        toa = self.octet()
        digits = self.take(length - 1)
        return decode_phone_number(digits, (length - 1) * 2, toa), length

    def address(self) -> str:
        length = self.octet()
        toa = self.octet()
        return decode_phone_number(self.take((length + 1) // 2), length, toa)


def _parse_udh(header: bytes) -> dict:
    """Extract concatenation info from a user data header."""
    result = {}
    i = 0
    while i + 1 < len(header):
        iei = header[i]
        length = header[i + 1]
        value = header[i + 2:i + 2 + length]
        if iei == IEI_CONCAT_8BIT and length == 3:
            result = {"reference": value[0], "total": value[1], "part": value[2]}
        elif iei == IEI_CONCAT_16BIT and length == 4:
            result = {"reference": (value[0] << 8) | value[1], "total": value[2], "part": value[3]}
        i += 2 + length
    return result


def decode_sms_deliver(pdu_hex: str) -> SmsMessage:
    """
    Decode SMS-DELIVER PDU.

    Args:
        pdu_hex: Hex-encoded PDU string, including the SMSC field

    Returns:
        SmsMessage with sender, timestamp, text and concatenation info

    Raises:
        PDUError: If the PDU is malformed or not an SMS-DELIVER
    """
    reader = _Reader(pdu_hex)
    smsc, smsc_len = reader.smsc()

    pdu_type = reader.octet()
    if (pdu_type & 0x03) != MTI_DELIVER:
        raise PDUError(f"Not an SMS-DELIVER PDU: {pdu_type:02X}")

    sender = reader.address()
    reader.octet()  # PID
    dcs = reader.octet()
    timestamp = decode_timestamp(reader.take(7))
    udl = reader.octet()
    user_data = reader.rest()

    encoding = _alphabet(dcs)
    header = b""
    if pdu_type & 0x40 and user_data:
        header = user_data[:user_data[0] + 1]
    concat = _parse_udh(header[1:]) if header else {}

    if encoding == GSM7:
        header_bits = len(header) * 8
        fill_bits = (7 - header_bits % 7) % 7 if header else 0
        header_septets = (header_bits + fill_bits) // 7
        text = decode_gsm7(user_data[len(header):], udl - header_septets, fill_bits)
    elif encoding == UCS2:
        text = decode_ucs2(user_data[len(header):udl])
    else:
        text = user_data[len(header):udl].decode("latin-1")

    return SmsMessage(
        address=sender,
        text=text,
        time=timestamp,
        smsc=smsc,
        encoding=encoding,
        reference=concat.get("reference"),
        total=concat.get("total"),
        part=concat.get("part"),
        tpdu_length=len(reader.data) - 1 - smsc_len,
        pdu=pdu_hex,
    )


def decode_status_report(pdu_hex: str) -> SmsStatusReport:
    """
    Decode SMS-STATUS-REPORT PDU.

    Args:
        pdu_hex: Hex-encoded PDU string, including the SMSC field

    Returns:
        SmsStatusReport

    Raises:
        PDUError: If the PDU is malformed or not a status report
    """
    reader = _Reader(pdu_hex)
    smsc, smsc_len = reader.smsc()

    pdu_type = reader.octet()
    if (pdu_type & 0x03) != MTI_STATUS_REPORT:
        raise PDUError(f"Not an SMS-STATUS-REPORT PDU: {pdu_type:02X}")

    message_reference = reader.octet()
    recipient = reader.address()
    timestamp = decode_timestamp(reader.take(7))
    discharge = decode_timestamp(reader.take(7))
    status = reader.octet()

    return SmsStatusReport(
        message_reference=message_reference,
        address=recipient,
        status=status,
        time=timestamp,
        discharge_time=discharge,
        smsc=smsc,
        tpdu_length=len(reader.data) - 1 - smsc_len,
        pdu=pdu_hex,
    )


def decode_pdu(pdu_hex: str) -> Message:
    """
    Decode a received PDU of any supported type.

    Raises:
        PDUError: If the PDU is malformed or of an unsupported type
    """
    reader = _Reader(pdu_hex)
    reader.smsc()
    mti = reader.octet() & 0x03
    if mti == MTI_DELIVER:
        return decode_sms_deliver(pdu_hex)
    if mti == MTI_STATUS_REPORT:
        return decode_status_report(pdu_hex)
    raise PDUError(f"Unsupported PDU type: {mti}")


def encode_ussd(encoding: int, text: str) -> str:
    """
    Encode a USSD string as hex.

    Args:
        encoding: Data coding scheme (15 = GSM 7-bit, 72 = UCS2)
        text: Service code or reply

    Returns:
        Hex string, or the text unchanged for other coding schemes
    """
    if encoding == 15:
        septets = _gsm7_septets(text)
        if len(septets) % 8 == 7:
            septets.append(0x0D)  # Avoid a trailing '@' from padding
        return _pack_septets(septets).hex().upper()
    if encoding == 72:
        return encode_ucs2(text).hex().upper()
    return text


def decode_ussd(encoding: int, value: str) -> str:
    """
    Decode a hex USSD string.

    Args:
        encoding: Data coding scheme (15 = GSM 7-bit, 72 = UCS2)
        value: Hex string

    Returns:
        Decoded text, or the value unchanged for other coding schemes
    """
    if encoding not in (15, 72):
        return value
    try:
        data = bytes.fromhex(value)
    except ValueError as e:
        raise PDUError(f"Invalid USSD hex: {value}") from e
    if encoding == 72:
        return decode_ucs2(data)
    text = decode_gsm7(data, (len(data) * 8) // 7)
    if len(data) % 7 == 0 and text.endswith("\r"):
        # Padding septet of an 8n-1 character string
        text = text[:-1]
    return text
