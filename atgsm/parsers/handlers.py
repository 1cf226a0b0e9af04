"""
Response decode functions.

Each handler receives a :class:`~atgsm.core.processor.Match` and the handler
context (the modem core) and returns a state update dict. ``SIGNATURES`` is
the static table the notification processor runs.

Context attributes used by handlers:
    get_cmd(key, **vars): Resolve a driver key
    props: Current device properties
    current: Info dict of the running queue entry, or None
"""

import logging
import re
from typing import Any, Optional

from .pdu import decode_pdu, decode_ussd
from .tokens import is_number
from ..core.processor import IncompleteMatch, Match, Signature
from ..driver import DriverKeys as K
from ..exceptions import PDUError
from ..types import (
    MessageEnvelope, Network, SignalQuality, StorageInfo, UssdResponse
)

logger = logging.getLogger(__name__)

_HEX_LINE = re.compile(r"^[0-9A-Fa-f]+$")


def _int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def read_pdu(
    match: Match,
    storage: Optional[str] = None,
    index: Optional[int] = None,
    status: Optional[str] = None
) -> Optional[MessageEnvelope]:
    """
    Decode the PDU following a message header line.

    Hex lines after the header are joined and consumed. The TPDU length
    announced in the header (last required token) must match the decoded
    PDU, otherwise the message is skipped.

    Raises:
        IncompleteMatch: If the header is the last line read so far
    """
    if match.end >= len(match.lines):
        raise IncompleteMatch(match.prefix)

    hex_lines = []
    for line in match.continuation():
        if not _HEX_LINE.match(line.strip()):
            break
        hex_lines.append(line.strip())
    if not hex_lines:
        logger.debug(f"No PDU after {match.prefix} {match.value}")
        return None
    match.consume(len(hex_lines))

    pdu = "".join(hex_lines)
    expected = _int(match.token(match.signature.min_tokens - 1))
    try:
        message = decode_pdu(pdu)
    except PDUError as e:
        logger.warning(f"Unable to decode PDU {pdu}: {e}")
        return None

    if expected is not None and message.tpdu_length != expected:
        logger.debug(f"PDU length mismatch, expected {expected} got {message.tpdu_length}: {pdu}")
        return None

    return MessageEnvelope(message, storage=storage, index=index, status=status)


def _messages(envelope: Optional[MessageEnvelope]) -> Optional[dict]:
    return {"messages": [envelope]} if envelope else None


def handle_cme_error(match: Match, context: Any) -> dict:
    return {"cme_error": match.value.strip()}


def handle_cms_error(match: Match, context: Any) -> dict:
    return {"cms_error": match.value.strip()}


def handle_smsc(match: Match, context: Any) -> dict:
    return {"smsc": match.tokens[0]}


def handle_cops(match: Match, context: Any) -> dict:
    """Current operator, or the operator list of a network scan."""
    if isinstance(match.tokens[0], list):
        networks = [
            Network.from_scan(entry) for entry in match.tokens
            if isinstance(entry, list) and len(entry) >= 4
        ]
        return {"networks": networks}
    return {"network": Network.from_tokens(match.tokens)}


def handle_cscs(match: Match, context: Any) -> dict:
    if isinstance(match.tokens[0], list):
        return {"charsets": list(match.tokens[0])}
    return {"charset": match.tokens[0]}


def handle_clck(match: Match, context: Any) -> dict:
    if is_number(match.tokens[0]):
        return {"keylock": int(match.tokens[0]) == 1}
    locks = match.tokens[0] if isinstance(match.tokens[0], list) else match.tokens
    return {"locks": list(locks)}


def handle_csq(match: Match, context: Any) -> Optional[dict]:
    tokens = list(match.tokens)
    # Some firmwares repeat the command name as the first field
    if tokens and not is_number(tokens[0]):
        tokens.pop(0)
    rssi = _int(tokens[0]) if tokens else None
    if rssi is None:
        return None
    ber = _int(tokens[1]) if len(tokens) > 1 else None
    return {"rssi": SignalQuality(rssi=rssi, ber=ber)}


def handle_rssi(match: Match, context: Any) -> Optional[dict]:
    rssi = _int(match.tokens[0])
    if rssi is None:
        return None
    return {"rssi": SignalQuality(rssi=rssi)}


def handle_ring(match: Match, context: Any) -> dict:
    return {"ringing": True}


def handle_clip(match: Match, context: Any) -> dict:
    return {"caller": match.tokens[0]}


def handle_call_end(match: Match, context: Any) -> dict:
    return {"ringing": False}


def handle_new_message_direct(match: Match, context: Any) -> Optional[dict]:
    """``+CMT: [<alpha>],<length>`` followed by the PDU."""
    return _messages(read_pdu(match))


def handle_delivery_report_direct(match: Match, context: Any) -> Optional[dict]:
    """``+CDS: <length>`` followed by the PDU."""
    return _messages(read_pdu(match))


def _read_queue(match: Match) -> Optional[dict]:
    index = _int(match.tokens[1])
    if index is None:
        return None
    return {"queues": [{"op": "read", "storage": match.tokens[0], "index": index}]}


def handle_new_message(match: Match, context: Any) -> Optional[dict]:
    """``+CMTI: <mem>,<index>`` schedules a read."""
    return _read_queue(match)


def handle_delivery_report(match: Match, context: Any) -> Optional[dict]:
    """``+CDSI: <mem>,<index>`` schedules a read."""
    return _read_queue(match)


def handle_cpms(match: Match, context: Any) -> Optional[dict]:
    """
    Storage usage.

    ``+CPMS: "SM",6,40,"SR",0,40,...`` (query) yields one entry per storage,
    the first being the current one. ``+CPMS: 6,40,...`` (set) only reports
    the usage of the storage just selected.
    """
    tokens = match.tokens
    if is_number(tokens[0]):
        return {"storage_used": _int(tokens[0]), "storage_total": _int(tokens[1])}

    storages: dict[str, StorageInfo] = {}
    first = None
    pos = 0
    while len(tokens) - pos >= 3 and not is_number(tokens[pos]):
        name = tokens[pos]
        used = _int(tokens[pos + 1], 0)
        total = _int(tokens[pos + 2], 0)
        if name not in storages:
            storages[name] = StorageInfo(name, used, total)
        if first is None:
            first = storages[name]
        pos += 3

    if first is None:
        return None
    return {
        "storage": first.storage,
        "storage_used": first.used,
        "storage_total": first.total,
        "storages": storages,
    }


def handle_cmgf(match: Match, context: Any) -> Optional[dict]:
    mode = _int(match.tokens[0])
    return {"sms_mode": mode} if mode is not None else None


def handle_cmgl(match: Match, context: Any) -> Optional[dict]:
    """``+CMGL: <index>,<stat>,[<alpha>],<length>`` followed by the PDU."""
    envelope = read_pdu(
        match,
        storage=context.props.get("storage"),
        index=_int(match.tokens[0]),
        status=match.tokens[1],
    )
    return _messages(envelope)


def handle_cmgr(match: Match, context: Any) -> Optional[dict]:
    """``+CMGR: <stat>,[<alpha>],<length>`` followed by the PDU."""
    current = context.current or {}
    storage = current.get("storage") or context.props.get("storage")
    index = current.get("index")
    if index is None:
        index = context.props.get("storage_index")
    envelope = read_pdu(match, storage=storage, index=_int(index), status=match.tokens[0])
    return _messages(envelope)


def handle_cmgs(match: Match, context: Any) -> Optional[dict]:
    reference = _int(match.tokens[0])
    return {"message_reference": reference} if reference is not None else None


def handle_cusd(match: Match, context: Any) -> Optional[dict]:
    """
    USSD response ``+CUSD: <code>[,<message>,<dcs>]``.

    Hex encoded messages are decoded when the driver says responses are
    encoded, or when the coding scheme differs from the one used to send.
    """
    tokens = match.tokens
    if len(tokens) >= 3:
        code = _int(tokens[0], 0)
        message = tokens[1]
        dcs = _int(tokens[2])
        encoding = _int(context.get_cmd(K.PARAM_USSD_ENCODING))
        encoded = context.get_cmd(K.PARAM_USSD_ENCODED) == "1"
        response_encoded = context.get_cmd(K.PARAM_USSD_RESPONSE_ENCODED) == "1"
        if dcs is not None and (encoding != dcs or encoded or response_encoded):
            try:
                message = decode_ussd(dcs, message)
            except PDUError as e:
                logger.debug(f"USSD message left undecoded: {e}")
        return {"ussd": UssdResponse(code, message, dcs)}
    if is_number(tokens[0]):
        return {"ussd": UssdResponse(int(tokens[0]))}
    return None


def handle_unsolicited_ind(match: Match, context: Any) -> dict:
    return {"indicator": list(match.tokens)}


def handle_mem_full(match: Match, context: Any) -> dict:
    return {"memfull": match.tokens[0]}


SIGNATURES: tuple[Signature, ...] = (
    Signature(K.RESPONSE_CME_ERROR, 1, handle_cme_error),
    Signature(K.RESPONSE_CMS_ERROR, 1, handle_cms_error),
    Signature(K.RESPONSE_SMSC, 2, handle_smsc),
    Signature(K.RESPONSE_COPS, 1, handle_cops),
    Signature(K.RESPONSE_CSCS, 1, handle_cscs),
    Signature(K.RESPONSE_CLCK, 1, handle_clck),
    Signature(K.RESPONSE_CSQ, 2, handle_csq),
    Signature(K.RESPONSE_RSSI, 1, handle_rssi),
    Signature(K.RESPONSE_RING, 0, handle_ring),
    Signature(K.RESPONSE_CLIP, 1, handle_clip),
    Signature(K.RESPONSE_CALL_END, 1, handle_call_end),
    Signature(K.RESPONSE_NEW_MESSAGE_DIRECT, 2, handle_new_message_direct),
    Signature(K.RESPONSE_NEW_MESSAGE, 2, handle_new_message),
    Signature(K.RESPONSE_DELIVERY_REPORT_DIRECT, 1, handle_delivery_report_direct),
    Signature(K.RESPONSE_DELIVERY_REPORT, 2, handle_delivery_report),
    Signature(K.RESPONSE_CPMS, 3, handle_cpms),
    Signature(K.RESPONSE_CMGF, 1, handle_cmgf),
    Signature(K.RESPONSE_CMGL, 4, handle_cmgl),
    Signature(K.RESPONSE_CMGR, 3, handle_cmgr),
    Signature(K.RESPONSE_CMGS, 1, handle_cmgs),
    Signature(K.RESPONSE_CUSD, 1, handle_cusd, separator="\n"),
    Signature(K.RESPONSE_UNSOLICITED_IND, 1, handle_unsolicited_ind),
    Signature(K.RESPONSE_MEM_FULL, 1, handle_mem_full),
)
