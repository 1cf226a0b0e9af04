"""
Parsers for AT command responses and SMS PDUs.

Provides parameter tokenizing and the GSM 03.40 PDU codec. Response decode
functions live in :mod:`atgsm.parsers.handlers`.
"""

from .tokens import Token, split_tokens, is_number
from .pdu import (
    encode_sms_submit,
    encode_sms_deliver,
    decode_sms_deliver,
    decode_status_report,
    decode_pdu,
    split_message,
    calculate_sms_parts,
    encode_ussd,
    decode_ussd,
)

__all__ = [
    "Token",
    "split_tokens",
    "is_number",
    "encode_sms_submit",
    "encode_sms_deliver",
    "decode_sms_deliver",
    "decode_status_report",
    "decode_pdu",
    "split_message",
    "calculate_sms_parts",
    "encode_ussd",
    "decode_ussd",
]
