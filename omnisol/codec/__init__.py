"""Binary account codec."""
from .accounts import (
    ACCOUNT_KINDS,
    AccountKind,
    decode_account,
    encode_account,
    identify_account,
    unpack_account,
)
from .layout import Record, decode_fields, encode_fields

__all__ = [
    "ACCOUNT_KINDS",
    "AccountKind",
    "Record",
    "decode_account",
    "decode_fields",
    "encode_account",
    "encode_fields",
    "identify_account",
    "unpack_account",
]
