"""Borsh schemas and the thin wrapper that maps codec failures to our errors.

Schemas are ``borsh_construct.CStruct`` values. Two adapters fill the gaps:
``PUBKEY`` turns 32 raw bytes into a ``solders`` Pubkey, and :class:`Record`
materialises a struct as one of the frozen dataclasses in ``models``.
``BOOL`` only accepts 0 or 1 on decode.
"""
from __future__ import annotations

import io
from dataclasses import fields as dataclass_fields
from typing import Any, Mapping

from borsh_construct import I64, U8, U16, U32, U64, U128, CStruct, Option, Vec
from construct import Adapter, Bytes, Construct, ConstructError, SizeofError, StreamError
from solders.pubkey import Pubkey

from ..errors import DecodeError, InvalidFieldValue, TruncatedBuffer

__all__ = [
    "BOOL",
    "I64",
    "PUBKEY",
    "U8",
    "U16",
    "U32",
    "U64",
    "U128",
    "CStruct",
    "Option",
    "Record",
    "Vec",
    "decode_fields",
    "encode_fields",
    "field_names",
    "fixed_size",
    "record_values",
]


class _Pubkey(Adapter):
    def __init__(self) -> None:
        super().__init__(Bytes(32))

    def _decode(self, obj: bytes, context: Any, path: str) -> Pubkey:
        return Pubkey.from_bytes(obj)

    def _encode(self, obj: Any, context: Any, path: str) -> bytes:
        return bytes(obj)


class _Bool(Adapter):
    def __init__(self) -> None:
        super().__init__(U8)

    def _decode(self, obj: int, context: Any, path: str) -> bool:
        if obj > 1:
            raise InvalidFieldValue(f"invalid bool byte {obj} {path}")
        return obj == 1

    def _encode(self, obj: Any, context: Any, path: str) -> int:
        return 1 if obj else 0


PUBKEY = _Pubkey()
BOOL = _Bool()


def _plain(value: Any) -> Any:
    """Containers to dicts, lists to tuples, private ``_io`` keys dropped."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items() if not k.startswith("_")}
    if isinstance(value, list):
        return tuple(_plain(v) for v in value)
    return value


class Record(Adapter):
    """A CStruct decoded to ``record_type(**fields)`` and built from one."""

    def __init__(self, record_type: type, struct: CStruct) -> None:
        super().__init__(struct)
        self.record_type = record_type

    def _decode(self, obj: Any, context: Any, path: str) -> Any:
        return self.record_type(**_plain(obj))

    def _encode(self, obj: Any, context: Any, path: str) -> dict[str, Any]:
        return record_values(obj)


def record_values(record: Any) -> dict[str, Any]:
    """Shallow field mapping of a dataclass record (nested records kept as-is)."""
    if isinstance(record, Mapping):
        return dict(record)
    return {f.name: getattr(record, f.name) for f in dataclass_fields(record)}


# ---------------------------------------------------------------------------
# Wrapper
# ---------------------------------------------------------------------------


def _struct_of(layout: Construct) -> CStruct:
    return layout.subcon if isinstance(layout, Record) else layout


def field_names(layout: Construct) -> tuple[str, ...]:
    return tuple(sc.name for sc in _struct_of(layout).subcons)


def fixed_size(layout: Construct) -> int | None:
    """Encoded size, or ``None`` when a Vec or Option makes it value-dependent."""
    try:
        return layout.sizeof()
    except (SizeofError, KeyError):
        return None


def encode_fields(layout: Construct, values: Any, context: str = "layout") -> bytes:
    """Build ``values`` (a mapping or a record) with ``layout``.

    Missing fields and out-of-range values raise ``ValueError``.
    """
    mapping = record_values(values)
    for name in field_names(layout):
        if name not in mapping:
            raise ValueError(f"{context}: missing field '{name}'")
    try:
        return layout.build(values if isinstance(layout, Record) else mapping)
    except ConstructError as e:
        raise ValueError(f"{context}: {e}") from e


def decode_fields(
    layout: Construct, data: bytes, offset: int = 0, context: str = "layout"
) -> tuple[Any, int]:
    """Parse from ``offset``; returns the value and the offset just past it.

    Bytes after the end of the layout are left for the caller.
    """
    stream = io.BytesIO(data)
    stream.seek(offset)
    try:
        value = layout.parse_stream(stream)
    except StreamError as e:
        raise TruncatedBuffer(context, None, len(data) - offset) from e
    except ConstructError as e:
        raise DecodeError(f"{context}: {e}") from e
    return _plain(value), stream.tell()
