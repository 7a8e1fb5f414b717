"""Numbered-field binary layout for stored records.

Layout::

    record := type_id:u8 field_count:u8 (field_no:u8 value)*
    value  := tag:u8 payload

Field numbers come from each record's ``FIELD_NUMBERS``. Unknown numbers are
skipped when reading and missing numbers fall back to the dataclass default,
so attributes can be added without rewriting stored data.
"""

from __future__ import annotations

import struct
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any

from .records import ALL_RECORD_TYPES, EPOCH, EPOCH_DAY

_NULL = 0
_FALSE = 1
_TRUE = 2
_INT = 3
_FLOAT = 4
_STR = 5
_DATETIME = 6
_DATE = 7
_LIST = 8
_RECORD = 9

_U8 = struct.Struct(">B")
_U32 = struct.Struct(">I")
_I32 = struct.Struct(">i")
_I64 = struct.Struct(">q")
_F64 = struct.Struct(">d")

_TYPES_BY_ID = {cls.TYPE_ID: cls for cls in ALL_RECORD_TYPES}


class CodecError(ValueError):
    """Raised when bytes cannot be decoded into a record."""


def encode(record: Any) -> bytes:
    """Serialise a record dataclass to bytes."""
    out = bytearray()
    try:
        _write_record(out, record)
    except (struct.error, OverflowError) as exc:
        raise CodecError(f"Cannot encode {type(record).__name__}: {exc}") from exc
    return bytes(out)


def decode(data: bytes) -> Any:
    """Deserialise bytes produced by :func:`encode`."""
    reader = _Reader(data)
    try:
        record = reader.read_record()
    except CodecError:
        raise
    except (struct.error, UnicodeDecodeError, OverflowError, ValueError) as exc:
        raise CodecError(f"Malformed record payload: {exc}") from exc
    if reader.remaining:
        raise CodecError(f"{reader.remaining} trailing bytes after record")
    return record


def decode_as(data: bytes, cls: type) -> Any:
    """Decode and check the result is an instance of ``cls``."""
    record = decode(data)
    if not isinstance(record, cls):
        raise CodecError(f"Expected {cls.__name__}, got {type(record).__name__}")
    return record


# ------------------------------------------------------------------ #
# Writing                                                              #
# ------------------------------------------------------------------ #

def _write_record(out: bytearray, record: Any) -> None:
    numbers = getattr(type(record), "FIELD_NUMBERS", None)
    if numbers is None or type(record) not in _TYPES_BY_ID.values():
        raise TypeError(f"Cannot encode {type(record).__name__}")
    out += _U8.pack(record.TYPE_ID)
    out += _U8.pack(len(numbers))
    for number, name in numbers.items():
        out += _U8.pack(number)
        _write_value(out, getattr(record, name))


def _write_value(out: bytearray, value: Any) -> None:
    if value is None:
        out += _U8.pack(_NULL)
    elif isinstance(value, bool):
        out += _U8.pack(_TRUE if value else _FALSE)
    elif isinstance(value, Enum):
        _write_str(out, str(value.value))
    elif isinstance(value, int):
        out += _U8.pack(_INT) + _I64.pack(value)
    elif isinstance(value, float):
        out += _U8.pack(_FLOAT) + _F64.pack(value)
    elif isinstance(value, str):
        _write_str(out, value)
    # datetime is a date subclass, test it first
    elif isinstance(value, datetime):
        aware = value if value.tzinfo else value.replace(tzinfo=UTC)
        delta = aware - EPOCH
        micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
        out += _U8.pack(_DATETIME) + _I64.pack(micros)
    elif isinstance(value, date):
        out += _U8.pack(_DATE) + _I32.pack((value - EPOCH_DAY).days)
    elif isinstance(value, (list, tuple)):
        out += _U8.pack(_LIST) + _U32.pack(len(value))
        for item in value:
            _write_value(out, item)
    elif hasattr(type(value), "FIELD_NUMBERS"):
        out += _U8.pack(_RECORD)
        _write_record(out, value)
    else:
        raise TypeError(f"Unsupported value type: {type(value).__name__}")


def _write_str(out: bytearray, value: str) -> None:
    raw = value.encode("utf-8")
    out += _U8.pack(_STR) + _U32.pack(len(raw)) + raw


# ------------------------------------------------------------------ #
# Reading                                                              #
# ------------------------------------------------------------------ #

class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, size: int) -> memoryview:
        if self.remaining < size:
            raise CodecError("Unexpected end of payload")
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def _unpack(self, fmt: struct.Struct) -> Any:
        return fmt.unpack(self._take(fmt.size))[0]

    def read_record(self) -> Any:
        type_id = self._unpack(_U8)
        cls = _TYPES_BY_ID.get(type_id)
        if cls is None:
            raise CodecError(f"Unknown record type id {type_id}")
        count = self._unpack(_U8)
        kwargs: dict[str, Any] = {}
        for _ in range(count):
            number = self._unpack(_U8)
            value = self.read_value()
            name = cls.FIELD_NUMBERS.get(number)
            if name is not None:
                kwargs[name] = value
        return cls(**kwargs)

    def read_value(self) -> Any:
        tag = self._unpack(_U8)
        if tag == _NULL:
            return None
        if tag == _FALSE:
            return False
        if tag == _TRUE:
            return True
        if tag == _INT:
            return self._unpack(_I64)
        if tag == _FLOAT:
            return self._unpack(_F64)
        if tag == _STR:
            size = self._unpack(_U32)
            return bytes(self._take(size)).decode("utf-8")
        if tag == _DATETIME:
            return EPOCH + timedelta(microseconds=self._unpack(_I64))
        if tag == _DATE:
            return EPOCH_DAY + timedelta(days=self._unpack(_I32))
        if tag == _LIST:
            size = self._unpack(_U32)
            return [self.read_value() for _ in range(size)]
        if tag == _RECORD:
            return self.read_record()
        raise CodecError(f"Unknown value tag {tag}")
