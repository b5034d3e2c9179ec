"""Decoding of base64 text into typed little-endian values."""

from __future__ import annotations

import struct

from modularml.tensor import DType

_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_LOOKUP = {ch: pos for pos, ch in enumerate(_ALPHABET)}

_FORMATS = {
    DType.FLOAT32: "f",
    DType.FLOAT64: "d",
    DType.INT8: "b",
    DType.UINT8: "B",
    DType.INT16: "h",
    DType.INT32: "i",
    DType.INT64: "q",
    DType.UINT32: "I",
    DType.UINT64: "Q",
}


def _decode_bytes(text: str) -> bytes:
    out = bytearray()
    value = 0
    pending = 0
    for ch in text:
        if ch == "=":
            break
        pos = _LOOKUP.get(ch)
        if pos is None:
            raise ValueError("Invalid base64 character")
        value = (value << 6) | pos
        pending += 6
        if pending >= 8:
            pending -= 8
            out.append((value >> pending) & 0xFF)
            value &= (1 << pending) - 1
    return bytes(out)


def decode(text: str, dtype: DType) -> list:
    """Decode base64 ``text`` into a list of little-endian ``dtype`` values.

    Decoding stops at the first '='. Raises ValueError on characters outside
    the base64 alphabet or when the byte count is not a multiple of the
    element size.
    """
    raw = _decode_bytes(text)
    code = _FORMATS[dtype]
    item_size = struct.calcsize("<" + code)
    if len(raw) % item_size:
        raise ValueError(
            f"Decoded data size ({len(raw)} bytes) is not aligned with "
            f"sizeof({dtype.value}) = {item_size}"
        )
    return [value for (value,) in struct.iter_unpack("<" + code, raw)]