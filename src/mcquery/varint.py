"""VarInt and string encoding for the Minecraft networking protocol.

A VarInt stores a 32-bit signed integer in 1 to 5 bytes. Each byte carries
7 bits of data, least significant group first, and the high bit signals that
another byte follows. Negative numbers always take all 5 bytes.

Strings are UTF-8, prefixed with their byte length as a VarInt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mcquery.errors import InvalidStatusResponseError, InvalidVarIntError

if TYPE_CHECKING:
    import asyncio

SEGMENT_BITS = 0x7F
CONTINUE_BIT = 0x80
MAX_VARINT_BYTES = 5

_UINT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def encode_varint(value: int) -> bytes:
    """Encode a 32-bit integer as a VarInt.

    The value is treated as an unsigned bit pattern, so -1 encodes as
    ``ff ff ff ff 0f``.
    """
    value &= _UINT32_MASK
    buffer = bytearray()
    while True:
        segment = value & SEGMENT_BITS
        value >>= 7
        if value:
            buffer.append(segment | CONTINUE_BIT)
        else:
            buffer.append(segment)
            return bytes(buffer)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a VarInt from ``data`` starting at ``offset``.

    Returns:
        A ``(value, offset)`` tuple, where offset points just past the VarInt.

    Raises:
        InvalidVarIntError: If the VarInt runs past 5 bytes or past the end
            of ``data``.
    """
    value = 0
    position = 0
    while True:
        if offset >= len(data):
            msg = "VarInt ended before its final byte"
            raise InvalidVarIntError(msg)
        current = data[offset]
        offset += 1
        value |= (current & SEGMENT_BITS) << position

        if not current & CONTINUE_BIT:
            return _to_int32(value), offset

        position += 7
        if position >= 32:
            msg = f"VarInt is longer than {MAX_VARINT_BYTES} bytes"
            raise InvalidVarIntError(msg)


async def read_varint(reader: asyncio.StreamReader) -> int:
    """Read a single VarInt from a stream, one byte at a time."""
    buffer = bytearray()
    while True:
        current = (await reader.readexactly(1))[0]
        buffer.append(current)
        if not current & CONTINUE_BIT:
            break
        if len(buffer) >= MAX_VARINT_BYTES:
            msg = f"VarInt is longer than {MAX_VARINT_BYTES} bytes"
            raise InvalidVarIntError(msg)

    value, _ = decode_varint(bytes(buffer))
    return value


def encode_string(text: str) -> bytes:
    """Encode a string as a VarInt byte length followed by UTF-8 bytes."""
    raw = text.encode("utf-8")
    return encode_varint(len(raw)) + raw


def decode_string(data: bytes, offset: int = 0) -> tuple[str, int]:
    """Decode a length-prefixed UTF-8 string from ``data``.

    Raises:
        InvalidStatusResponseError: If the string is truncated or not UTF-8.
    """
    length, offset = decode_varint(data, offset)
    end = offset + length
    if length < 0 or end > len(data):
        msg = f"String length {length} does not fit in the remaining packet data"
        raise InvalidStatusResponseError(msg)
    return _decode_utf8(data[offset:end]), end


async def read_string(reader: asyncio.StreamReader) -> str:
    """Read a length-prefixed UTF-8 string from a stream."""
    length = await read_varint(reader)
    if length < 0:
        msg = f"Negative string length {length}"
        raise InvalidStatusResponseError(msg)
    return _decode_utf8(await reader.readexactly(length))


def _decode_utf8(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        msg = f"String is not valid UTF-8: {e}"
        raise InvalidStatusResponseError(msg) from e


def _to_int32(value: int) -> int:
    value &= _UINT32_MASK
    if value & _INT32_SIGN:
        return value - (1 << 32)
    return value
