"""Tests for VarInt and string encoding."""

import asyncio

import pytest

from mcquery.errors import InvalidStatusResponseError, InvalidVarIntError
from mcquery.varint import (
    decode_string,
    decode_varint,
    encode_string,
    encode_varint,
    read_string,
    read_varint,
)

# Values and encodings from the protocol documentation
VECTORS = [
    (0, b"\x00"),
    (1, b"\x01"),
    (2, b"\x02"),
    (127, b"\x7f"),
    (128, b"\x80\x01"),
    (255, b"\xff\x01"),
    (25565, b"\xdd\xc7\x01"),
    (2097151, b"\xff\xff\x7f"),
    (2147483647, b"\xff\xff\xff\xff\x07"),
    (-1, b"\xff\xff\xff\xff\x0f"),
    (-2147483648, b"\x80\x80\x80\x80\x08"),
]


def _read_from(data: bytes, reader_fn):
    async def _read():
        reader = asyncio.StreamReader()
        reader.feed_data(data)
        reader.feed_eof()
        return await reader_fn(reader)

    return asyncio.run(_read())


class TestEncodeVarint:
    @pytest.mark.parametrize(("value", "encoded"), VECTORS)
    def test_known_vectors(self, value, encoded):
        assert encode_varint(value) == encoded

    def test_negative_always_five_bytes(self):
        for value in (-1, -2, -300, -(2**31)):
            assert len(encode_varint(value)) == 5


class TestDecodeVarint:
    @pytest.mark.parametrize(("value", "encoded"), VECTORS)
    def test_known_vectors(self, value, encoded):
        assert decode_varint(encoded) == (value, len(encoded))

    def test_decode_at_offset(self):
        data = b"\xaa\xdd\xc7\x01\xbb"
        assert decode_varint(data, 1) == (25565, 4)

    def test_round_trip_sample(self):
        for value in (-(2**31), -12345, -1, 0, 1, 300, 65535, 2**31 - 1):
            decoded, _ = decode_varint(encode_varint(value))
            assert decoded == value

    def test_trailing_bytes_ignored(self):
        assert decode_varint(b"\x01\xff\xff") == (1, 1)

    def test_too_many_continuation_bytes(self):
        with pytest.raises(InvalidVarIntError):
            decode_varint(b"\xff\xff\xff\xff\xff\x01")

    def test_empty_input(self):
        with pytest.raises(InvalidVarIntError):
            decode_varint(b"")

    def test_truncated_input(self):
        with pytest.raises(InvalidVarIntError):
            decode_varint(b"\x80\x80")


class TestReadVarint:
    def test_read_from_stream(self):
        assert _read_from(b"\xdd\xc7\x01rest", read_varint) == 25565

    def test_read_negative(self):
        assert _read_from(b"\xff\xff\xff\xff\x0f", read_varint) == -1

    def test_read_too_long(self):
        with pytest.raises(InvalidVarIntError):
            _read_from(b"\xff\xff\xff\xff\xff\x01", read_varint)

    def test_read_stops_at_eof(self):
        with pytest.raises(asyncio.IncompleteReadError):
            _read_from(b"\x80", read_varint)


class TestStrings:
    def test_encode_string(self):
        assert encode_string("localhost") == b"\x09localhost"

    def test_encode_counts_utf8_bytes(self):
        assert encode_string("§a") == b"\x03\xc2\xa7a"

    def test_decode_string(self):
        assert decode_string(b"\x05hello!") == ("hello", 6)

    def test_decode_string_at_offset(self):
        data = b"\x00" + encode_string("world")
        assert decode_string(data, 1) == ("world", 7)

    def test_decode_string_truncated(self):
        with pytest.raises(InvalidStatusResponseError):
            decode_string(b"\x0ahi")

    def test_decode_string_invalid_utf8(self):
        with pytest.raises(InvalidStatusResponseError):
            decode_string(b"\x02\xc3\x28")

    def test_read_string(self):
        assert _read_from(encode_string("Hello, world"), read_string) == (
            "Hello, world"
        )
