"""Tests for the RCON wire protocol."""

import struct

import pytest

from mcquery.errors import (
    InvalidRconPacketTypeError,
    InvalidRconResponseError,
    NonAsciiPayloadError,
    PayloadTooLongError,
)
from mcquery.protocol import Packet, PacketType, remaining_length


def _raw(length: int, request_id: int, packet_type: int, tail: bytes) -> bytes:
    """Build raw packet bytes with an arbitrary length field and tail."""
    return struct.pack("<iii", length, request_id, packet_type) + tail


class TestPacketEncode:
    def test_login_packet(self):
        packet = Packet(request_id=1, packet_type=PacketType.LOGIN, payload="password")
        data = packet.encode()

        length = struct.unpack_from("<i", data, 0)[0]
        request_id = struct.unpack_from("<i", data, 4)[0]
        packet_type = struct.unpack_from("<i", data, 8)[0]

        assert request_id == 1
        assert packet_type == PacketType.LOGIN
        # Length = 4 (req_id) + 4 (type) + len("password") + 2 (nulls)
        assert length == 4 + 4 + 8 + 2

    def test_exact_bytes(self):
        packet = Packet(request_id=1, packet_type=PacketType.COMMAND, payload="list")
        assert packet.encode() == (
            b"\x0e\x00\x00\x00\x01\x00\x00\x00\x02\x00\x00\x00list\x00\x00"
        )

    def test_length_field_matches_payload(self):
        for payload in ("", "a", "time set day", "x" * 1446):
            packet = Packet(request_id=3, packet_type=PacketType.COMMAND, payload=payload)
            data = packet.encode()
            assert struct.unpack_from("<i", data, 0)[0] == 10 + len(payload)
            assert len(data) == 14 + len(payload)
            assert packet.remaining_length == remaining_length(payload)

    def test_trailing_null_bytes(self):
        packet = Packet(request_id=1, packet_type=PacketType.COMMAND, payload="test")
        assert packet.encode()[-2:] == b"\x00\x00"

    def test_section_sign_is_single_byte(self):
        packet = Packet(request_id=1, packet_type=PacketType.COMMAND, payload="say §aHi")
        data = packet.encode()
        assert data[12:-2] == b"say \xa7aHi"

    def test_non_ascii_rejected(self):
        with pytest.raises(NonAsciiPayloadError):
            Packet(request_id=1, packet_type=PacketType.COMMAND, payload="say é")

    def test_wide_character_rejected(self):
        with pytest.raises(NonAsciiPayloadError):
            Packet(request_id=1, packet_type=PacketType.COMMAND, payload="say ✔")


class TestPacketDecode:
    def test_decode_response(self):
        payload = b"There are 3 of a max of 20 players online"
        data = _raw(10 + len(payload), 1, PacketType.RESPONSE, payload + b"\x00\x00")

        packet = Packet.decode(data)
        assert packet.request_id == 1
        assert packet.packet_type == PacketType.RESPONSE
        assert packet.payload == payload.decode()

    def test_decode_empty_payload(self):
        packet = Packet.decode(_raw(10, 5, PacketType.RESPONSE, b"\x00\x00"))

        assert packet.request_id == 5
        assert packet.payload == ""

    def test_decode_auth_failure(self):
        # Server sends request_id == -1 on auth failure
        packet = Packet.decode(_raw(10, -1, PacketType.COMMAND, b"\x00\x00"))
        assert packet.request_id == -1

    def test_decode_section_sign(self):
        data = _raw(17, 1, PacketType.RESPONSE, b"\xa7aHello\x00\x00")
        assert Packet.decode(data).payload == "§aHello"

    def test_non_ascii_byte(self):
        data = _raw(13, 1, PacketType.RESPONSE, b"caf\xe9\x00\x00")
        with pytest.raises(NonAsciiPayloadError):
            Packet.decode(data)

    def test_too_short(self):
        with pytest.raises(InvalidRconResponseError):
            Packet.decode(struct.pack("<ii", 10, 1))

    def test_missing_terminator(self):
        with pytest.raises(InvalidRconResponseError):
            Packet.decode(_raw(12, 1, PacketType.RESPONSE, b"abcd"))

    def test_bad_padding(self):
        with pytest.raises(InvalidRconResponseError, match="padding"):
            Packet.decode(_raw(13, 1, PacketType.RESPONSE, b"abc\x00\x01"))

    def test_length_mismatch(self):
        with pytest.raises(InvalidRconResponseError, match="length"):
            Packet.decode(_raw(99, 1, PacketType.RESPONSE, b"abc\x00\x00"))

    def test_unknown_type(self):
        with pytest.raises(InvalidRconPacketTypeError):
            Packet.decode(_raw(10, 1, 7, b"\x00\x00"))

    def test_padding_checked_before_type(self):
        with pytest.raises(InvalidRconResponseError):
            Packet.decode(_raw(13, 1, 7, b"abc\x00\x01"))

    def test_payload_too_long(self):
        payload = b"a" * 4097
        data = _raw(10 + len(payload), 1, PacketType.RESPONSE, payload + b"\x00\x00")
        with pytest.raises(PayloadTooLongError):
            Packet.decode(data)

    def test_max_payload_accepted(self):
        payload = b"a" * 4096
        data = _raw(10 + len(payload), 1, PacketType.RESPONSE, payload + b"\x00\x00")
        assert len(Packet.decode(data).payload) == 4096


class TestPacketRoundTrip:
    def test_roundtrip(self):
        original = Packet(
            request_id=7,
            packet_type=PacketType.COMMAND,
            payload="gamemode creative Steve",
        )
        assert Packet.decode(original.encode()) == original

    def test_roundtrip_section_sign(self):
        original = Packet(
            request_id=1,
            packet_type=PacketType.RESPONSE,
            payload="§6Gold §rtext",
        )
        assert Packet.decode(original.encode()) == original
