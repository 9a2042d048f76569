"""Minecraft RCON wire protocol encoding and decoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from mcquery.errors import (
    InvalidRconPacketTypeError,
    InvalidRconResponseError,
    NonAsciiPayloadError,
    PayloadTooLongError,
)


class PacketType(IntEnum):
    """RCON packet types.

    The server answers a LOGIN packet with a COMMAND packet, and a COMMAND
    packet with one or more RESPONSE packets.
    """

    RESPONSE = 0
    COMMAND = 2
    LOGIN = 3

    @classmethod
    def from_wire(cls, value: int) -> PacketType:
        """Map a wire integer to a packet type, rejecting unknown values."""
        try:
            return cls(value)
        except ValueError:
            msg = f"Unknown RCON packet type {value}"
            raise InvalidRconPacketTypeError(msg) from None


# 4 bytes each for length, request_id, and type
HEADER_SIZE = 12
# Remaining length of a packet with an empty payload: request_id + type + 2 nulls
MIN_REMAINING_LENGTH = 10
MAX_PAYLOAD_SERVERBOUND = 1446
MAX_PAYLOAD_CLIENTBOUND = 4096

# Servers such as CraftBukkit prefix replies with formatting codes
SECTION_SIGN = 0xA7


@dataclass(frozen=True)
class Packet:
    """A single RCON packet.

    Wire format: [length:i32][request_id:i32][type:i32][payload\\0\\0]
    Length covers everything after itself (req_id + type + payload + 2 nulls).

    The payload is ASCII text that may also hold the section sign (byte 0xA7,
    ``"§"``). Any other character raises NonAsciiPayloadError.
    """

    request_id: int
    packet_type: PacketType
    payload: str

    def __post_init__(self) -> None:
        if not all(c.isascii() or c == "\u00a7" for c in self.payload):
            msg = f"Payload contains non-ASCII characters: {self.payload!r}"
            raise NonAsciiPayloadError(msg)

    @property
    def remaining_length(self) -> int:
        """Value of the length field: bytes following it on the wire."""
        return remaining_length(self.payload)

    def encode(self) -> bytes:
        """Encode the packet into bytes for transmission."""
        payload_bytes = self.payload.encode("latin-1") + b"\x00\x00"
        return struct.pack(
            f"<iii{len(payload_bytes)}s",
            self.remaining_length,
            self.request_id,
            self.packet_type,
            payload_bytes,
        )

    @classmethod
    def decode(cls, data: bytes) -> Packet:
        """Decode a packet from raw bytes, including the 4-byte length prefix.

        Checks run in a fixed order: padding, declared length, payload size,
        payload characters, and finally the packet type.

        Raises:
            InvalidRconResponseError: If the padding or length is wrong, or
                the data is truncated.
            PayloadTooLongError: If the payload exceeds 4096 bytes.
            NonAsciiPayloadError: If the payload holds non-ASCII bytes other
                than 0xA7.
            InvalidRconPacketTypeError: If the type is unknown.
        """
        if len(data) < HEADER_SIZE + 2:
            msg = f"RCON packet too short: {len(data)} bytes"
            raise InvalidRconResponseError(msg)

        length, request_id, packet_type = struct.unpack_from("<iii", data, 0)

        # The payload is null-terminated and followed by one more null byte
        end = data.find(b"\x00", HEADER_SIZE)
        if end == -1 or end + 1 >= len(data):
            msg = "RCON payload is not null-terminated"
            raise InvalidRconResponseError(msg)
        if data[end + 1] != 0:
            msg = f"RCON padding byte is {data[end + 1]:#04x}, expected 0x00"
            raise InvalidRconResponseError(msg)

        raw_payload = data[HEADER_SIZE:end]
        if len(raw_payload) + MIN_REMAINING_LENGTH != length:
            msg = (
                f"RCON length field says {length} bytes but the packet holds "
                f"{len(raw_payload) + MIN_REMAINING_LENGTH}"
            )
            raise InvalidRconResponseError(msg)

        if len(raw_payload) > MAX_PAYLOAD_CLIENTBOUND:
            msg = (
                f"RCON payload of {len(raw_payload)} bytes exceeds "
                f"{MAX_PAYLOAD_CLIENTBOUND}"
            )
            raise PayloadTooLongError(msg)

        if not _is_valid_payload(raw_payload):
            msg = f"RCON payload contains non-ASCII bytes: {raw_payload!r}"
            raise NonAsciiPayloadError(msg)

        return cls(
            request_id=request_id,
            packet_type=PacketType.from_wire(packet_type),
            payload=raw_payload.decode("latin-1"),
        )


def remaining_length(payload: str) -> int:
    """Return the length field value for a packet carrying ``payload``."""
    return len(payload) + MIN_REMAINING_LENGTH


def _is_valid_payload(raw: bytes) -> bool:
    if raw.isascii():
        return True
    return all(b < 0x80 or b == SECTION_SIGN for b in raw)
