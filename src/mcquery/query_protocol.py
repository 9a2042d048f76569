"""Minecraft Query (UDP) wire protocol encoding and decoding.

Requests start with the magic bytes ``FE FD``, a one-byte packet type and a
big-endian session id. Responses start with the packet type and the echoed
session id, followed by a payload of null-terminated strings.
"""

from __future__ import annotations

import re
import struct
from enum import IntEnum

from mcquery.errors import (
    CannotParseIntError,
    InvalidChallengeTokenError,
    InvalidKeyValueSectionError,
    InvalidQueryPacketTypeError,
    InvalidUtf8Error,
    SessionIdMismatchError,
    TruncatedPacketError,
    UnexpectedPacketTypeError,
)
from mcquery.models import BasicStatResponse, FullStatResponse

MAGIC = b"\xfe\xfd"

# Servers expect every byte of the session id to have a zero high nibble
SESSION_ID_MASK = 0x0F0F0F0F

# "splitnum\x00\x80\x00" before the K/V section, "\x01player_\x00\x00" after it
FULL_STAT_KV_PADDING = 11
FULL_STAT_PLAYERS_PADDING = 10

FULL_STAT_REQUIRED_KEYS = (
    "hostname",
    "gametype",
    "game_id",
    "version",
    "plugins",
    "map",
    "numplayers",
    "maxplayers",
    "hostport",
    "hostip",
)

_UNSIGNED_INT = re.compile(r"[0-9]+")
_SIGNED_INT = re.compile(r"-?[0-9]+")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_UINT16_MAX = 0xFFFF


class QueryPacketType(IntEnum):
    """Query packet types."""

    STAT = 0
    HANDSHAKE = 9

    @classmethod
    def from_wire(cls, value: int) -> QueryPacketType:
        """Map a wire integer to a packet type, rejecting unknown values."""
        try:
            return cls(value)
        except ValueError:
            msg = f"Unknown query packet type {value}"
            raise InvalidQueryPacketTypeError(msg) from None


def mask_session_id(raw: int) -> int:
    """Clear the high nibble of every byte of a 32-bit session id."""
    return raw & SESSION_ID_MASK


def handshake_request(session_id: int) -> bytes:
    """Build a handshake request; it has no payload."""
    return MAGIC + struct.pack(">Bi", QueryPacketType.HANDSHAKE, session_id)


def stat_request(session_id: int, token: int, *, full: bool = False) -> bytes:
    """Build a stat request. A full stat request carries 4 extra zero bytes."""
    data = MAGIC + struct.pack(">Bii", QueryPacketType.STAT, session_id, token)
    if full:
        data += b"\x00\x00\x00\x00"
    return data


class PacketReader:
    """Sequential reader over one response datagram."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            msg = (
                f"Datagram of {len(self.data)} bytes ended while reading "
                f"{size} bytes at offset {self.offset}"
            )
            raise TruncatedPacketError(msg)
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_i32(self) -> int:
        (value,) = struct.unpack(">i", self._take(4))
        return value

    def read_u16_le(self) -> int:
        # The one little-endian field in the protocol
        (value,) = struct.unpack("<H", self._take(2))
        return value

    def skip(self, size: int) -> None:
        self._take(size)

    def read_string(self) -> str:
        """Read a null-terminated UTF-8 string."""
        end = self.data.find(b"\x00", self.offset)
        if end == -1:
            msg = f"String at offset {self.offset} is not null-terminated"
            raise TruncatedPacketError(msg)
        raw = self.data[self.offset : end]
        self.offset = end + 1
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            msg = f"String at offset {self.offset} is not valid UTF-8: {e}"
            raise InvalidUtf8Error(msg) from e


def validate_header(
    reader: PacketReader, expected: QueryPacketType, session_id: int
) -> None:
    """Check the packet type and echoed session id of a response."""
    packet_type = QueryPacketType.from_wire(reader.read_u8())
    if packet_type != expected:
        msg = f"Expected a {expected.name} packet, got {packet_type.name}"
        raise UnexpectedPacketTypeError(msg)

    echoed = reader.read_i32()
    if echoed != session_id:
        msg = f"Sent session id {session_id:#010x}, server echoed {echoed:#010x}"
        raise SessionIdMismatchError(msg)


def parse_challenge_token(reader: PacketReader) -> int:
    """Parse the challenge token carried by a handshake response."""
    text = reader.read_string()
    if not _SIGNED_INT.fullmatch(text):
        msg = f"Challenge token {text!r} is not an integer"
        raise InvalidChallengeTokenError(msg)
    token = int(text)
    if not _INT32_MIN <= token <= _INT32_MAX:
        msg = f"Challenge token {token} does not fit in 32 bits"
        raise InvalidChallengeTokenError(msg)
    return token


def parse_basic_stat(reader: PacketReader) -> BasicStatResponse:
    """Parse the payload of a basic stat response."""
    motd = reader.read_string()
    game_type = reader.read_string()
    game_map = reader.read_string()
    num_players = parse_count(reader.read_string(), "numplayers")
    max_players = parse_count(reader.read_string(), "maxplayers")
    host_port = reader.read_u16_le()
    host_ip = reader.read_string()
    return BasicStatResponse(
        motd=motd,
        game_type=game_type,
        map=game_map,
        num_players=num_players,
        max_players=max_players,
        host_port=host_port,
        host_ip=host_ip,
    )


def parse_full_stat(reader: PacketReader) -> FullStatResponse:
    """Parse the payload of a full stat response."""
    reader.skip(FULL_STAT_KV_PADDING)

    kv: dict[str, str] = {}
    while key := reader.read_string():
        kv[key] = reader.read_string()

    missing = [key for key in FULL_STAT_REQUIRED_KEYS if key not in kv]
    if missing:
        msg = f"Key/value section is missing {', '.join(missing)}"
        raise InvalidKeyValueSectionError(msg)

    host_port = parse_count(kv["hostport"], "hostport")
    if host_port > _UINT16_MAX:
        msg = f"hostport {host_port} is not a valid port"
        raise CannotParseIntError(msg)

    reader.skip(FULL_STAT_PLAYERS_PADDING)

    # Some servers end the datagram without the final empty string
    players: list[str] = []
    while reader.remaining and (name := reader.read_string()):
        players.append(name)

    return FullStatResponse(
        motd=kv.pop("hostname"),
        game_type=kv.pop("gametype"),
        game_id=kv.pop("game_id"),
        version=kv.pop("version"),
        plugins=kv.pop("plugins"),
        map=kv.pop("map"),
        num_players=parse_count(kv.pop("numplayers"), "numplayers"),
        max_players=parse_count(kv.pop("maxplayers"), "maxplayers"),
        host_port=host_port,
        host_ip=kv.pop("hostip"),
        players=tuple(players),
        extra={k: v for k, v in kv.items() if k != "hostport"},
    )


def parse_count(text: str, field: str) -> int:
    """Parse an unsigned decimal field."""
    if not _UNSIGNED_INT.fullmatch(text):
        msg = f"{field} value {text!r} is not an unsigned integer"
        raise CannotParseIntError(msg)
    return int(text)
