"""Server List Ping client.

The exchange is a single pass over one TCP connection:

1. send a Handshake packet asking to switch to the status state,
2. send an empty Status Request,
3. read one Status Response holding a JSON document.

Packets are framed as ``VarInt(length) ++ VarInt(packet_id) ++ payload``,
where length covers the packet id and the payload.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import struct
from enum import IntEnum

from mcquery.errors import (
    ConnectionError,  # noqa: A004
    InvalidStateError,
    InvalidStatusResponseError,
)
from mcquery.models import StatusResponse, parse_status_response
from mcquery.varint import (
    decode_string,
    decode_varint,
    encode_string,
    encode_varint,
    read_varint,
)

log = logging.getLogger(__name__)

DEFAULT_PORT = 25565

# Handshake and Status Request/Response all use packet id 0
HANDSHAKE_PACKET_ID = 0
STATUS_PACKET_ID = 0

# The server ignores the protocol version when only asking for status
UNSPECIFIED_PROTOCOL_VERSION = -1

# Largest packet length expressible as a 3-byte VarInt
MAX_PACKET_LENGTH = 2097151


class State(IntEnum):
    """Connection states a handshake can ask the server to switch to."""

    HANDSHAKING = 0
    STATUS = 1
    LOGIN = 2

    @classmethod
    def from_wire(cls, value: int) -> State:
        """Map a wire integer to a state, rejecting unknown values."""
        try:
            return cls(value)
        except ValueError:
            msg = f"Unknown protocol state {value}"
            raise InvalidStateError(msg) from None


def encode_packet(packet_id: int, payload: bytes = b"") -> bytes:
    """Frame a packet id and payload for transmission."""
    body = encode_varint(packet_id) + payload
    return encode_varint(len(body)) + body


async def read_packet(reader: asyncio.StreamReader) -> tuple[int, bytes]:
    """Read one framed packet from the stream.

    Returns:
        A ``(packet_id, payload)`` tuple.
    """
    length = await read_varint(reader)
    if not 0 < length <= MAX_PACKET_LENGTH:
        msg = f"Invalid packet length {length}"
        raise InvalidStatusResponseError(msg)

    body = await reader.readexactly(length)
    packet_id, offset = decode_varint(body)
    return packet_id, body[offset:]


def handshake_packet(host: str, port: int, next_state: int = State.STATUS) -> bytes:
    """Build the Handshake packet that opens a status exchange."""
    state = State.from_wire(next_state)
    payload = (
        encode_varint(UNSPECIFIED_PROTOCOL_VERSION)
        + encode_string(host)
        + struct.pack(">H", port)
        + encode_varint(state)
    )
    return encode_packet(HANDSHAKE_PACKET_ID, payload)


def status_request_packet() -> bytes:
    """Build the empty Status Request packet."""
    return encode_packet(STATUS_PACKET_ID)


async def status(
    host: str, port: int = DEFAULT_PORT, timeout: float | None = None
) -> StatusResponse:
    """Ping a server and return its decoded status.

    Args:
        host: Hostname or IP address of the server.
        port: The server's game port.
        timeout: Optional deadline in seconds for the whole exchange,
            including connecting. On expiry TimeoutError is raised and the
            connection is dropped.

    Raises:
        ConnectionError: If the connection fails or the server hangs up.
        InvalidVarIntError: If the response framing is malformed.
        InvalidStatusResponseError: If the response has the wrong packet id
            or its JSON cannot be decoded.
        TimeoutError: If ``timeout`` expires.
    """
    return await asyncio.wait_for(_exchange(host, port), timeout=timeout)


async def _exchange(host: str, port: int) -> StatusResponse:
    try:
        reader, writer = await asyncio.open_connection(host, port)
    except OSError as e:
        msg = f"Failed to connect to {host}:{port}: {e}"
        raise ConnectionError(msg) from e

    log.debug("Connected to %s:%d, requesting status", host, port)
    try:
        writer.write(handshake_packet(host, port))
        writer.write(status_request_packet())
        await writer.drain()

        packet_id, payload = await read_packet(reader)
        if packet_id != STATUS_PACKET_ID:
            msg = f"Expected status response packet id 0, got {packet_id}"
            raise InvalidStatusResponseError(msg)

        data, _ = decode_string(payload)
    except asyncio.IncompleteReadError as e:
        msg = "Connection closed by server"
        raise ConnectionError(msg) from e
    except OSError as e:
        msg = f"Connection lost: {e}"
        raise ConnectionError(msg) from e
    finally:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    log.debug("Received %d characters of status JSON", len(data))
    return parse_status_response(data)
