"""High-level RCON client with connection management."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import struct
from typing import TYPE_CHECKING, TypeVar

from mcquery.errors import (
    AuthenticationError,
    ConnectionError,  # noqa: A004
    InvalidRconPacketTypeError,
    InvalidRconResponseError,
    PayloadTooLongError,
    RconProtocolError,
    RequestIdMismatchError,
)
from mcquery.protocol import (
    MAX_PAYLOAD_CLIENTBOUND,
    MAX_PAYLOAD_SERVERBOUND,
    MIN_REMAINING_LENGTH,
    Packet,
    PacketType,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable
    from types import TracebackType

log = logging.getLogger(__name__)

_T = TypeVar("_T")

DEFAULT_PORT = 25575

# Every request carries the same id; the server echoes it back, or -1 when
# the client is not authenticated.
_REQUEST_ID = 1
_SENTINEL_ID = 2
_AUTH_FAILED_ID = -1


class RconClient:
    """Manages a TCP connection to a Minecraft RCON server.

    Use :meth:`connect` to open a connection, then :meth:`authenticate`
    before running commands::

        async with await RconClient.connect("localhost", 25575) as client:
            await client.authenticate("password")
            print(await client.run_command("list"))

    ``timeout`` bounds each logical operation (connecting, authenticating, one
    command) as a whole. When it expires, TimeoutError is raised and the
    connection is closed, since the stream may hold half a reply.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        timeout: float | None = None,
        *,
        use_sentinel: bool = False,
    ) -> None:
        self.timeout = timeout
        self.use_sentinel = use_sentinel
        self._reader: asyncio.StreamReader | None = reader
        self._writer: asyncio.StreamWriter | None = writer

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int = DEFAULT_PORT,
        timeout: float | None = None,
        *,
        use_sentinel: bool = False,
    ) -> RconClient:
        """Open a TCP connection to the RCON server.

        Args:
            host: Hostname or IP address of the server.
            port: The server's ``rcon.port``.
            timeout: Optional per-operation deadline in seconds.
            use_sentinel: Detect the end of multi-packet replies by sending a
                trailing marker packet instead of relying on packet size.
        """
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout
            )
        except OSError as e:
            msg = f"Failed to connect to {host}:{port}: {e}"
            raise ConnectionError(msg) from e

        log.debug("Connected to RCON at %s:%d", host, port)
        return cls(reader, writer, timeout, use_sentinel=use_sentinel)

    @property
    def connected(self) -> bool:
        """Whether the client has an open connection."""
        return self._writer is not None

    async def disconnect(self) -> None:
        """Close the TCP connection. Safe to call more than once."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is not None:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    async def __aenter__(self) -> RconClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    async def authenticate(self, password: str) -> None:
        """Authenticate with the RCON server.

        Raises:
            AuthenticationError: If the server rejects the password.
            NonAsciiPayloadError: If the password is not ASCII.
            InvalidRconPacketTypeError: If the reply is not a COMMAND packet.
            RequestIdMismatchError: If the reply has an unexpected request id.
        """
        packet = Packet(
            request_id=_REQUEST_ID,
            packet_type=PacketType.LOGIN,
            payload=password,
        )
        _check_serverbound(packet)
        await self._run(self._authenticate(packet))

    async def run_command(self, command: str) -> str:
        """Send a command and return the full response text.

        Replies longer than 4096 bytes arrive split over several packets. By
        default a packet shorter than 4096 bytes is taken as the last one,
        which works for vanilla servers but is not guaranteed by the protocol.
        With ``use_sentinel`` a marker packet is sent after the command and
        fragments are collected until the server answers it.

        Raises:
            AuthenticationError: If the client is not authenticated.
            PayloadTooLongError: If the command exceeds 1446 bytes.
            RequestIdMismatchError: If a reply has an unexpected request id.

        Any error raised after the command was sent closes the connection.
        """
        packet = Packet(
            request_id=_REQUEST_ID,
            packet_type=PacketType.COMMAND,
            payload=command,
        )
        _check_serverbound(packet)
        return await self._run(self._command(packet))

    async def _authenticate(self, packet: Packet) -> None:
        await self._send(packet)
        response = await self._recv()

        if response.packet_type != PacketType.COMMAND:
            msg = (
                "Expected a COMMAND reply to login, "
                f"got {response.packet_type.name}"
            )
            raise InvalidRconPacketTypeError(msg)
        self._check_request_id(response, _REQUEST_ID)
        log.debug("RCON authentication succeeded")

    async def _command(self, packet: Packet) -> str:
        await self._send(packet)
        if self.use_sentinel:
            # The server handles packets in order, so the reply to this marker
            # arrives after every fragment of the real reply.
            await self._send(
                Packet(
                    request_id=_SENTINEL_ID,
                    packet_type=PacketType.RESPONSE,
                    payload="",
                )
            )

        fragments: list[str] = []
        while True:
            response = await self._recv()
            if self.use_sentinel and response.request_id == _SENTINEL_ID:
                break
            self._check_request_id(response, _REQUEST_ID)
            fragments.append(response.payload)

            if self.use_sentinel:
                continue
            if len(response.payload) < MAX_PAYLOAD_CLIENTBOUND:
                break

        log.debug("Command reply reassembled from %d packet(s)", len(fragments))
        return "".join(fragments)

    @staticmethod
    def _check_request_id(response: Packet, expected: int) -> None:
        if response.request_id == _AUTH_FAILED_ID:
            msg = "Authentication failed: incorrect RCON password"
            raise AuthenticationError(msg)
        if response.request_id != expected:
            msg = f"Expected request id {expected}, got {response.request_id}"
            raise RequestIdMismatchError(msg)

    async def _run(self, operation: Awaitable[_T]) -> _T:
        """Await one logical operation under the client timeout.

        A timeout or protocol error leaves the rest of the reply unread on
        the stream, so the connection is closed before the error propagates.
        """
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout)
        except TimeoutError:
            log.debug("RCON operation timed out, dropping the connection")
            await self.disconnect()
            raise
        except RconProtocolError:
            log.debug("Unusable RCON reply, dropping the connection")
            await self.disconnect()
            raise

    async def _send(self, packet: Packet) -> None:
        """Send an encoded packet over the connection."""
        writer = self._require_writer()
        try:
            writer.write(packet.encode())
            await writer.drain()
        except OSError as e:
            await self.disconnect()
            msg = f"Failed to send data: {e}"
            raise ConnectionError(msg) from e

    async def _recv(self) -> Packet:
        """Receive a single packet from the connection."""
        length_data = await self._recv_exact(4)
        (length,) = struct.unpack("<i", length_data)
        if length < MIN_REMAINING_LENGTH:
            msg = f"RCON length field {length} is shorter than the packet header"
            raise InvalidRconResponseError(msg)
        if length > MAX_PAYLOAD_CLIENTBOUND + MIN_REMAINING_LENGTH:
            msg = f"RCON length field {length} exceeds the clientbound limit"
            raise PayloadTooLongError(msg)

        body = await self._recv_exact(length)
        return Packet.decode(length_data + body)

    async def _recv_exact(self, num_bytes: int) -> bytes:
        """Read exactly num_bytes from the connection."""
        if self._reader is None:
            msg = "Not connected"
            raise ConnectionError(msg)

        try:
            return await self._reader.readexactly(num_bytes)
        except asyncio.IncompleteReadError as e:
            await self.disconnect()
            msg = "Connection closed by server"
            raise ConnectionError(msg) from e
        except OSError as e:
            await self.disconnect()
            msg = f"Connection lost: {e}"
            raise ConnectionError(msg) from e

    def _require_writer(self) -> asyncio.StreamWriter:
        if self._writer is None:
            msg = "Not connected"
            raise ConnectionError(msg)
        return self._writer


def _check_serverbound(packet: Packet) -> None:
    if len(packet.payload) > MAX_PAYLOAD_SERVERBOUND:
        msg = (
            f"Payload of {len(packet.payload)} bytes exceeds "
            f"{MAX_PAYLOAD_SERVERBOUND}"
        )
        raise PayloadTooLongError(msg)
