"""Query protocol client (basic and full stat over UDP).

The server must have ``enable-query=true`` in its properties. Its
``query.port`` may differ from the game port.

Every stat call first performs a handshake to obtain a challenge token. The
server rotates tokens every 30 seconds, so a token can expire between the
handshake and the stat request; the server then ignores the request. When
the stat reply does not arrive in time, the whole handshake and request are
repeated once on a fresh socket before giving up.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING

from mcquery.errors import ConnectionError  # noqa: A004
from mcquery.query_protocol import (
    PacketReader,
    QueryPacketType,
    handshake_request,
    mask_session_id,
    parse_basic_stat,
    parse_challenge_token,
    parse_full_stat,
    stat_request,
    validate_header,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from mcquery.models import BasicStatResponse, FullStatResponse

log = logging.getLogger(__name__)

DEFAULT_PORT = 25565
HANDSHAKE_TIMEOUT = 5.0
STAT_TIMEOUT = 0.25


class DatagramChannel(asyncio.DatagramProtocol):
    """A connected UDP endpoint that queues incoming datagrams."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | Exception] = asyncio.Queue()
        self._transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    def send(self, data: bytes) -> None:
        if self._transport is None:
            msg = "Not connected"
            raise ConnectionError(msg)
        self._transport.sendto(data)

    async def recv(self) -> bytes:
        item = await self._queue.get()
        if isinstance(item, Exception):
            msg = f"Query socket error: {item}"
            raise ConnectionError(msg) from item
        return item

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None


async def open_channel(host: str, port: int) -> DatagramChannel:
    """Bind a fresh UDP socket connected to ``host:port``."""
    loop = asyncio.get_running_loop()
    try:
        _, channel = await loop.create_datagram_endpoint(
            DatagramChannel, remote_addr=(host, port)
        )
    except OSError as e:
        msg = f"Failed to open UDP socket to {host}:{port}: {e}"
        raise ConnectionError(msg) from e
    return channel


def _random_session_id() -> int:
    return random.getrandbits(32)  # noqa: S311


class QueryClient:
    """Runs handshake and stat exchanges against a query port.

    Args:
        session_id_provider: Returns a random 32-bit integer for each
            handshake. The client masks it to the protocol's session id
            format, so the provider need not.
        handshake_timeout: Seconds to wait for a handshake reply.
        stat_timeout: Seconds to wait for a stat reply before assuming the
            challenge token expired.
    """

    def __init__(
        self,
        *,
        session_id_provider: Callable[[], int] | None = None,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        stat_timeout: float = STAT_TIMEOUT,
    ) -> None:
        self.session_id_provider = session_id_provider or _random_session_id
        self.handshake_timeout = handshake_timeout
        self.stat_timeout = stat_timeout

    async def handshake(self, channel: DatagramChannel) -> tuple[int, int]:
        """Obtain a challenge token.

        Returns:
            A ``(token, session_id)`` tuple for the following stat request.
        """
        session_id = mask_session_id(self.session_id_provider())
        channel.send(handshake_request(session_id))

        data = await asyncio.wait_for(channel.recv(), timeout=self.handshake_timeout)
        reader = PacketReader(data)
        validate_header(reader, QueryPacketType.HANDSHAKE, session_id)
        token = parse_challenge_token(reader)
        log.debug("Query handshake: session %#010x, token %d", session_id, token)
        return token, session_id

    async def stat_basic(
        self, host: str, port: int = DEFAULT_PORT
    ) -> BasicStatResponse:
        """Perform a basic stat query."""
        reader = await self._stat(host, port, full=False)
        return parse_basic_stat(reader)

    async def stat_full(
        self, host: str, port: int = DEFAULT_PORT
    ) -> FullStatResponse:
        """Perform a full stat query, which includes the player list."""
        reader = await self._stat(host, port, full=True)
        return parse_full_stat(reader)

    async def _stat(self, host: str, port: int, *, full: bool) -> PacketReader:
        retried = False
        while True:
            channel = await open_channel(host, port)
            try:
                token, session_id = await self.handshake(channel)
                channel.send(stat_request(session_id, token, full=full))
                try:
                    data = await asyncio.wait_for(
                        channel.recv(), timeout=self.stat_timeout
                    )
                except TimeoutError:
                    if retried:
                        raise
                    retried = True
                    log.debug(
                        "No stat reply from %s:%d, the challenge token may have "
                        "expired; retrying on a new socket",
                        host,
                        port,
                    )
                    continue
            finally:
                channel.close()

            reader = PacketReader(data)
            validate_header(reader, QueryPacketType.STAT, session_id)
            return reader


async def stat_basic(host: str, port: int = DEFAULT_PORT) -> BasicStatResponse:
    """Perform a basic stat query with the default client.

    Returns the MOTD, game type, map, player counts, and host address.
    """
    return await QueryClient().stat_basic(host, port)


async def stat_full(host: str, port: int = DEFAULT_PORT) -> FullStatResponse:
    """Perform a full stat query with the default client.

    Adds the game id, version, plugins, and online player names to what a
    basic stat returns.
    """
    return await QueryClient().stat_full(host, port)
