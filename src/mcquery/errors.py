"""Exceptions raised by the status, query, and RCON clients.

Protocol errors never derive from OSError, so callers can tell a server that
sent garbage apart from a network that failed. Timeouts surface as the builtin
TimeoutError.
"""

from __future__ import annotations


class McQueryError(Exception):
    """Base exception for all mcquery errors."""


class ConnectionError(McQueryError):  # noqa: A001
    """Raised when the connection to the server is lost or cannot be established."""


# --- Server List Ping ---


class MinecraftProtocolError(McQueryError):
    """Base exception for the status (Server List Ping) protocol."""


class InvalidVarIntError(MinecraftProtocolError):
    """VarInt data was longer than 5 bytes or ended early."""


class InvalidStateError(MinecraftProtocolError):
    """An unknown protocol state constant was encountered."""


class InvalidStatusResponseError(MinecraftProtocolError):
    """The status response had the wrong packet id or an undecodable payload."""


# --- RCON ---


class RconProtocolError(McQueryError):
    """Base exception for the RCON protocol."""


class NonAsciiPayloadError(RconProtocolError):
    """A payload contained non-ASCII bytes.

    The section sign (0xA7) is accepted, since some servers prefix their
    replies with formatting codes.
    """


class AuthenticationError(RconProtocolError):
    """The server rejected the RCON password."""


class InvalidRconPacketTypeError(RconProtocolError):
    """An RCON packet carried an unknown or unexpected type."""


class InvalidRconResponseError(RconProtocolError):
    """An RCON packet had bad padding or a length that did not add up."""


class PayloadTooLongError(RconProtocolError):
    """A payload exceeded the protocol limit (1446 serverbound, 4096 clientbound)."""


class RequestIdMismatchError(RconProtocolError):
    """The server replied with a request id other than the one sent.

    A request id of -1 means the password was wrong and raises
    AuthenticationError instead.
    """


# --- Query ---


class QueryProtocolError(McQueryError):
    """Base exception for the UDP query protocol."""


class InvalidQueryPacketTypeError(QueryProtocolError):
    """A datagram carried a type other than handshake (9) or stat (0)."""


class UnexpectedPacketTypeError(QueryProtocolError):
    """A datagram carried a valid type, but not the one that was expected."""


class SessionIdMismatchError(QueryProtocolError):
    """The session id echoed by the server did not match the one sent."""


class CannotParseIntError(QueryProtocolError):
    """A field that should hold a decimal integer did not."""


class InvalidChallengeTokenError(CannotParseIntError):
    """The handshake reply did not hold a usable challenge token."""


class InvalidUtf8Error(QueryProtocolError):
    """A null-terminated string was not valid UTF-8."""


class InvalidKeyValueSectionError(QueryProtocolError):
    """The full stat key/value section was missing a required key."""


class TruncatedPacketError(QueryProtocolError):
    """A datagram ended before all of its fields were read."""
