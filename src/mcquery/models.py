"""Typed results returned by the status and query clients.

The status response arrives as JSON. ``parse_status_response`` turns it into
frozen dataclasses, checking only the structure: field presence and JSON
types. Game-specific meaning (is the version real, is the player count
plausible) is left to the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from mcquery.errors import InvalidStatusResponseError

log = logging.getLogger(__name__)

# A chat object is a component, a list of chat objects, or a bare JSON
# primitive (servers commonly send the MOTD as a plain string). Objects that
# are not valid components stay as the decoded JSON dict.
ChatObject = Union[
    "ChatComponent", list["ChatObject"], dict[str, Any], str, int, float, bool, None
]


@dataclass(frozen=True)
class ClickEvent:
    """Action triggered when a chat component is clicked."""

    action: str | None
    value: str | None


@dataclass(frozen=True)
class HoverEvent:
    """Action triggered when a chat component is hovered over.

    ``contents`` holds a parsed chat object for ``show_text`` and the raw JSON
    value for ``show_item`` and ``show_entity``. Servers older than 1.16 send
    ``value`` instead of ``contents``; both end up here.
    """

    action: str | None
    contents: Any


@dataclass(frozen=True)
class ChatComponent:
    """One piece of a chat object, with optional styling and children."""

    text: str | None = None
    translate: str | None = None
    translate_with: tuple[ChatObject, ...] = ()
    keybind: str | None = None
    bold: bool | None = None
    italic: bool | None = None
    underlined: bool | None = None
    strikethrough: bool | None = None
    obfuscated: bool | None = None
    font: str | None = None
    color: str | None = None
    insertion: str | None = None
    click_event: ClickEvent | None = None
    hover_event: HoverEvent | None = None
    extra: tuple[ChatObject, ...] = ()


@dataclass(frozen=True)
class Version:
    """Game version and protocol number advertised by the server."""

    name: str
    protocol: int


@dataclass(frozen=True)
class PlayerSample:
    """A player listed in the status response sample."""

    name: str
    id: str


@dataclass(frozen=True)
class Players:
    """Online and maximum player counts, plus an optional sample of names."""

    max: int
    online: int
    sample: tuple[PlayerSample, ...] | None = None


@dataclass(frozen=True)
class StatusResponse:
    """Decoded Server List Ping response."""

    version: Version
    players: Players
    motd: ChatObject
    favicon: str | None = None
    previews_chat: bool | None = None
    enforces_secure_chat: bool | None = None


@dataclass(frozen=True)
class BasicStatResponse:
    """Result of a basic stat query."""

    motd: str
    game_type: str
    map: str
    num_players: int
    max_players: int
    host_port: int
    host_ip: str


@dataclass(frozen=True)
class FullStatResponse:
    """Result of a full stat query.

    ``extra`` holds any key/value pairs beyond the standard ten, which some
    server platforms add.
    """

    motd: str
    game_type: str
    game_id: str
    version: str
    plugins: str
    map: str
    num_players: int
    max_players: int
    host_port: int
    host_ip: str
    players: tuple[str, ...]
    extra: dict[str, str] = field(default_factory=dict)


def parse_status_response(text: str) -> StatusResponse:
    """Decode the JSON payload of a status response.

    Raises:
        InvalidStatusResponseError: If the text is not JSON or does not have
            the expected structure.
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        msg = f"Status payload is not valid JSON: {e}"
        raise InvalidStatusResponseError(msg) from e

    obj = _expect(raw, dict, "status response")
    return StatusResponse(
        version=_parse_version(_require(obj, "version")),
        players=_parse_players(_require(obj, "players")),
        motd=parse_chat(_require(obj, "description")),
        favicon=_optional(obj, "favicon", str),
        previews_chat=_optional(obj, "previewsChat", bool),
        enforces_secure_chat=_optional(obj, "enforcesSecureChat", bool),
    )


def parse_chat(raw: Any) -> ChatObject:
    """Parse a JSON chat object into components, lists, and primitives.

    An object that does not have the shape of a chat component is kept as
    its raw JSON value, so an odd MOTD never fails the whole status call.
    """
    if isinstance(raw, list):
        return [parse_chat(item) for item in raw]
    if not isinstance(raw, dict):
        return raw
    try:
        return _parse_component(raw)
    except InvalidStatusResponseError:
        log.debug("Keeping malformed chat component as raw JSON: %r", raw)
        return raw


def _parse_component(raw: dict[str, Any]) -> ChatComponent:
    translate_with = _optional(raw, "with", list) or []
    extra = _optional(raw, "extra", list) or []
    return ChatComponent(
        text=_optional(raw, "text", str),
        translate=_optional(raw, "translate", str),
        translate_with=tuple(parse_chat(item) for item in translate_with),
        keybind=_optional(raw, "keybind", str),
        bold=_optional(raw, "bold", bool),
        italic=_optional(raw, "italic", bool),
        underlined=_optional(raw, "underlined", bool),
        strikethrough=_optional(raw, "strikethrough", bool),
        obfuscated=_optional(raw, "obfuscated", bool),
        font=_optional(raw, "font", str),
        color=_optional(raw, "color", str),
        insertion=_optional(raw, "insertion", str),
        click_event=_parse_click_event(_optional(raw, "clickEvent", dict)),
        hover_event=_parse_hover_event(_optional(raw, "hoverEvent", dict)),
        extra=tuple(parse_chat(item) for item in extra),
    )


def _parse_version(raw: Any) -> Version:
    obj = _expect(raw, dict, "version")
    return Version(
        name=_expect(_require(obj, "name"), str, "version.name"),
        protocol=_expect_int(_require(obj, "protocol"), "version.protocol"),
    )


def _parse_players(raw: Any) -> Players:
    obj = _expect(raw, dict, "players")
    sample = _optional(obj, "sample", list)
    return Players(
        max=_expect_int(_require(obj, "max"), "players.max"),
        online=_expect_int(_require(obj, "online"), "players.online"),
        sample=None if sample is None else tuple(_parse_sample(s) for s in sample),
    )


def _parse_sample(raw: Any) -> PlayerSample:
    obj = _expect(raw, dict, "players.sample entry")
    return PlayerSample(
        name=_expect(_require(obj, "name"), str, "players.sample.name"),
        id=_expect(_require(obj, "id"), str, "players.sample.id"),
    )


def _parse_click_event(raw: dict[str, Any] | None) -> ClickEvent | None:
    if raw is None:
        return None
    return ClickEvent(
        action=_optional(raw, "action", str),
        value=_optional(raw, "value", str),
    )


def _parse_hover_event(raw: dict[str, Any] | None) -> HoverEvent | None:
    if raw is None:
        return None
    action = _optional(raw, "action", str)
    contents = raw.get("contents", raw.get("value"))
    if action == "show_text":
        contents = parse_chat(contents)
    return HoverEvent(action=action, contents=contents)


def _require(obj: dict[str, Any], key: str) -> Any:
    if key not in obj:
        msg = f"Status response is missing '{key}'"
        raise InvalidStatusResponseError(msg)
    return obj[key]


def _optional(obj: dict[str, Any], key: str, kind: type) -> Any:
    value = obj.get(key)
    if value is None:
        return None
    return _expect(value, kind, key)


def _expect(value: Any, kind: type, what: str) -> Any:
    # bool is a subclass of int; JSON true is never a valid count
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        msg = f"Expected {kind.__name__} for {what}, got {type(value).__name__}"
        raise InvalidStatusResponseError(msg)
    return value


def _expect_int(value: Any, what: str) -> int:
    return _expect(value, int, what)
