"""Render Minecraft formatting for the terminal.

Servers format text two ways: legacy ``§`` codes embedded in strings (RCON
output, query MOTDs, plain-string status MOTDs) and JSON chat objects (status
MOTDs). Chat objects are first flattened to ``§`` codes, so both go through
the same ANSI conversion.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from mcquery.models import ChatComponent

if TYPE_CHECKING:
    from mcquery.models import ChatObject

# Pattern to match Minecraft formatting codes
# Matches: §x§R§R§G§G§B§B (RGB) or §X (single char code)
_MC_FORMAT_PATTERN = re.compile(r"§x(?:§[0-9A-Fa-f]){6}|§.")
_HEX_COLOR_PATTERN = re.compile(r"#[0-9A-Fa-f]{6}")

_ANSI_RESET = "\033[0m"
_RGB_HEX_DIGITS = 6
_LEGACY_COLORS = frozenset("0123456789abcdef")

# Mapping from Minecraft single-char formatting codes to ANSI escape sequences.
# §k (obfuscated) has no terminal equivalent.
_MC_TO_ANSI: dict[str, str] = {
    "0": "\033[30m",  # Black
    "1": "\033[34m",  # Dark Blue
    "2": "\033[32m",  # Dark Green
    "3": "\033[36m",  # Dark Aqua
    "4": "\033[31m",  # Dark Red
    "5": "\033[35m",  # Dark Purple
    "6": "\033[33m",  # Gold
    "7": "\033[37m",  # Gray
    "8": "\033[90m",  # Dark Gray
    "9": "\033[94m",  # Blue
    "a": "\033[92m",  # Green
    "b": "\033[96m",  # Aqua
    "c": "\033[91m",  # Red
    "d": "\033[95m",  # Light Purple
    "e": "\033[93m",  # Yellow
    "f": "\033[97m",  # White
    "l": "\033[1m",  # Bold
    "m": "\033[9m",  # Strikethrough
    "n": "\033[4m",  # Underline
    "o": "\033[3m",  # Italic
    "r": "\033[0m",  # Reset
}

# Chat object color names and their legacy codes
_COLOR_CODES: dict[str, str] = {
    "black": "0",
    "dark_blue": "1",
    "dark_green": "2",
    "dark_aqua": "3",
    "dark_red": "4",
    "dark_purple": "5",
    "gold": "6",
    "gray": "7",
    "dark_gray": "8",
    "blue": "9",
    "green": "a",
    "aqua": "b",
    "red": "c",
    "light_purple": "d",
    "yellow": "e",
    "white": "f",
}

_STYLE_CODES = (
    ("obfuscated", "k"),
    ("bold", "l"),
    ("strikethrough", "m"),
    ("underlined", "n"),
    ("italic", "o"),
)


def strip_formatting(text: str) -> str:
    """Remove all Minecraft formatting codes from text.

    Args:
        text: Raw text from the Minecraft server.

    Returns:
        Clean text with all formatting codes removed.
    """
    return _MC_FORMAT_PATTERN.sub("", text)


def convert_formatting(text: str) -> str:
    """Convert Minecraft formatting codes to ANSI escape sequences.

    RGB colors (§x§R§R§G§G§B§B) become 24-bit ANSI color sequences. As in the
    game, a color code also clears any active style. Codes without a terminal
    equivalent (§k) are stripped. A reset sequence is appended if any
    formatting was applied.
    """
    has_formatting = False

    def _replace(match: re.Match[str]) -> str:
        nonlocal has_formatting
        code = match.group(0)

        # RGB color: §x§R§R§G§G§B§B
        if code.startswith("§x"):
            hex_chars = [c for c in code if c not in ("§", "x")]
            if len(hex_chars) == _RGB_HEX_DIGITS:
                r = int(hex_chars[0] + hex_chars[1], 16)
                g = int(hex_chars[2] + hex_chars[3], 16)
                b = int(hex_chars[4] + hex_chars[5], 16)
                has_formatting = True
                return f"{_ANSI_RESET}\033[38;2;{r};{g};{b}m"
            return ""

        # Single-char code: §X
        char = code[1].lower()
        ansi = _MC_TO_ANSI.get(char)
        if ansi is not None:
            has_formatting = True
            if char in _LEGACY_COLORS:
                return _ANSI_RESET + ansi
            return ansi
        return ""

    result = _MC_FORMAT_PATTERN.sub(_replace, text)
    if has_formatting:
        result += _ANSI_RESET
    return result


def format_response(text: str, *, color: bool = True) -> str:
    """Format server text for terminal display.

    Args:
        text: Raw text from the Minecraft server.
        color: If True, convert formatting codes to ANSI sequences.
            If False, strip all formatting codes.
    """
    if color:
        return convert_formatting(text)
    return strip_formatting(text)


def chat_to_legacy(chat: ChatObject) -> str:
    """Flatten a chat object into a string with legacy ``§`` codes.

    Styles are inherited by ``extra`` children, as the game renders them.
    Translation keys are shown as-is, since the language files are not
    available here.
    """
    return _flatten(chat, color=None, styles=frozenset())


def format_motd(chat: ChatObject, *, color: bool = True) -> str:
    """Render a status MOTD for terminal display."""
    return format_response(chat_to_legacy(chat), color=color)


def _flatten(chat: ChatObject, *, color: str | None, styles: frozenset[str]) -> str:
    if isinstance(chat, list):
        return "".join(_flatten(item, color=color, styles=styles) for item in chat)
    if isinstance(chat, dict):
        # Malformed component kept as raw JSON; show its text, unstyled
        text = chat.get("text")
        return text if isinstance(text, str) else ""
    if not isinstance(chat, ChatComponent):
        return "" if chat is None else str(chat)

    color = _color_code(chat.color) or color
    active = set(styles)
    for name, code in _STYLE_CODES:
        value = getattr(chat, name)
        if value is True:
            active.add(code)
        elif value is False:
            active.discard(code)
    styles = frozenset(active)

    own = chat.text or ""
    if chat.translate is not None and not own:
        own = chat.translate
    if chat.keybind is not None and not own:
        own = chat.keybind

    parts = []
    if own:
        prefix = "§r" + (color or "") + "".join(f"§{c}" for c in sorted(styles))
        parts.append(prefix + own)
    parts.extend(_flatten(child, color=color, styles=styles) for child in chat.extra)
    return "".join(parts)


def _color_code(name: str | None) -> str | None:
    if name is None:
        return None
    if name in _COLOR_CODES:
        return "§" + _COLOR_CODES[name]
    if _HEX_COLOR_PATTERN.fullmatch(name):
        return "§x" + "".join(f"§{c}" for c in name[1:])
    return None
