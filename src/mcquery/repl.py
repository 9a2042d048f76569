"""Interactive RCON prompt using prompt_toolkit."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings

if TYPE_CHECKING:
    from prompt_toolkit.key_binding.key_processor import KeyPressEvent

    from mcquery.client import RconClient

from mcquery.config import HISTORY_FILE, ensure_config_dir
from mcquery.errors import ConnectionError as RconConnectionError
from mcquery.errors import RconProtocolError
from mcquery.formatting import format_response

log = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit")


def create_key_bindings() -> KeyBindings:
    """Create custom key bindings for the prompt.

    Ctrl+C and Ctrl+D abandon the current line if it has text, and exit the
    prompt if it is empty.
    """
    kb = KeyBindings()

    @kb.add("c-c")
    def _(event: KeyPressEvent) -> None:
        _abandon_or_exit(event, KeyboardInterrupt)

    @kb.add("c-d")
    def _(event: KeyPressEvent) -> None:
        _abandon_or_exit(event, EOFError)

    return kb


def _abandon_or_exit(event: KeyPressEvent, exception: type[BaseException]) -> None:
    buffer = event.app.current_buffer
    if buffer.text:
        print()
        buffer.reset()
        event.app.renderer.reset()
    else:
        event.app.exit(exception=exception)


async def run_repl(client: RconClient, *, color: bool = True) -> None:
    """Read commands, run them over RCON, and print the replies.

    Args:
        client: An already-connected and authenticated RconClient.
        color: If True, convert formatting codes to ANSI. If False, strip them.

    The loop ends on ``exit``, ``quit``, Ctrl+D on an empty line, or when the
    connection is lost. There is no automatic reconnection.
    """
    ensure_config_dir()
    session: PromptSession[str] = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        key_bindings=create_key_bindings(),
    )

    while True:
        try:
            text = await session.prompt_async(HTML("<ansigreen>rcon</ansigreen>> "))
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye.")
            break

        text = text.strip()
        if not text:
            continue

        if text in EXIT_COMMANDS:
            print("Goodbye.")
            break

        if not await execute_command(client, text, color=color):
            break


async def execute_command(
    client: RconClient, text: str, *, color: bool = True
) -> bool:
    """Run one command and print its reply.

    Returns:
        False if the connection is gone and the prompt should stop.
    """
    try:
        response = await client.run_command(text)
    except TimeoutError:
        print("Command timed out; connection closed.", file=sys.stderr)
        return False
    except RconConnectionError as e:
        print(f"Connection lost: {e}", file=sys.stderr)
        return False
    except RconProtocolError as e:
        log.debug("Command %r failed", text, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return client.connected

    if response:
        print(format_response(response, color=color))
    return True
