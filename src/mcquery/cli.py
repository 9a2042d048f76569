"""CLI entry point: server status, query, and RCON from the terminal."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import TYPE_CHECKING

from mcquery.client import RconClient
from mcquery.config import (
    AppConfig,
    Protocol,
    ServerConfig,
    load_config,
)
from mcquery.credentials import CredentialError, get_rcon_password
from mcquery.errors import AuthenticationError, McQueryError
from mcquery.formatting import format_motd, format_response
from mcquery.query import QueryClient
from mcquery.repl import run_repl
from mcquery.status import status

if TYPE_CHECKING:
    from mcquery.models import BasicStatResponse, FullStatResponse, StatusResponse

PASSWORD_ENV_VAR = "MCQUERY_RCON_PASSWORD"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mcquery",
        description="Query Minecraft servers over Server List Ping, Query, and RCON",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Log protocol details to stderr",
    )
    subparsers = parser.add_subparsers(dest="protocol", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "server",
        nargs="?",
        help="Server name (from config), host:port, or host",
    )
    common.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Timeout in seconds (default: from config, or 10)",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Strip formatting codes instead of converting to ANSI colors",
    )

    subparsers.add_parser(
        Protocol.STATUS,
        parents=[common],
        help="Ping the server for version, players, and MOTD",
    )

    query_parser = subparsers.add_parser(
        Protocol.QUERY,
        parents=[common],
        help="Read server stats over the UDP query protocol",
    )
    query_parser.add_argument(
        "--full",
        action="store_true",
        default=False,
        help="Run a full stat query, including plugins and the player list",
    )

    rcon_parser = subparsers.add_parser(
        Protocol.RCON,
        parents=[common],
        help="Run commands over RCON (interactive unless -c is given)",
    )
    rcon_parser.add_argument(
        "-p",
        "--password",
        help=f"RCON password (overrides ${PASSWORD_ENV_VAR} and 1Password lookup)",
    )
    rcon_parser.add_argument(
        "-c",
        "--command",
        help="Execute a single command and exit (non-interactive mode)",
    )
    rcon_parser.add_argument(
        "--sentinel",
        action="store_true",
        default=False,
        help="Detect the end of long replies with a marker packet",
    )
    return parser


def select_server(config: AppConfig) -> tuple[str, ServerConfig]:
    """Prompt the user to select from configured servers.

    Returns (key, ServerConfig).
    """
    servers = list(config.servers.items())
    if not servers:
        print(
            "No server given and none configured in ~/.config/mcquery/config.toml",
            file=sys.stderr,
        )
        sys.exit(1)

    print("Available servers:")
    for i, (_key, srv) in enumerate(servers, 1):
        print(f"  {i}. {srv.name} ({srv.host})")

    while True:
        try:
            choice = input(f"\nSelect server [1-{len(servers)}]: ").strip()
            idx = int(choice) - 1
            if 0 <= idx < len(servers):
                return servers[idx]
        except (ValueError, EOFError):
            pass
        print(f"Please enter a number between 1 and {len(servers)}")


def resolve_server(
    server_arg: str | None, config: AppConfig
) -> tuple[str, ServerConfig]:
    """Resolve the target server from CLI arg or interactive selection.

    An explicit ``host:port`` applies the port to every protocol; a bare host
    gets the default port of each protocol.

    Returns (display_name, ServerConfig).
    """
    if server_arg is not None:
        # Check if it's a configured server name
        if server_arg in config.servers:
            return server_arg, config.servers[server_arg]

        # Try parsing as host:port
        if ":" in server_arg:
            host, port_str = server_arg.rsplit(":", 1)
            try:
                port = int(port_str)
            except ValueError:
                pass
            else:
                return server_arg, ServerConfig(
                    name=server_arg,
                    host=host,
                    port=port,
                    query_port=port,
                    rcon_port=port,
                )

        # Treat as hostname with the default ports
        return server_arg, ServerConfig(name=server_arg, host=server_arg)

    # No server arg provided -- check for default
    if config.default_server and config.default_server in config.servers:
        key = config.default_server
        return key, config.servers[key]

    # Prompt user to select
    return select_server(config)


def resolve_password(
    password_arg: str | None,
    server: ServerConfig,
    config: AppConfig,
) -> str:
    """Resolve the RCON password.

    Order: the -p flag, the environment variable, then per-server or default
    1Password credentials.
    """
    if password_arg is not None:
        return password_arg

    env_password = os.environ.get(PASSWORD_ENV_VAR)
    if env_password:
        return env_password

    creds = server.resolve_credentials(config.default_credentials)
    if creds is None:
        print(
            "Error: no RCON password given and no credentials configured.\n"
            f"Use -p, set ${PASSWORD_ENV_VAR}, or configure credentials in "
            "~/.config/mcquery/config.toml",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        return get_rcon_password(creds)
    except CredentialError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def print_status(response: StatusResponse, *, color: bool = True) -> None:
    """Print a status response."""
    print(format_motd(response.motd, color=color))
    print(
        f"Version: {format_response(response.version.name, color=color)} "
        f"(protocol {response.version.protocol})"
    )
    print(f"Players: {response.players.online}/{response.players.max}")
    for player in response.players.sample or ():
        print(f"  {format_response(player.name, color=color)}")


def print_basic_stat(response: BasicStatResponse, *, color: bool = True) -> None:
    """Print a basic stat response."""
    print(format_response(response.motd, color=color))
    print(f"Game type: {response.game_type}")
    print(f"Map: {response.map}")
    print(f"Players: {response.num_players}/{response.max_players}")
    print(f"Host: {response.host_ip}:{response.host_port}")


def print_full_stat(response: FullStatResponse, *, color: bool = True) -> None:
    """Print a full stat response."""
    print(format_response(response.motd, color=color))
    print(f"Version: {response.version} ({response.game_id}, {response.game_type})")
    print(f"Map: {response.map}")
    print(f"Host: {response.host_ip}:{response.host_port}")
    if response.plugins:
        print(f"Plugins: {response.plugins}")
    for key, value in sorted(response.extra.items()):
        print(f"{key}: {value}")
    print(f"Players: {response.num_players}/{response.max_players}")
    for name in response.players:
        print(f"  {name}")


async def _run_status(server: ServerConfig, timeout: float, *, color: bool) -> None:
    response = await status(server.host, server.port_for(Protocol.STATUS), timeout)
    print_status(response, color=color)


async def _run_query(
    server: ServerConfig, timeout: float, *, full: bool, color: bool
) -> None:
    # The timeout bounds the whole exchange, including the retry
    client = QueryClient(handshake_timeout=timeout)
    port = server.port_for(Protocol.QUERY)
    if full:
        stat = await asyncio.wait_for(client.stat_full(server.host, port), timeout)
        print_full_stat(stat, color=color)
    else:
        stat = await asyncio.wait_for(client.stat_basic(server.host, port), timeout)
        print_basic_stat(stat, color=color)


async def _run_rcon(  # noqa: PLR0913
    display_name: str,
    server: ServerConfig,
    password: str,
    timeout: float,
    *,
    command: str | None,
    sentinel: bool,
    color: bool,
) -> None:
    port = server.port_for(Protocol.RCON)
    client = await RconClient.connect(
        server.host, port, timeout, use_sentinel=sentinel
    )
    async with client:
        await client.authenticate(password)

        # Non-interactive mode: run single command and exit
        if command:
            response = await client.run_command(command)
            if response:
                print(format_response(response, color=color))
            return

        print(f"Connected to {display_name} ({server.host}:{port})")
        print("Ctrl+D or 'exit' to quit.\n")
        await run_repl(client, color=color)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        )

    config = load_config()
    protocol = Protocol(args.protocol)
    timeout = args.timeout if args.timeout is not None else config.timeout
    color = not args.no_color

    display_name, server = resolve_server(args.server, config)

    if protocol is Protocol.STATUS:
        operation = _run_status(server, timeout, color=color)
    elif protocol is Protocol.QUERY:
        operation = _run_query(server, timeout, full=args.full, color=color)
    else:
        password = resolve_password(args.password, server, config)
        operation = _run_rcon(
            display_name,
            server,
            password,
            timeout,
            command=args.command,
            sentinel=args.sentinel,
            color=color,
        )

    try:
        asyncio.run(operation)
    except AuthenticationError as e:
        print(f"Authentication failed: {e}", file=sys.stderr)
        sys.exit(1)
    except TimeoutError:
        msg = f"Timed out after {timeout}s talking to {display_name}"
        print(msg, file=sys.stderr)
        sys.exit(1)
    except McQueryError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
