"""Configuration loading for the command line client."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

CONFIG_DIR = Path.home() / ".config" / "mcquery"
CONFIG_FILE = CONFIG_DIR / "config.toml"
HISTORY_FILE = CONFIG_DIR / "history"

DEFAULT_GAME_PORT = 25565
DEFAULT_RCON_PORT = 25575
DEFAULT_TIMEOUT = 10.0

SECRET_SCHEME = "op://"


class Protocol(StrEnum):
    """The three protocols a server can be reached with."""

    STATUS = "status"
    QUERY = "query"
    RCON = "rcon"


@dataclass(frozen=True)
class CredentialConfig:
    """Location of a server's RCON password in 1Password."""

    vault: str
    item: str
    field: str

    @property
    def reference(self) -> str:
        """The ``op://vault/item/field`` secret reference."""
        return f"{SECRET_SCHEME}{self.vault}/{self.item}/{self.field}"

    @classmethod
    def from_reference(cls, reference: str) -> CredentialConfig:
        """Split an ``op://vault/item/field`` secret reference.

        Raises:
            ValueError: If the reference is not of that form.
        """
        if not reference.startswith(SECRET_SCHEME):
            msg = f"Secret reference must start with {SECRET_SCHEME}: {reference!r}"
            raise ValueError(msg)
        parts = reference.removeprefix(SECRET_SCHEME).split("/")
        if len(parts) != 3 or not all(parts):  # noqa: PLR2004
            msg = f"Secret reference must be op://vault/item/field: {reference!r}"
            raise ValueError(msg)
        vault, item, field = parts
        return cls(vault=vault, item=item, field=field)


@dataclass(frozen=True)
class ServerConfig:
    """Configuration for a single Minecraft server."""

    name: str
    host: str
    port: int = DEFAULT_GAME_PORT
    query_port: int | None = None
    rcon_port: int = DEFAULT_RCON_PORT
    credentials: CredentialConfig | None = None

    def port_for(self, protocol: Protocol) -> int:
        """Return the port to use for a protocol.

        The query port defaults to the game port, as in server.properties.
        """
        if protocol is Protocol.RCON:
            return self.rcon_port
        if protocol is Protocol.QUERY and self.query_port is not None:
            return self.query_port
        return self.port

    def resolve_credentials(
        self, default_credentials: CredentialConfig | None
    ) -> CredentialConfig | None:
        """Return the effective credentials, falling back to the default."""
        return self.credentials or default_credentials


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    default_server: str | None
    default_credentials: CredentialConfig | None
    servers: dict[str, ServerConfig]
    timeout: float = DEFAULT_TIMEOUT


def load_config(path: Path = CONFIG_FILE) -> AppConfig:
    """Load and parse the configuration file.

    Returns an empty configuration if no config file exists.
    """
    if not path.exists():
        return AppConfig(default_server=None, default_credentials=None, servers={})

    with path.open("rb") as f:
        raw = tomllib.load(f)

    defaults = raw.get("defaults", {})

    servers: dict[str, ServerConfig] = {}
    for key, val in raw.get("servers", {}).items():
        servers[key] = ServerConfig(
            name=val.get("name", key),
            host=val["host"],
            port=val.get("port", DEFAULT_GAME_PORT),
            query_port=val.get("query_port"),
            rcon_port=val.get("rcon_port", DEFAULT_RCON_PORT),
            credentials=_parse_credentials(val.get("credentials")),
        )

    return AppConfig(
        default_server=defaults.get("server"),
        default_credentials=_parse_credentials(defaults.get("credentials")),
        servers=servers,
        timeout=float(defaults.get("timeout", DEFAULT_TIMEOUT)),
    )


def _parse_credentials(raw: dict | None) -> CredentialConfig | None:
    """Parse a credentials section from the config file.

    The section holds either a ``reference`` or ``vault``, ``item`` and ``field``.
    """
    if raw is None:
        return None
    if "reference" in raw:
        return CredentialConfig.from_reference(raw["reference"])
    return CredentialConfig(
        vault=raw["vault"],
        item=raw["item"],
        field=raw["field"],
    )


def ensure_config_dir() -> None:
    """Create the config directory if it does not exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
