"""Resolve RCON passwords from 1Password secret references with ``op read``."""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import TYPE_CHECKING

from mcquery.errors import McQueryError

if TYPE_CHECKING:
    from mcquery.config import CredentialConfig

log = logging.getLogger(__name__)

_OP_TIMEOUT = 30


class CredentialError(McQueryError):
    """Raised when a secret cannot be read from 1Password."""

    def __init__(self, message: str, reference: str | None = None) -> None:
        super().__init__(message)
        self.reference = reference


def read_secret(reference: str, *, timeout: float = _OP_TIMEOUT) -> str:
    """Read one secret with ``op read``.

    Args:
        reference: An ``op://vault/item/field`` secret reference.
        timeout: Seconds to wait for the op CLI, which may prompt for unlock.

    Raises:
        CredentialError: If the op CLI is missing, fails, or times out.
    """
    op_path = shutil.which("op")
    if op_path is None:
        msg = "1Password CLI (op) is not installed or not in PATH"
        raise CredentialError(msg, reference)

    log.debug("Reading secret %s", reference)
    try:
        result = subprocess.run(  # noqa: S603
            [op_path, "read", "--no-newline", reference],
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        msg = f"op read {reference} failed: {e.stderr.strip()}"
        raise CredentialError(msg, reference) from e
    except subprocess.TimeoutExpired as e:
        msg = f"op read {reference} timed out after {timeout}s, is 1Password unlocked?"
        raise CredentialError(msg, reference) from e

    return result.stdout


def get_rcon_password(creds: CredentialConfig) -> str:
    """Return the RCON password stored at ``creds.reference``.

    Raises:
        CredentialError: If the secret cannot be read or is blank.
    """
    password = read_secret(creds.reference).strip()
    if not password:
        msg = f"1Password field {creds.reference} is empty"
        raise CredentialError(msg, creds.reference)
    return password
