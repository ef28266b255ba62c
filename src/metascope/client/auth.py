"""Credential acquisition through the Azure CLI.

Tokens are requested with ``az account get-access-token`` for the
environment URL as resource and cached until shortly before expiry.
"""

import asyncio
import json
import logging
import shutil
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol

from metascope.errors import AuthFailure, MalformedData
from metascope.models import normalize_url


logger = logging.getLogger(__name__)

LOGIN_HINT = "Run 'az login' (and 'az account set' for the right tenant), then retry."

# Refresh tokens this many seconds before they actually expire
EXPIRY_MARGIN = 120.0

Runner = Callable[[list[str]], Awaitable[tuple[int, str, str]]]


class CredentialProvider(Protocol):
    """Anything that can produce a bearer token for a resource URL."""

    async def get_token(self, resource: str) -> str:
        ...  # pragma: no cover


@dataclass
class CachedToken:
    """A token and the epoch second it stops being valid."""

    token: str
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at - EXPIRY_MARGIN


class StaticCredential:
    """Always returns the same token (``--token`` / ``DATAVERSE_TOKEN``)."""

    def __init__(self, token: str):
        self.token = token

    async def get_token(self, resource: str) -> str:
        return self.token


async def _run_subprocess(args: list[str]) -> tuple[int, str, str]:
    """Run a command and return (exit code, stdout, stderr)."""
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return (
        process.returncode if process.returncode is not None else -1,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


def parse_expiry(data: dict) -> float:
    """Read the expiry from ``az`` output.

    Newer CLI versions emit ``expires_on`` (epoch seconds); older ones only
    ``expiresOn`` as a local timestamp.
    """
    if data.get("expires_on") is not None:
        try:
            return float(data["expires_on"])
        except (TypeError, ValueError):
            logger.debug("Unreadable expires_on: %r", data["expires_on"])
    expires_on = data.get("expiresOn")
    if isinstance(expires_on, str):
        for fmt in ("%Y-%m-%d %H:%M:%S.%f", "%Y-%m-%d %H:%M:%S"):
            try:
                return datetime.strptime(expires_on, fmt).timestamp()
            except ValueError:
                continue
    # Unknown format: assume the usual one hour lifetime
    return time.time() + 3600


class AzureCliCredential:
    """Credential provider backed by the ``az`` command line tool."""

    def __init__(
        self,
        az_path: Optional[str] = None,
        runner: Optional[Runner] = None,
    ):
        """Initialize the provider.

        Args:
            az_path: Explicit path to ``az``. Looked up on PATH when omitted.
            runner: Coroutine used to execute the CLI; swapped out in tests.
        """
        self.az_path = az_path
        self._runner = runner or _run_subprocess
        self._tokens: dict[str, CachedToken] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _resolve_az(self) -> str:
        path = self.az_path or shutil.which("az")
        if not path:
            raise AuthFailure(
                "Azure CLI ('az') was not found on PATH",
                hint="Install the Azure CLI and run 'az login'.",
            )
        return path

    async def get_token(self, resource: str) -> str:
        """Return a bearer token for *resource*, fetching one if needed.

        Raises:
            AuthFailure: If the CLI is missing or the user is not logged in.
            MalformedData: If the CLI output cannot be parsed.
        """
        resource = normalize_url(resource)
        cached = self._tokens.get(resource)
        if cached and not cached.is_expired:
            return cached.token

        lock = self._locks.setdefault(resource, asyncio.Lock())
        async with lock:
            cached = self._tokens.get(resource)
            if cached and not cached.is_expired:
                return cached.token
            token = await self._acquire(resource)
            self._tokens[resource] = token
            return token.token

    async def _acquire(self, resource: str) -> CachedToken:
        az = self._resolve_az()
        logger.debug("Requesting token for %s", resource)
        code, stdout, stderr = await self._runner(
            [az, "account", "get-access-token", "--resource", resource, "--output", "json"]
        )
        if code != 0:
            message = stderr.strip() or f"az exited with status {code}"
            if "az login" in message or "not logged in" in message.lower():
                raise AuthFailure("Not logged in to the Azure CLI", hint=LOGIN_HINT)
            raise AuthFailure(f"Failed to get token from Azure CLI: {message}", hint=LOGIN_HINT)

        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise MalformedData(f"Unexpected output from Azure CLI: {e}") from e
        token = data.get("accessToken") if isinstance(data, dict) else None
        if not token:
            raise MalformedData("Azure CLI output did not contain an access token")
        return CachedToken(token=token, expires_at=parse_expiry(data))

    def forget(self, resource: Optional[str] = None) -> None:
        """Drop cached tokens (all, or for one resource)."""
        if resource is None:
            self._tokens.clear()
        else:
            self._tokens.pop(normalize_url(resource), None)
