"""Async client for the tracker's administration HTTP API.

This module is a thin transport: it builds authenticated requests and
reports exactly what happened on the wire. Interpreting statuses and
bodies is left to the tracker service.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import aiohttp
from pydantic import ValidationError

from tindex.models import TrackerKey
from tindex.utils.exceptions import TrackerConnectionError, TrackerResponseError

if TYPE_CHECKING:
    from tindex.models import TrackerConfig

API_PREFIX = "/api/v1"


@dataclass(frozen=True)
class ConnectionInfo:
    """Where the admin API lives and how to authenticate against it."""

    url: str
    token: str

    def __repr__(self) -> str:
        return f"ConnectionInfo(url={self.url!r}, token='***')"


@dataclass(frozen=True)
class TrackerResponse:
    """Raw admin API response: status code and body text."""

    status: int
    body: str

    @property
    def ok(self) -> bool:
        """True for any 2xx status."""
        return 200 <= self.status < 300


class TrackerApiClient:
    """Async client for the tracker admin API.

    One shared ``aiohttp.ClientSession`` serves all concurrent callers. Each
    request carries the session's total timeout, so a hung connection fails
    the single call that issued it.
    """

    def __init__(
        self,
        connection_info: ConnectionInfo,
        request_timeout: float = 10.0,
        user_agent: str | None = None,
    ):
        """Initialize the tracker API client.

        Args:
            connection_info: Admin API base URL and token
            request_timeout: Total timeout in seconds for each request
            user_agent: Optional User-Agent header

        """
        self.connection_info = connection_info
        self.request_timeout = request_timeout
        self.user_agent = user_agent
        self.session: aiohttp.ClientSession | None = None
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, tracker_config: TrackerConfig) -> TrackerApiClient:
        """Build a client from the tracker configuration section."""
        from tindex import __version__

        return cls(
            ConnectionInfo(
                url=tracker_config.api_url,
                token=tracker_config.token.get_secret_value(),
            ),
            request_timeout=tracker_config.request_timeout,
            user_agent=f"tindex/{__version__}",
        )

    async def start(self) -> None:
        """Open the HTTP session."""
        if self.session is not None and not self.session.closed:
            return

        timeout = aiohttp.ClientTimeout(
            total=self.request_timeout,
            connect=self.request_timeout,
        )
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        self.session = aiohttp.ClientSession(timeout=timeout, headers=headers)
        self.logger.debug("Tracker API client started for %s", self.connection_info.url)

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self.session is None:
            return
        try:
            if not self.session.closed:
                await self.session.close()
        finally:
            self.session = None
        self.logger.debug("Tracker API client stopped")

    async def __aenter__(self) -> TrackerApiClient:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def whitelist_torrent(self, info_hash: str) -> TrackerResponse:
        """Add an info-hash to the tracker whitelist."""
        return await self._request("POST", f"/whitelist/{info_hash}")

    async def remove_torrent_from_whitelist(self, info_hash: str) -> TrackerResponse:
        """Remove an info-hash from the tracker whitelist."""
        return await self._request("DELETE", f"/whitelist/{info_hash}")

    async def issue_key(self, ttl_seconds: int) -> TrackerKey:
        """Ask the tracker to mint a new announce key.

        Args:
            ttl_seconds: Lifetime of the key in seconds

        Returns:
            The issued key

        Raises:
            TrackerConnectionError: If the tracker cannot be reached
            TrackerResponseError: If the tracker refuses or the body does not decode

        """
        response = await self._request("POST", f"/key/{ttl_seconds}")
        if not response.ok:
            msg = f"Tracker refused to issue a key: HTTP {response.status}"
            raise TrackerResponseError(msg, status=response.status, body=response.body)

        try:
            return TrackerKey.model_validate_json(response.body)
        except ValidationError as e:
            msg = "Tracker key response could not be decoded"
            raise TrackerResponseError(msg, status=response.status, body=response.body) from e

    async def get_torrent_info(self, info_hash: str) -> TrackerResponse:
        """Fetch live torrent info; status and body are returned undecoded."""
        return await self._request("GET", f"/torrent/{info_hash}")

    async def _request(self, method: str, path: str) -> TrackerResponse:
        """Send one authenticated request.

        The token travels as a query parameter and is kept out of every
        log line and error message; only the verb and path are reported.

        Raises:
            RuntimeError: If the client has not been started
            TrackerConnectionError: On connection failures and timeouts

        """
        if self.session is None:
            msg = "HTTP session not initialized"
            raise RuntimeError(msg)

        api_path = f"{API_PREFIX}{path}"
        url = f"{self.connection_info.url}{api_path}"
        request_start = time.monotonic()

        try:
            async with self.session.request(
                method,
                url,
                params={"token": self.connection_info.token},
            ) as response:
                body = await response.text(errors="replace")
                status = response.status
        except asyncio.TimeoutError as e:
            msg = f"Tracker API request timed out after {self.request_timeout:.1f}s: {method} {api_path}"
            raise TrackerConnectionError(msg) from e
        except aiohttp.ClientError as e:
            msg = f"Tracker API request failed ({type(e).__name__}): {method} {api_path}"
            raise TrackerConnectionError(msg) from e

        self.logger.debug(
            "%s %s -> %d in %.3fs",
            method,
            api_path,
            status,
            time.monotonic() - request_start,
        )
        return TrackerResponse(status=status, body=body)
