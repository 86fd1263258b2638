"""Unit tests for the tracker admin API client.

Tests request construction, token handling, session lifecycle and the
mapping of transport failures.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import aiohttp
import pytest
import pytest_asyncio

from tindex.models import TrackerConfig, TrackerKey
from tindex.tracker.api import ConnectionInfo, TrackerApiClient, TrackerResponse
from tindex.utils.exceptions import TrackerConnectionError, TrackerResponseError

pytestmark = [pytest.mark.unit, pytest.mark.tracker]

INFO_HASH = "443c7602b4fde83d1154d6d9da48808418b181b6"


def _mock_session(status: int = 200, body: str = "") -> Mock:
    """Session whose ``request`` returns a context yielding a canned response."""
    mock_response = Mock()
    mock_response.status = status
    mock_response.text = AsyncMock(return_value=body)

    mock_context = AsyncMock()
    mock_context.__aenter__.return_value = mock_response
    mock_context.__aexit__.return_value = False

    session = Mock()
    session.closed = False
    session.request = Mock(return_value=mock_context)
    return session


@pytest.fixture
def client():
    """Create TrackerApiClient instance for testing."""
    return TrackerApiClient(
        ConnectionInfo(url="http://tracker.example.com:1212", token="s3cret"),
        request_timeout=5.0,
    )


@pytest_asyncio.fixture
async def started_client(client):
    """Create and start TrackerApiClient."""
    await client.start()
    yield client
    await client.stop()


class TestConnectionInfo:
    """Test connection info handling."""

    def test_repr_masks_token(self):
        """Test the token never shows up in the repr."""
        info = ConnectionInfo(url="http://localhost:1212", token="s3cret")

        assert "s3cret" not in repr(info)
        assert "***" in repr(info)

    def test_from_config(self):
        """Test building a client from the tracker config section."""
        config = TrackerConfig(api_url="http://localhost:1212/", token="abc", request_timeout=3.0)

        client = TrackerApiClient.from_config(config)

        assert client.connection_info.url == "http://localhost:1212"
        assert client.connection_info.token == "abc"
        assert client.request_timeout == 3.0
        assert client.user_agent.startswith("tindex/")


class TestTrackerResponse:
    """Test raw response helper."""

    @pytest.mark.parametrize(("status", "expected"), [(200, True), (204, True), (404, False), (500, False)])
    def test_ok(self, status, expected):
        """Test only 2xx statuses count as success."""
        assert TrackerResponse(status=status, body="").ok is expected


class TestLifecycle:
    """Test session start/stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, client):
        """Test the session is created once and closed on stop."""
        await client.start()
        session = client.session
        assert session is not None

        await client.start()
        assert client.session is session

        await client.stop()
        assert client.session is None
        assert session.closed

    @pytest.mark.asyncio
    async def test_context_manager(self, client):
        """Test async context manager starts and stops the session."""
        async with client as c:
            assert c.session is not None
        assert client.session is None

    @pytest.mark.asyncio
    async def test_request_without_session(self, client):
        """Test calling before start is a programming error."""
        with pytest.raises(RuntimeError, match="not initialized"):
            await client.get_torrent_info(INFO_HASH)

    @pytest.mark.asyncio
    async def test_stop_without_start(self, client):
        """Test stop is a no-op when never started."""
        await client.stop()
        assert client.session is None


class TestEndpoints:
    """Test verbs, paths and authentication of each endpoint."""

    @pytest.mark.asyncio
    async def test_whitelist_torrent(self, client):
        """Test whitelisting POSTs to the whitelist path with the token."""
        client.session = _mock_session(200)

        response = await client.whitelist_torrent(INFO_HASH)

        assert response.ok
        client.session.request.assert_called_once_with(
            "POST",
            f"http://tracker.example.com:1212/api/v1/whitelist/{INFO_HASH}",
            params={"token": "s3cret"},
        )

    @pytest.mark.asyncio
    async def test_body_decoded_leniently(self, client):
        """Test bodies are read with undecodable bytes replaced."""
        client.session = _mock_session(200, "\ufffd\ufffd ok")

        response = await client.whitelist_torrent(INFO_HASH)

        assert response.ok
        mock_response = client.session.request.return_value.__aenter__.return_value
        mock_response.text.assert_awaited_once_with(errors="replace")

    @pytest.mark.asyncio
    async def test_remove_torrent_from_whitelist(self, client):
        """Test removal DELETEs the whitelist path."""
        client.session = _mock_session(500, "error")

        response = await client.remove_torrent_from_whitelist(INFO_HASH)

        assert response == TrackerResponse(status=500, body="error")
        args = client.session.request.call_args
        assert args.args[0] == "DELETE"
        assert args.args[1].endswith(f"/api/v1/whitelist/{INFO_HASH}")

    @pytest.mark.asyncio
    async def test_get_torrent_info_returns_raw_response(self, client):
        """Test torrent info is returned undecoded."""
        client.session = _mock_session(200, "torrent not known")

        response = await client.get_torrent_info(INFO_HASH)

        assert response.status == 200
        assert response.body == "torrent not known"
        args = client.session.request.call_args
        assert args.args == ("GET", f"http://tracker.example.com:1212/api/v1/torrent/{INFO_HASH}")

    @pytest.mark.asyncio
    async def test_issue_key(self, client):
        """Test key issuance decodes the body."""
        client.session = _mock_session(200, '{"key": "YZSl4lMZupRuOpSRC3krIKR5BPB14nrJ", "valid_until": 1674804892}')

        key = await client.issue_key(7257600)

        assert key == TrackerKey(key="YZSl4lMZupRuOpSRC3krIKR5BPB14nrJ", valid_until=1674804892)
        args = client.session.request.call_args
        assert args.args[0] == "POST"
        assert args.args[1].endswith("/api/v1/key/7257600")

    @pytest.mark.asyncio
    async def test_issue_key_error_status(self, client):
        """Test a refused key request raises with status and body attached."""
        client.session = _mock_session(500, "boom")

        with pytest.raises(TrackerResponseError) as exc_info:
            await client.issue_key(60)

        assert exc_info.value.status == 500
        assert exc_info.value.body == "boom"

    @pytest.mark.asyncio
    async def test_issue_key_undecodable_body(self, client):
        """Test a malformed key payload is an error, not a silent success."""
        client.session = _mock_session(200, '{"valid_until": 1}')

        with pytest.raises(TrackerResponseError, match="could not be decoded"):
            await client.issue_key(60)


class TestTransportErrors:
    """Test transport failures become TrackerConnectionError."""

    @pytest.mark.asyncio
    async def test_timeout(self, client):
        """Test request timeout."""
        client.session = Mock()
        client.session.request = Mock(side_effect=asyncio.TimeoutError())

        with pytest.raises(TrackerConnectionError, match="timed out"):
            await client.whitelist_torrent(INFO_HASH)

    @pytest.mark.asyncio
    async def test_client_error_does_not_leak_token(self, client):
        """Test connection errors report verb and path only."""
        client.session = Mock()
        client.session.request = Mock(side_effect=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(TrackerConnectionError) as exc_info:
            await client.get_torrent_info(INFO_HASH)

        assert "GET /api/v1/torrent/" in str(exc_info.value)
        assert "s3cret" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_debug_log_does_not_contain_token(self, client, caplog):
        """Test the request log line carries no token."""
        client.session = _mock_session(200, "{}")

        with caplog.at_level("DEBUG", logger="tindex.tracker.api"):
            await client.whitelist_torrent(INFO_HASH)

        assert "s3cret" not in caplog.text
        assert f"POST /api/v1/whitelist/{INFO_HASH} -> 200" in caplog.text

    @pytest.mark.asyncio
    async def test_session_created_with_timeout(self, client):
        """Test the shared session carries the configured total timeout."""
        with patch("tindex.tracker.api.aiohttp.ClientSession") as mock_session_cls:
            mock_session_cls.return_value.closed = False
            mock_session_cls.return_value.close = AsyncMock()
            await client.start()
            timeout = mock_session_cls.call_args.kwargs["timeout"]
            await client.stop()

        assert timeout.total == 5.0
