"""
HTTP client for the publisher hub.

Handles registration, stream declaration, state reports and the server-push
control channel. Every call is JSON over HTTP; the control channel is a
long-lived GET response made of ``data: {...}`` lines.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import aiohttp

from .config import DEFAULT_API_PREFIX, api_url
from .exceptions import ProtocolError, TransportError
from .models import ControlCommand, StreamAssignment, StreamState

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class ControlStream:
    """
    One connection attempt on the control channel.

    Entering the context performs the request and checks the status; iterating
    yields parsed commands until the server closes the response. Leaving the
    context releases the connection, including when the reading task is
    cancelled mid-read.
    """

    def __init__(self, session: aiohttp.ClientSession, url: str, token: str):
        self._session = session
        self._url = url
        self._token = token
        self._response: Optional[aiohttp.ClientResponse] = None

    async def __aenter__(self) -> "ControlStream":
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=None)
        try:
            response = await self._session.get(self._url, params={"token": self._token}, timeout=timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"control connect failed: {str(e) or type(e).__name__}", url=self._url, cause=e)

        if not 200 <= response.status < 300:
            body = await _safe_text(response)
            response.release()
            raise ProtocolError(body or f"HTTP {response.status}", status=response.status, url=self._url)

        self._response = response
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._response is not None:
            self._response.close()
            self._response = None

    def __aiter__(self) -> AsyncIterator[ControlCommand]:
        return self._commands()

    async def _commands(self) -> AsyncIterator[ControlCommand]:
        if self._response is None:
            raise RuntimeError("control stream used outside its context")
        try:
            async for raw in self._response.content:
                command = parse_control_line(raw.decode("utf-8", errors="replace"))
                if command is not None:
                    yield command
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"control stream read failed: {e}", url=self._url, cause=e)


def parse_control_line(line: str) -> Optional[ControlCommand]:
    """
    Parse one line of the control channel.

    Lines without the ``data:`` prefix, blank payloads and malformed JSON are
    ignored and return None.
    """
    line = line.rstrip("\r\n")
    if not line.startswith(DATA_PREFIX):
        return None
    raw = line[len(DATA_PREFIX):].strip()
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.debug(f"Dropping malformed control event: {raw!r}")
        return None
    command = ControlCommand.from_payload(payload)
    if command is None:
        logger.debug(f"Dropping invalid control event: {payload!r}")
    return command


async def _safe_text(response: aiohttp.ClientResponse) -> str:
    try:
        return (await response.text()).strip()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return ""


class HubClient:
    """
    Client for the hub's publisher API.

    Owns one ``aiohttp.ClientSession`` created on first use; call ``close()``
    when the publisher shuts down.
    """

    def __init__(
        self,
        base_url: Callable[[], str],
        api_prefix: str = DEFAULT_API_PREFIX,
        request_timeout: float = 12.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the hub client.

        Args:
            base_url: Returns the current base URL; read on every call so a
                      settings change applies without rebuilding the client
            api_prefix: Path prefix of the publisher endpoints
            request_timeout: Total timeout for request/response calls in seconds
            session: Optional externally managed aiohttp session
        """
        self._base_url = base_url
        self.api_prefix = api_prefix
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    def _url(self, endpoint: str) -> str:
        return api_url(self._base_url(), self.api_prefix, endpoint)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _post_json(self, endpoint: str, body: Dict[str, Any]) -> Any:
        """
        POST a JSON body and decode the JSON answer.

        Returns:
            Any: The decoded body, or None for an empty response

        Raises:
            ConfigError: If the base URL is invalid
            TransportError: On network failure or timeout
            ProtocolError: On a non-2xx status or an undecodable body
        """
        url = self._url(endpoint)
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with self._get_session().post(url, json=body, timeout=timeout) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise ProtocolError(text.strip() or f"HTTP {resp.status}", status=resp.status, url=url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"request to {endpoint} failed: {str(e) or type(e).__name__}", url=url, cause=e)

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise ProtocolError(f"invalid JSON from {endpoint}", status=resp.status, url=url, cause=e)

    async def register(self, display_name: str, client_id: str) -> Tuple[str, str]:
        """
        Register the publisher and obtain a fresh identity.

        Each call may mint a new publisher id and token.

        Returns:
            Tuple[str, str]: ``(publisher_id, token)``
        """
        data = await self._post_json("register", {
            "display_name": display_name.strip(),
            "client_id": client_id,
        })
        try:
            publisher_id = str(data["publisher_id"])
            token = str(data["token"])
        except (KeyError, TypeError) as e:
            raise ProtocolError("register response missing publisher_id/token", cause=e)
        if not token:
            raise ProtocolError("register response has an empty token")
        logger.info(f"Registered publisher {publisher_id}")
        return publisher_id, token

    async def sync_streams(self, token: str, streams: List[Dict[str, Any]]) -> Dict[str, StreamAssignment]:
        """
        Declare the stream set and return the hub's assignments by name.

        Raises:
            TransportError: On network failure
            ProtocolError: On a non-2xx status or malformed body
        """
        data = await self._post_json("streams", {"token": token, "streams": streams})
        try:
            entries = data["streams"]
            assignments = {}
            for entry in entries:
                assignment = StreamAssignment(
                    id=str(entry["id"]),
                    name=str(entry["name"]),
                    path=str(entry.get("path") or ""),
                )
                assignments[assignment.name] = assignment
        except (KeyError, TypeError, AttributeError) as e:
            raise ProtocolError("malformed streams response", cause=e)
        logger.debug(f"Hub assigned {len(assignments)} of {len(streams)} declared streams")
        return assignments

    async def report_stream_state(self, token: str, stream_id: str, state: StreamState) -> None:
        """Best-effort state report; failures are logged and never raised."""
        if not token:
            return
        try:
            await self._post_json("state", {"token": token, "stream_id": stream_id, "state": state.value})
        except Exception as e:
            logger.warning(f"State report {stream_id}={state.value} failed: {e}")

    async def unregister(self, token: str, client_id: str) -> None:
        """Best-effort unregister; failures are logged and never raised."""
        if not token and not client_id:
            return
        try:
            await self._post_json("unregister", {"token": token, "client_id": client_id})
            logger.info("Unregistered publisher")
        except Exception as e:
            logger.warning(f"Unregister failed: {e}")

    def open_control_stream(self, token: str) -> ControlStream:
        """
        Prepare a control channel connection for ``token``.

        Use as ``async with client.open_control_stream(token) as stream``;
        the request happens on entry.

        Raises:
            ConfigError: If the base URL is invalid
        """
        return ControlStream(self._get_session(), self._url("control"), token)
