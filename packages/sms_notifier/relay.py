"""Relay collaborator: the push-notification service that forwards phone SMS.

:class:`Relay` is what :class:`~sms_notifier.stream_client.StreamClient`
depends on. :class:`PushbulletRelay` is the production implementation:

- ``stream()`` opens the realtime websocket and yields raw text frames.
- ``fetch_recent()`` pulls the newest pushes from the REST history endpoint
  after a ``tickle`` frame.
- ``identify()`` fetches the account profile; used as a credential check.

All I/O failures surface as :class:`~sms_notifier.errors.ConnectivityError`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosedError, InvalidStatus, WebSocketException

from .errors import ConfigurationError, ConnectivityError
from .logging_setup import get_logger

_logger = get_logger("sms_notifier.relay")

DEFAULT_STREAM_URL = "wss://stream.pushbullet.com/websocket/"
DEFAULT_API_URL = "https://api.pushbullet.com/v2"


class Relay(Protocol):
    def stream(self) -> AbstractAsyncContextManager[AsyncIterator[str]]: ...

    async def fetch_recent(
        self, *, limit: int, modified_after: float
    ) -> list[Mapping[str, Any]]: ...

    async def identify(self) -> Mapping[str, Any]: ...


class PushbulletRelay:
    """Pushbullet-backed :class:`Relay`.

    Parameters
    ----------
    api_key:
        Access token. Required.
    stream_url, api_url:
        Endpoints; overridable for staging or tests.
    timeout:
        Seconds for REST calls and the websocket opening handshake.
    transport:
        Optional httpx transport for the REST calls.
    """

    def __init__(
        self,
        api_key: str,
        *,
        stream_url: str = DEFAULT_STREAM_URL,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError("relay API key is required")
        self._api_key = api_key.strip()
        self._stream_url = stream_url.rstrip("/") + "/"
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    # ---- Stream ------------------------------------------------------------

    @asynccontextmanager
    async def stream(self) -> AsyncIterator[AsyncIterator[str]]:
        url = self._stream_url + self._api_key
        try:
            ws = await connect(url, open_timeout=self._timeout)
        except InvalidStatus as e:
            status = e.response.status_code
            raise ConnectivityError(
                f"relay rejected stream handshake (HTTP {status})", status_code=status
            ) from e
        except (OSError, TimeoutError, WebSocketException) as e:
            raise ConnectivityError(f"relay stream unreachable: {e}") from e

        _logger.debug("relay stream open")
        try:
            yield self._frames(ws)
        finally:
            await ws.close()
            _logger.debug("relay stream closed")

    @staticmethod
    async def _frames(ws: ClientConnection) -> AsyncIterator[str]:
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosedError as e:
            raise ConnectivityError(f"relay stream dropped: {e}") from e

    # ---- REST --------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {"Access-Token": self._api_key, "Accept": "application/json"}

    async def _get(self, path: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self._api_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(url, headers=self._headers(), params=params)
        except httpx.RequestError as e:
            raise ConnectivityError(f"relay request failed: {e}") from e

        if resp.status_code in (401, 403):
            raise ConnectivityError("relay rejected the API key", status_code=resp.status_code)
        if resp.status_code != 200:
            _logger.warning("relay %s returned status=%s", path, resp.status_code)
            raise ConnectivityError(
                f"relay {path} returned HTTP {resp.status_code}", status_code=resp.status_code
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ConnectivityError(f"relay {path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ConnectivityError(f"relay {path} returned unexpected payload")
        return data

    async def fetch_recent(
        self, *, limit: int, modified_after: float
    ) -> list[Mapping[str, Any]]:
        data = await self._get("/pushes", {"limit": limit, "modified_after": modified_after})
        pushes = data.get("pushes") or []
        return [p for p in pushes if isinstance(p, Mapping)]

    async def identify(self) -> Mapping[str, Any]:
        return await self._get("/users/me")


__all__ = ["Relay", "PushbulletRelay", "DEFAULT_STREAM_URL", "DEFAULT_API_URL"]
