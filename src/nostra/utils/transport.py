"""WebSocket transport for relay sessions.

The session core only needs a bidirectional text channel, described by two
small abstract classes:

* [Transport][nostra.utils.transport.Transport] opens a
  [Connection][nostra.utils.transport.Connection] to a URL.
* [Connection][nostra.utils.transport.Connection] sends text frames, yields
  received text frames until the peer closes, and closes.

[WebSocketTransport][nostra.utils.transport.WebSocketTransport] is the
default implementation on ``aiohttp``. Tests substitute an in-memory
transport with the same interface.

Note:
    Certificate verification is on by default. ``verify_ssl=False`` builds an
    ``ssl.SSLContext`` with ``CERT_NONE`` for relays with self-signed or
    expired certificates, which makes the connection open to
    man-in-the-middle attacks.

See Also:
    [RelaySession][nostra.client.session.RelaySession]: The consumer of
        this interface.

Examples:
    ```python
    transport = WebSocketTransport(connect_timeout=5.0, heartbeat=30.0)
    connection = await transport.connect("wss://relay.damus.io")
    await connection.send('["REQ","all",{"limit":1}]')
    async for text in connection.receive():
        print(text)
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Final

import aiohttp

from nostra.core.exceptions import RelayConnectionError


if TYPE_CHECKING:
    from collections.abc import AsyncIterator


DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
DEFAULT_CLOSE_TIMEOUT: Final[float] = 5.0
DEFAULT_MAX_MESSAGE_SIZE: Final[int] = 4 * 1024 * 1024


logger = logging.getLogger("utils.transport")


class Connection(ABC):
    """An open, bidirectional text channel to a relay."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Send one text frame.

        Raises:
            RelayConnectionError: If the channel is closed or the write fails.
        """

    @abstractmethod
    def receive(self) -> AsyncIterator[str]:
        """Yield received text frames in arrival order.

        The iterator ends normally when the channel is closed by either side
        and raises
        [RelayConnectionError][nostra.core.exceptions.RelayConnectionError]
        when it fails.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Idempotent, never raises."""

    @property
    @abstractmethod
    def closed(self) -> bool: ...


class Transport(ABC):
    """Factory of [Connection][nostra.utils.transport.Connection] objects."""

    @abstractmethod
    async def connect(self, url: str) -> Connection:
        """Open a connection to *url*.

        Raises:
            RelayConnectionError: If the handshake fails or times out.
        """


class WebSocketConnection(Connection):
    """[Connection][nostra.utils.transport.Connection] over an aiohttp WebSocket.

    Owns both the WebSocket and the ``aiohttp.ClientSession`` it was opened
    with; closing the connection closes both.
    """

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        session: aiohttp.ClientSession,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        self._ws = ws
        self._session = session
        self._close_timeout = close_timeout

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send(self, text: str) -> None:
        if self._ws.closed:
            raise RelayConnectionError("connection is closed")
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, ConnectionError) as e:
            raise RelayConnectionError(f"send failed: {e}") from e

    async def receive(self) -> AsyncIterator[str]:
        while True:
            msg = await self._ws.receive()

            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                try:
                    yield msg.data.decode("utf-8")
                except UnicodeDecodeError:
                    logger.debug("binary_frame_dropped size=%d", len(msg.data))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise RelayConnectionError(f"websocket error: {self._ws.exception()}")
            else:
                # CLOSE, CLOSING, CLOSED
                return

    async def close(self) -> None:
        # aiohttp can raise ClientError, ServerDisconnectedError, etc. during
        # close; teardown must not fail.
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._ws.close(), timeout=self._close_timeout)
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._session.close(), timeout=self._close_timeout)


class WebSocketTransport(Transport):
    """aiohttp ``ws_connect`` transport.

    Args:
        connect_timeout: Seconds allowed for TCP, TLS and the WebSocket
            handshake together.
        close_timeout: Seconds allowed for the closing handshake.
        heartbeat: Interval in seconds for WebSocket pings, or ``None``.
        max_message_size: Largest inbound frame accepted, in bytes
            (``0`` disables the limit).
        verify_ssl: Verify the relay's TLS certificate.
    """

    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
        heartbeat: float | None = None,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        *,
        verify_ssl: bool = True,
    ) -> None:
        self._connect_timeout = connect_timeout
        self._close_timeout = close_timeout
        self._heartbeat = heartbeat
        self._max_message_size = max_message_size
        self._verify_ssl = verify_ssl

    def _connector(self) -> aiohttp.TCPConnector | None:
        if self._verify_ssl:
            return None
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        return aiohttp.TCPConnector(ssl=ssl_context)

    async def connect(self, url: str) -> WebSocketConnection:
        client_timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._connect_timeout)
        session = aiohttp.ClientSession(connector=self._connector(), timeout=client_timeout)

        try:
            ws = await asyncio.wait_for(
                session.ws_connect(
                    url,
                    heartbeat=self._heartbeat,
                    max_msg_size=self._max_message_size,
                    autoping=True,
                ),
                timeout=self._connect_timeout,
            )
        except TimeoutError:
            await session.close()
            logger.debug("ws_connect_timeout url=%s", url)
            raise RelayConnectionError(f"connection timeout: {url}") from None
        except asyncio.CancelledError:
            await session.close()
            logger.debug("ws_connect_cancelled url=%s", url)
            raise
        except (aiohttp.ClientError, ssl.SSLError, OSError) as e:
            await session.close()
            logger.debug("ws_connect_failed url=%s error=%s", url, str(e))
            raise RelayConnectionError(f"connection failed: {e}") from e

        return WebSocketConnection(ws, session, close_timeout=self._close_timeout)
