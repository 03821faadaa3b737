"""
A single, explicitly owned connection to one relay.

[RelaySession][nostra.client.session.RelaySession] runs the NIP-01 client
protocol over a [Transport][nostra.utils.transport.Transport]:

```text
DISCONNECTED --connect()--> CONNECTING --handshake ok--> CONNECTED
     ^                          |                            |
     |                     handshake fails          close() / relay closes
     +--------------------------+------- CLOSING <-----------+
```

While ``CONNECTED``:

* [publish()][nostra.client.session.RelaySession.publish] sends
  ``["EVENT", <event>]`` and returns without waiting for ``OK``.
* [subscribe()][nostra.client.session.RelaySession.subscribe] records the
  subscription and sends ``["REQ", <id>, <filter>...]``.
* [unsubscribe()][nostra.client.session.RelaySession.unsubscribe] drops the
  record and sends ``["CLOSE", <id>]``.
* [listen()][nostra.client.session.RelaySession.listen] yields decoded
  [RelayMessage][nostra.models.messages.RelayMessage] values in arrival
  order and ends with exactly one
  [DisconnectedMessage][nostra.models.messages.DisconnectedMessage].

Inbound dispatch rules:

* Malformed frames are logged and dropped; the session continues.
* Unknown tags are logged and skipped unless ``yield_unknown`` is set.
* Events whose id or signature does not verify are dropped
  (``verify_events``).
* Events on a tracked subscription that match none of its filters are
  dropped (``enforce_filters``).
* Events on an id that is not tracked (never opened, or closed while the
  relay was still sending) are delivered with ``subscription=None``.
* ``CLOSED`` from the relay removes the local record.

Note:
    One ``asyncio.Lock`` guards the subscription table across
    subscribe, unsubscribe and inbound dispatch; it is never held across a
    send, so a stalled send does not block dispatch. A second lock
    serializes outbound frames so they reach the wire in call order.
    Nothing is retried: a failed handshake or send raises
    [RelayConnectionError][nostra.core.exceptions.RelayConnectionError]. A
    failed send also ends the session, and an active ``listen()`` finishes
    with ``DisconnectedMessage(clean=False)``. Reconnection is left to the
    caller.

See Also:
    [SessionConfig][nostra.client.configs.SessionConfig]: Timeouts and
        dispatch policy.
    [nostra.models.messages][]: Wire encoding and decoding.

Examples:
    ```python
    async with RelaySession("wss://relay.damus.io") as session:
        await session.subscribe("all", Filter(kinds=[1], limit=10))
        async for message in session.listen():
            if isinstance(message, EventMessage):
                print(message.event.content)
    ```
"""

from __future__ import annotations

import asyncio
import dataclasses
from enum import StrEnum
from typing import TYPE_CHECKING, Self

from nostra.core.exceptions import (
    DuplicateSubscriptionError,
    MalformedFrameError,
    RelayConnectionError,
)
from nostra.core.logger import Logger
from nostra.models.messages import (
    ClosedMessage,
    DisconnectedMessage,
    EoseMessage,
    EventMessage,
    UnknownMessage,
    decode_relay_message,
    encode_close,
    encode_event,
    encode_req,
)
from nostra.models.relay import Relay
from nostra.models.subscription import Subscription, validate_subscription_id
from nostra.utils.transport import WebSocketTransport

from .configs import SessionConfig


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable
    from types import TracebackType

    from nostra.models.event import Event
    from nostra.models.filter import Filter
    from nostra.models.messages import RelayMessage
    from nostra.utils.transport import Connection, Transport


CLOSED_BY_CLIENT = "closed by client"
CLOSED_BY_RELAY = "closed by relay"


class SessionState(StrEnum):
    """Lifecycle state of a [RelaySession][nostra.client.session.RelaySession]."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class RelaySession:
    """Protocol session with a single relay.

    Args:
        relay: Relay URL or [Relay][nostra.models.relay.Relay].
        config: Session behaviour; defaults to
            [SessionConfig()][nostra.client.configs.SessionConfig].
        transport: Connection factory; defaults to a
            [WebSocketTransport][nostra.utils.transport.WebSocketTransport]
            built from *config*.

    Raises:
        ValueError: If *relay* is not a valid ``ws://``/``wss://`` URL.
    """

    def __init__(
        self,
        relay: Relay | str,
        config: SessionConfig | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        self._relay = relay if isinstance(relay, Relay) else Relay(relay)
        self._config = config or SessionConfig()
        self._transport = transport or WebSocketTransport(
            connect_timeout=self._config.connect_timeout,
            close_timeout=self._config.close_timeout,
            heartbeat=self._config.heartbeat,
            max_message_size=self._config.max_message_size,
            verify_ssl=self._config.verify_ssl,
        )
        self._connection: Connection | None = None
        self._state = SessionState.DISCONNECTED
        self._subscriptions: dict[str, Subscription] = {}
        self._subscriptions_lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()
        self._listening = False
        self._last_disconnect: tuple[bool, str] = (True, CLOSED_BY_CLIENT)
        self._logger = Logger("client.session").bind(relay=self._relay.url)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def relay(self) -> Relay:
        return self._relay

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def subscriptions(self) -> dict[str, Subscription]:
        """Snapshot of the currently open subscriptions, keyed by id."""
        return dict(self._subscriptions)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> Self:
        """Perform the transport handshake.

        Raises:
            RelayConnectionError: If the session is not ``DISCONNECTED``, or
                the handshake fails or exceeds ``connect_timeout``. The
                session is left ``DISCONNECTED``.
        """
        if self._state is not SessionState.DISCONNECTED:
            raise RelayConnectionError(f"cannot connect: session is {self._state}")

        self._state = SessionState.CONNECTING
        self._logger.info("connecting")

        try:
            self._connection = await asyncio.wait_for(
                self._transport.connect(self._relay.url),
                timeout=self._config.connect_timeout,
            )
        except TimeoutError:
            self._state = SessionState.DISCONNECTED
            self._logger.warning("connect_failed", error="handshake timeout")
            raise RelayConnectionError(f"connection timeout: {self._relay.url}") from None
        except RelayConnectionError as e:
            self._state = SessionState.DISCONNECTED
            self._logger.warning("connect_failed", error=str(e))
            raise
        except BaseException:
            self._state = SessionState.DISCONNECTED
            raise

        self._state = SessionState.CONNECTED
        self._logger.info("connected")
        return self

    async def close(self) -> None:
        """Close the connection and forget all subscriptions.

        Ends an active [listen()][nostra.client.session.RelaySession.listen]
        promptly. Idempotent.
        """
        if self._state is not SessionState.CONNECTED:
            return
        await self._shutdown(CLOSED_BY_CLIENT)

    async def _shutdown(self, reason: str, *, clean: bool = True) -> None:
        self._state = SessionState.CLOSING
        self._last_disconnect = (clean, reason)
        connection, self._connection = self._connection, None
        try:
            if connection is not None:
                await connection.close()
        finally:
            self._subscriptions.clear()
            self._state = SessionState.DISCONNECTED
            self._logger.info("disconnected", clean=clean, reason=reason)

    async def __aenter__(self) -> Self:
        if self._state is SessionState.DISCONNECTED:
            await self.connect()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    def _require_connected(self) -> Connection:
        if self._state is not SessionState.CONNECTED or self._connection is None:
            raise RelayConnectionError(f"session is {self._state}, not connected")
        return self._connection

    async def _send(self, text: str) -> None:
        """Send one frame; a transport failure ends the session."""
        async with self._send_lock:
            connection = self._require_connected()
            try:
                await connection.send(text)
            except RelayConnectionError as e:
                self._logger.warning("send_failed", error=str(e))
                if self._state is SessionState.CONNECTED and self._connection is connection:
                    await self._shutdown(str(e), clean=False)
                raise

    async def publish(self, event: Event) -> None:
        """Send ``["EVENT", <event>]``.

        The relay's ``OK`` arrives later through
        [listen()][nostra.client.session.RelaySession.listen].

        Raises:
            InvalidEventError: If *event* does not verify. Nothing is sent.
            RelayConnectionError: If the session is not connected or the
                send fails.
        """
        self._require_connected()
        event.ensure_valid()
        await self._send(encode_event(event))
        self._logger.info("event_published", event_id=event.id, kind=event.kind)

    async def subscribe(
        self,
        subscription_id: str,
        filters: Filter | Iterable[Filter],
    ) -> Subscription:
        """Open a subscription and send ``["REQ", <id>, <filter>...]``.

        Args:
            subscription_id: Id unique among this session's open
                subscriptions.
            filters: One [Filter][nostra.models.filter.Filter] or several,
                combined with OR.

        Returns:
            The recorded [Subscription][nostra.models.subscription.Subscription].

        Raises:
            DuplicateSubscriptionError: If *subscription_id* is already open.
            RelayConnectionError: If the session is not connected or the
                send fails. The record is rolled back.
            TypeError, ValueError: If the id or filters are invalid.
        """
        subscription = Subscription.create(subscription_id, filters)
        self._require_connected()

        async with self._subscriptions_lock:
            if subscription_id in self._subscriptions:
                raise DuplicateSubscriptionError(subscription_id)
            self._subscriptions[subscription_id] = subscription

        # No await between releasing the table lock and queueing on the send
        # lock, so frames still reach the wire in call order.
        try:
            await self._send(encode_req(subscription))
        except BaseException:
            async with self._subscriptions_lock:
                if self._subscriptions.get(subscription_id) is subscription:
                    del self._subscriptions[subscription_id]
            raise

        self._logger.info(
            "subscription_opened",
            subscription_id=subscription_id,
            filters=len(subscription.filters),
        )
        return subscription

    async def unsubscribe(self, subscription_id: str) -> None:
        """Forget the subscription locally and send ``["CLOSE", <id>]``.

        The record is removed whether or not the relay acknowledges. Events
        the relay already sent for this id are delivered untracked.

        Raises:
            RelayConnectionError: If the session is not connected or the
                send fails.
        """
        validate_subscription_id(subscription_id)
        self._require_connected()

        async with self._subscriptions_lock:
            removed = self._subscriptions.pop(subscription_id, None)
        await self._send(encode_close(subscription_id))

        self._logger.info(
            "subscription_closed",
            subscription_id=subscription_id,
            by="client",
            tracked=removed is not None,
        )

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def listen(self) -> AsyncIterator[RelayMessage]:
        """Yield inbound messages until the connection ends.

        The last message is always a single
        [DisconnectedMessage][nostra.models.messages.DisconnectedMessage];
        by then the session is ``DISCONNECTED``. Breaking out of the loop
        early leaves the session connected.

        Raises:
            RelayConnectionError: If the session is not connected.
            RuntimeError: If another ``listen()`` is already consuming this
                session.
        """
        connection = self._require_connected()
        if self._listening:
            raise RuntimeError("listen() is already running on this session")
        self._listening = True

        clean, reason = True, CLOSED_BY_RELAY
        try:
            async for text in connection.receive():
                message = await self._dispatch(text)
                if message is not None:
                    yield message
        except RelayConnectionError as e:
            clean, reason = False, str(e)
        finally:
            self._listening = False

        if self._state is SessionState.CONNECTED and self._connection is connection:
            await self._shutdown(reason, clean=clean)
        else:
            clean, reason = self._last_disconnect

        yield DisconnectedMessage(clean, reason)

    async def _dispatch(self, text: str) -> RelayMessage | None:
        """Decode one frame and apply the dispatch rules; ``None`` drops it."""
        try:
            message = decode_relay_message(text)
        except MalformedFrameError as e:
            self._logger.warning("malformed_frame", error=str(e), frame=text)
            return None

        if isinstance(message, UnknownMessage):
            self._logger.warning("unknown_message", type=message.type)
            return message if self._config.yield_unknown else None

        if not isinstance(message, (EventMessage, EoseMessage, ClosedMessage)):
            return message

        async with self._subscriptions_lock:
            subscription = self._subscriptions.get(message.subscription_id)
            if isinstance(message, ClosedMessage) and subscription is not None:
                del self._subscriptions[message.subscription_id]

        if isinstance(message, ClosedMessage) and subscription is not None:
            self._logger.info(
                "subscription_closed",
                subscription_id=message.subscription_id,
                by="relay",
                message=message.message,
            )

        if isinstance(message, EventMessage):
            event = message.event
            if self._config.verify_events and not event.verify():
                self._logger.warning(
                    "invalid_event",
                    subscription_id=message.subscription_id,
                    event_id=event.id,
                )
                return None
            if subscription is None:
                self._logger.debug(
                    "untracked_subscription",
                    subscription_id=message.subscription_id,
                    event_id=event.id,
                )
            elif self._config.enforce_filters and not subscription.matches(event):
                self._logger.debug(
                    "filter_mismatch",
                    subscription_id=message.subscription_id,
                    event_id=event.id,
                )
                return None

        return dataclasses.replace(message, subscription=subscription)


async def connect(
    url: Relay | str,
    config: SessionConfig | None = None,
    *,
    transport: Transport | None = None,
) -> RelaySession:
    """Create a [RelaySession][nostra.client.session.RelaySession] and connect it.

    Raises:
        RelayConnectionError: If the handshake fails.
    """
    session = RelaySession(url, config, transport=transport)
    return await session.connect()
