"""
Unit tests for client.session module.

Tests:
- Connection lifecycle and state transitions
- publish/subscribe/unsubscribe frames and preconditions
- Inbound dispatch: tracked, untracked, malformed, unknown, invalid events
- Termination with exactly one DisconnectedMessage
"""

import asyncio
import dataclasses

import pytest

from nostra.client.configs import SessionConfig
from nostra.client.session import (
    CLOSED_BY_CLIENT,
    CLOSED_BY_RELAY,
    RelaySession,
    SessionState,
    connect,
)
from nostra.core.exceptions import (
    DuplicateSubscriptionError,
    InvalidEventError,
    RelayConnectionError,
)
from nostra.models.event import Event
from nostra.models.filter import Filter
from nostra.models.messages import (
    ClosedMessage,
    DisconnectedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    UnknownMessage,
)
from nostra.models.relay import Relay


RELAY_URL = "wss://relay.example.com"


@pytest.fixture
async def session(fake_transport):
    session = RelaySession(RELAY_URL, transport=fake_transport)
    await session.connect()
    yield session
    await session.close()


def _session_with(fake_transport, **config) -> RelaySession:
    return RelaySession(RELAY_URL, SessionConfig(**config), transport=fake_transport)


async def _drain(session: RelaySession) -> list:
    return [message async for message in session.listen()]


def _event_frame(subscription_id: str, event: Event) -> list:
    return ["EVENT", subscription_id, event.to_dict()]


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """connect()/close() and state transitions."""

    async def test_initial_state(self, fake_transport):
        session = RelaySession(RELAY_URL, transport=fake_transport)
        assert session.state is SessionState.DISCONNECTED
        assert session.is_connected is False
        assert session.subscriptions == {}
        assert session.relay == Relay(RELAY_URL)

    async def test_relay_url_normalized(self, fake_transport):
        session = RelaySession("WSS://Relay.Example.com/", transport=fake_transport)
        await session.connect()
        assert fake_transport.urls == [RELAY_URL]

    def test_invalid_relay_url(self, fake_transport):
        with pytest.raises(ValueError):
            RelaySession("https://relay.example.com", transport=fake_transport)

    async def test_connect(self, fake_transport):
        session = RelaySession(RELAY_URL, transport=fake_transport)
        assert await session.connect() is session
        assert session.state is SessionState.CONNECTED
        assert session.is_connected

    async def test_connect_twice_rejected(self, session):
        with pytest.raises(RelayConnectionError, match="cannot connect"):
            await session.connect()

    async def test_connect_failure(self, fake_transport):
        fake_transport.error = RelayConnectionError("connection failed: refused")
        session = RelaySession(RELAY_URL, transport=fake_transport)
        with pytest.raises(RelayConnectionError, match="refused"):
            await session.connect()
        assert session.state is SessionState.DISCONNECTED

    async def test_connect_timeout(self, fake_transport):
        fake_transport.delay = 1.0
        session = _session_with(fake_transport, connect_timeout=0.05)
        with pytest.raises(RelayConnectionError, match="timeout"):
            await session.connect()
        assert session.state is SessionState.DISCONNECTED

    async def test_reconnect_after_failure(self, fake_transport):
        fake_transport.error = RelayConnectionError("down")
        session = RelaySession(RELAY_URL, transport=fake_transport)
        with pytest.raises(RelayConnectionError):
            await session.connect()
        fake_transport.error = None
        await session.connect()
        assert session.is_connected

    async def test_close(self, session, fake_connection):
        await session.subscribe("all", Filter())
        await session.close()
        assert session.state is SessionState.DISCONNECTED
        assert session.subscriptions == {}
        assert fake_connection.closed

    async def test_close_idempotent(self, session, fake_connection):
        await session.close()
        await session.close()
        assert fake_connection.close_calls == 1

    async def test_close_never_connected(self, fake_transport):
        await RelaySession(RELAY_URL, transport=fake_transport).close()

    async def test_context_manager(self, fake_transport, fake_connection):
        async with RelaySession(RELAY_URL, transport=fake_transport) as session:
            assert session.is_connected
        assert session.state is SessionState.DISCONNECTED
        assert fake_connection.closed

    async def test_module_connect(self, fake_transport):
        session = await connect(RELAY_URL, transport=fake_transport)
        try:
            assert session.is_connected
        finally:
            await session.close()

    async def test_default_transport_uses_config(self):
        session = RelaySession(RELAY_URL, SessionConfig(connect_timeout=3.0))
        assert session.config.connect_timeout == 3.0


# =============================================================================
# Outbound
# =============================================================================


class TestNotConnected:
    """Operations outside CONNECTED raise RelayConnectionError."""

    @pytest.fixture
    def idle(self, fake_transport):
        return RelaySession(RELAY_URL, transport=fake_transport)

    async def test_publish(self, idle, sample_event):
        with pytest.raises(RelayConnectionError):
            await idle.publish(sample_event)

    async def test_subscribe(self, idle):
        with pytest.raises(RelayConnectionError):
            await idle.subscribe("all", Filter())
        assert idle.subscriptions == {}

    async def test_unsubscribe(self, idle):
        with pytest.raises(RelayConnectionError):
            await idle.unsubscribe("all")

    async def test_listen(self, idle):
        with pytest.raises(RelayConnectionError):
            await anext(idle.listen())

    async def test_after_close(self, session, sample_event):
        await session.close()
        with pytest.raises(RelayConnectionError):
            await session.publish(sample_event)


class TestPublish:
    """publish()."""

    async def test_frame(self, session, fake_connection, sample_event):
        await session.publish(sample_event)
        assert fake_connection.sent_frames() == [["EVENT", sample_event.to_dict()]]

    async def test_invalid_event_not_sent(self, session, fake_connection, sample_event):
        tampered = dataclasses.replace(sample_event, content="tampered")
        with pytest.raises(InvalidEventError):
            await session.publish(tampered)
        assert fake_connection.sent == []

    async def test_send_failure_ends_session(self, session, fake_connection, sample_event):
        fake_connection.fail_send = True
        with pytest.raises(RelayConnectionError, match="send failed"):
            await session.publish(sample_event)
        assert session.state is SessionState.DISCONNECTED
        assert fake_connection.closed


class TestSubscribe:
    """subscribe() and unsubscribe()."""

    async def test_req_frame(self, session, fake_connection):
        subscription = await session.subscribe("all", Filter(since=1_700_000_000))
        assert fake_connection.sent_frames() == [["REQ", "all", {"since": 1_700_000_000}]]
        assert session.subscriptions == {"all": subscription}

    async def test_multiple_filters(self, session, fake_connection):
        await session.subscribe("x", [Filter(kinds=[1]), Filter(kinds=[7])])
        assert fake_connection.sent_frames() == [["REQ", "x", {"kinds": [1]}, {"kinds": [7]}]]

    async def test_duplicate(self, session, fake_connection):
        await session.subscribe("all", Filter())
        with pytest.raises(DuplicateSubscriptionError) as exc_info:
            await session.subscribe("all", Filter(kinds=[1]))
        assert exc_info.value.subscription_id == "all"
        assert len(fake_connection.sent) == 1
        assert session.subscriptions["all"].filters == (Filter(),)

    async def test_invalid_id(self, session, fake_connection):
        with pytest.raises(ValueError):
            await session.subscribe("", Filter())
        assert fake_connection.sent == []

    async def test_rollback_on_send_failure(self, session, fake_connection):
        fake_connection.fail_send = True
        with pytest.raises(RelayConnectionError):
            await session.subscribe("all", Filter())
        assert session.subscriptions == {}

    async def test_rollback_on_cancelled_send(self, session, fake_connection):
        fake_connection.gate = asyncio.Event()
        task = asyncio.create_task(session.subscribe("all", Filter()))
        await asyncio.sleep(0)
        assert "all" in session.subscriptions

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.subscriptions == {}
        assert session.is_connected
        assert fake_connection.sent == []

    async def test_unsubscribe(self, session, fake_connection):
        await session.subscribe("all", Filter())
        await session.unsubscribe("all")
        assert fake_connection.sent_frames()[-1] == ["CLOSE", "all"]
        assert session.subscriptions == {}

    async def test_unsubscribe_untracked_still_sends(self, session, fake_connection):
        await session.unsubscribe("never-opened")
        assert fake_connection.sent_frames() == [["CLOSE", "never-opened"]]

    async def test_resubscribe_after_unsubscribe(self, session):
        await session.subscribe("all", Filter())
        await session.unsubscribe("all")
        await session.subscribe("all", Filter(kinds=[1]))
        assert session.subscriptions["all"].filters == (Filter(kinds=[1]),)

    async def test_subscriptions_is_snapshot(self, session):
        await session.subscribe("all", Filter())
        snapshot = session.subscriptions
        snapshot.clear()
        assert "all" in session.subscriptions

    async def test_frames_in_call_order(self, session, fake_connection, sample_event):
        await asyncio.gather(
            session.subscribe("a", Filter()),
            session.publish(sample_event),
            session.subscribe("b", Filter()),
            session.unsubscribe("a"),
        )
        frames = fake_connection.sent_frames()
        assert [frame[0] for frame in frames] == ["REQ", "EVENT", "REQ", "CLOSE"]
        assert [frames[0][1], frames[2][1], frames[3][1]] == ["a", "b", "a"]


class TestPendingSends:
    """Inbound dispatch proceeds while an outbound send is stalled."""

    async def test_dispatch_during_pending_unsubscribe(self, session, fake_connection):
        await session.subscribe("x", Filter())
        fake_connection.gate = asyncio.Event()
        pending = asyncio.create_task(session.unsubscribe("x"))
        await asyncio.sleep(0)

        fake_connection.feed(["EOSE", "x"])
        message = await asyncio.wait_for(anext(session.listen()), timeout=1.0)
        assert message == EoseMessage("x")

        fake_connection.gate.set()
        await pending
        assert fake_connection.sent_frames()[-1] == ["CLOSE", "x"]

    async def test_dispatch_during_pending_publish(
        self, session, fake_connection, sample_event, make_event
    ):
        await session.subscribe("all", Filter())
        fake_connection.gate = asyncio.Event()
        pending = asyncio.create_task(session.publish(sample_event))
        queued = asyncio.create_task(session.subscribe("later", Filter()))
        await asyncio.sleep(0)

        incoming = make_event("while sending")
        fake_connection.feed(["EVENT", "all", incoming.to_dict()])
        message = await asyncio.wait_for(anext(session.listen()), timeout=1.0)
        assert isinstance(message, EventMessage)
        assert message.event == incoming
        assert message.is_tracked

        fake_connection.gate.set()
        await asyncio.gather(pending, queued)
        assert [frame[0] for frame in fake_connection.sent_frames()] == ["REQ", "EVENT", "REQ"]


# =============================================================================
# Inbound
# =============================================================================


class TestListen:
    """listen() dispatch."""

    async def test_event_on_tracked_subscription(self, session, fake_connection, sample_event):
        await session.subscribe("all", Filter(since=0))
        fake_connection.feed(_event_frame("all", sample_event))
        fake_connection.end()

        messages = await _drain(session)
        assert len(messages) == 2
        message = messages[0]
        assert isinstance(message, EventMessage)
        assert message.subscription_id == "all"
        assert message.event == sample_event
        assert message.event.to_dict() == sample_event.to_dict()
        assert message.is_tracked
        assert message.subscription is not None
        assert message.subscription.id == "all"

    async def test_event_before_unsubscribe_is_tracked(self, session, fake_connection, make_event):
        await session.subscribe("x", Filter())
        fake_connection.feed(_event_frame("x", make_event("first")))
        messages = session.listen()

        first = await anext(messages)
        assert isinstance(first, EventMessage)
        assert first.is_tracked

        await session.unsubscribe("x")
        fake_connection.feed(_event_frame("x", make_event("second")))
        fake_connection.end()

        second = await anext(messages)
        assert isinstance(second, EventMessage)
        assert second.event.content == "second"
        assert second.subscription is None
        assert isinstance(await anext(messages), DisconnectedMessage)

    async def test_event_after_unsubscribe_is_untracked(self, session, fake_connection, sample_event):
        await session.subscribe("x", Filter())
        await session.unsubscribe("x")
        fake_connection.feed(_event_frame("x", sample_event))
        fake_connection.end()

        messages = await _drain(session)
        assert isinstance(messages[0], EventMessage)
        assert messages[0].subscription is None
        assert messages[0].event == sample_event

    async def test_event_on_never_opened_id(self, session, fake_connection, sample_event):
        fake_connection.feed(_event_frame("unknown-id", sample_event))
        fake_connection.end()

        messages = await _drain(session)
        assert messages[0] == EventMessage("unknown-id", sample_event)
        assert messages[0].is_tracked is False

    async def test_malformed_frames_dropped(self, session, fake_connection):
        fake_connection.feed("not json", '["EVENT","all"]', "[]", '["NOTICE","still here"]')
        fake_connection.end()

        messages = await _drain(session)
        assert messages == [NoticeMessage("still here"), DisconnectedMessage(True, CLOSED_BY_RELAY)]

    async def test_hostile_json_dropped(self, session, fake_connection):
        fake_connection.feed(
            "[" * 100_000 + "]" * 100_000,
            '["OK","x",true,"m",' + "9" * 5000 + "]",
            '["NOTICE","still here"]',
        )
        fake_connection.end()

        messages = await _drain(session)
        assert messages == [NoticeMessage("still here"), DisconnectedMessage(True, CLOSED_BY_RELAY)]

    async def test_unknown_skipped_by_default(self, session, fake_connection):
        fake_connection.feed('["AUTH","challenge"]', '["NOTICE","after"]')
        fake_connection.end()

        messages = await _drain(session)
        assert messages[0] == NoticeMessage("after")

    async def test_unknown_yielded_when_enabled(self, fake_transport, fake_connection):
        session = _session_with(fake_transport, yield_unknown=True)
        await session.connect()
        fake_connection.feed('["AUTH","challenge"]')
        fake_connection.end()

        messages = await _drain(session)
        assert messages[0] == UnknownMessage("AUTH", ("challenge",))

    async def test_invalid_signature_dropped(self, session, fake_connection, sample_event):
        await session.subscribe("all", Filter())
        tampered = {**sample_event.to_dict(), "content": "tampered"}
        fake_connection.feed(["EVENT", "all", tampered], _event_frame("all", sample_event))
        fake_connection.end()

        messages = await _drain(session)
        events = [m for m in messages if isinstance(m, EventMessage)]
        assert [m.event for m in events] == [sample_event]

    async def test_invalid_signature_kept_without_verification(
        self, fake_transport, fake_connection, sample_event
    ):
        session = _session_with(fake_transport, verify_events=False)
        await session.connect()
        tampered = {**sample_event.to_dict(), "content": "tampered"}
        fake_connection.feed(["EVENT", "all", tampered])
        fake_connection.end()

        messages = await _drain(session)
        assert isinstance(messages[0], EventMessage)
        assert messages[0].event.content == "tampered"

    async def test_filter_mismatch_dropped(self, session, fake_connection, make_event):
        await session.subscribe("reactions", Filter(kinds=[7]))
        fake_connection.feed(
            _event_frame("reactions", make_event(kind=1)),
            _event_frame("reactions", make_event(kind=7, content="+")),
        )
        fake_connection.end()

        messages = await _drain(session)
        events = [m for m in messages if isinstance(m, EventMessage)]
        assert [m.event.kind for m in events] == [7]

    async def test_filter_mismatch_kept_when_not_enforced(
        self, fake_transport, fake_connection, make_event
    ):
        session = _session_with(fake_transport, enforce_filters=False)
        await session.connect()
        await session.subscribe("reactions", Filter(kinds=[7]))
        fake_connection.feed(_event_frame("reactions", make_event(kind=1)))
        fake_connection.end()

        messages = await _drain(session)
        assert isinstance(messages[0], EventMessage)
        assert messages[0].is_tracked

    async def test_ok_and_eose(self, session, fake_connection, sample_event):
        await session.subscribe("all", Filter())
        fake_connection.feed(["OK", sample_event.id, True, ""], ["EOSE", "all"])
        fake_connection.end()

        messages = await _drain(session)
        assert messages[0] == OkMessage(sample_event.id, True, "")
        assert messages[1] == EoseMessage("all")
        assert messages[1].subscription is not None

    async def test_closed_removes_record(self, session, fake_connection):
        await session.subscribe("all", Filter())
        fake_connection.feed('["CLOSED","all","error: shutting down"]')
        messages = session.listen()

        closed = await anext(messages)
        assert isinstance(closed, ClosedMessage)
        assert closed.prefix == "error"
        assert closed.subscription is not None
        assert session.subscriptions == {}

        fake_connection.end()
        assert isinstance(await anext(messages), DisconnectedMessage)

    async def test_arrival_order(self, session, fake_connection, make_event):
        await session.subscribe("all", Filter())
        fake_connection.feed(*[_event_frame("all", make_event(str(i))) for i in range(5)])
        fake_connection.end()

        messages = await _drain(session)
        assert [m.event.content for m in messages[:-1]] == ["0", "1", "2", "3", "4"]


class TestTermination:
    """listen() ends with exactly one DisconnectedMessage."""

    async def test_relay_closes(self, session, fake_connection):
        await session.subscribe("all", Filter())
        fake_connection.end()

        messages = await _drain(session)
        assert messages == [DisconnectedMessage(True, CLOSED_BY_RELAY)]
        assert session.state is SessionState.DISCONNECTED
        assert session.subscriptions == {}

    async def test_connection_fails(self, session, fake_connection):
        fake_connection.fail("connection reset by peer")

        messages = await _drain(session)
        assert messages == [DisconnectedMessage(False, "connection reset by peer")]
        assert session.state is SessionState.DISCONNECTED

    async def test_client_close_ends_listen(self, session):
        task = asyncio.create_task(_drain(session))
        await asyncio.sleep(0)
        await session.close()

        messages = await asyncio.wait_for(task, timeout=1.0)
        assert messages == [DisconnectedMessage(True, CLOSED_BY_CLIENT)]

    async def test_operations_fail_after_disconnect(self, session, fake_connection, sample_event):
        fake_connection.end()
        await _drain(session)
        with pytest.raises(RelayConnectionError):
            await session.publish(sample_event)

    async def test_send_failure_ends_listen(self, session, fake_connection, sample_event):
        task = asyncio.create_task(_drain(session))
        await asyncio.sleep(0)
        fake_connection.fail_send = True
        with pytest.raises(RelayConnectionError):
            await session.publish(sample_event)

        messages = await asyncio.wait_for(task, timeout=1.0)
        assert messages == [DisconnectedMessage(False, "send failed: broken pipe")]

    async def test_concurrent_listen_rejected(self, session):
        first = session.listen()

        async def first_message():
            return await anext(first)

        task = asyncio.create_task(first_message())
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError, match="already running"):
            await anext(session.listen())

        await session.close()
        assert await asyncio.wait_for(task, timeout=1.0) == DisconnectedMessage(
            True, CLOSED_BY_CLIENT
        )

    async def test_listen_again_after_aclose(self, session, fake_connection):
        fake_connection.feed('["NOTICE","one"]', '["NOTICE","two"]')
        messages = session.listen()
        assert await anext(messages) == NoticeMessage("one")
        await messages.aclose()
        assert session.is_connected

        fake_connection.end()
        messages = await _drain(session)
        assert messages == [NoticeMessage("two"), DisconnectedMessage(True, CLOSED_BY_RELAY)]
