"""
Pytest configuration and shared fixtures for Nostra tests.

Provides:
- In-memory Connection/Transport doubles for relay session tests
- Fixed secret keys and signed sample events
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

import pytest

from nostra.core.exceptions import RelayConnectionError
from nostra.models.event import Event, UnsignedEvent, finalize
from nostra.models.keys import SecretKey
from nostra.utils.transport import Connection, Transport


# Fixed secp256k1 test keys (DO NOT USE IN PRODUCTION)
TEST_SECRET_HEX = (
    "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret
)
TEST_NSEC = (
    "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"  # pragma: allowlist secret
)
OTHER_SECRET_HEX = "0000000000000000000000000000000000000000000000000000000000000003"

FIXED_CREATED_AT = 1_700_000_000
RELAY_URL = "wss://relay.example.com"


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Transport Doubles
# ============================================================================


class FakeConnection(Connection):
    """In-memory connection: records sent frames, replays queued inbound frames."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.fail_send = False
        self.gate: asyncio.Event | None = None
        self.close_calls = 0
        self._closed = False
        self._inbound: asyncio.Queue[str | Exception | None] = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, text: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self._closed:
            raise RelayConnectionError("connection is closed")
        if self.fail_send:
            raise RelayConnectionError("send failed: broken pipe")
        self.sent.append(text)

    async def receive(self) -> AsyncIterator[str]:
        while True:
            item = await self._inbound.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.close_calls += 1
        if not self._closed:
            self._closed = True
            self._inbound.put_nowait(None)

    # -- test helpers --------------------------------------------------------

    def feed(self, *frames: str | list[Any]) -> None:
        """Queue inbound frames (lists are JSON-encoded)."""
        for frame in frames:
            self._inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def end(self) -> None:
        """Simulate the relay closing the connection cleanly."""
        self._closed = True
        self._inbound.put_nowait(None)

    def fail(self, reason: str = "connection reset by peer") -> None:
        """Simulate an abnormal connection failure."""
        self._closed = True
        self._inbound.put_nowait(RelayConnectionError(reason))

    def sent_frames(self) -> list[list[Any]]:
        return [json.loads(text) for text in self.sent]


class FakeTransport(Transport):
    """Transport handing out a single FakeConnection (or raising *error*)."""

    def __init__(
        self,
        connection: FakeConnection | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.connection = connection or FakeConnection()
        self.error = error
        self.delay = delay
        self.urls: list[str] = []

    async def connect(self, url: str) -> FakeConnection:
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.connection


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def fake_transport(fake_connection: FakeConnection) -> FakeTransport:
    return FakeTransport(fake_connection)


# ============================================================================
# Keys and Events
# ============================================================================


@pytest.fixture
def secret_key() -> SecretKey:
    return SecretKey.from_hex(TEST_SECRET_HEX)


@pytest.fixture
def other_secret_key() -> SecretKey:
    return SecretKey.from_hex(OTHER_SECRET_HEX)


@pytest.fixture
def make_event(secret_key: SecretKey) -> Callable[..., Event]:
    """Factory for signed events with deterministic defaults."""

    def _make(
        content: str = "hello",
        kind: int = 1,
        tags: Iterable[Iterable[str]] = (),
        created_at: int = FIXED_CREATED_AT,
        key: SecretKey | None = None,
    ) -> Event:
        unsigned = UnsignedEvent(
            content=content,
            kind=kind,
            tags=tags,  # type: ignore[arg-type]
            created_at=created_at,
        )
        return finalize(unsigned, key or secret_key)

    return _make


@pytest.fixture
def sample_event(make_event: Callable[..., Event]) -> Event:
    return make_event()
