"""Relay session and CLI configuration models.

See Also:
    [RelaySession][nostra.client.session.RelaySession]: Consumes
        [SessionConfig][nostra.client.configs.SessionConfig].
    [KeysConfig][nostra.utils.keys.KeysConfig]: Mixin providing the
        optional signing key.
    [load_yaml()][nostra.core.yaml.load_yaml]: YAML loading used by
        [ClientConfig.from_yaml()][nostra.client.configs.ClientConfig.from_yaml].
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, field_validator

from nostra.core.yaml import load_yaml
from nostra.models.relay import Relay
from nostra.models.subscription import validate_subscription_id
from nostra.utils.keys import KeysConfig
from nostra.utils.transport import DEFAULT_MAX_MESSAGE_SIZE


DEFAULT_RELAY = "wss://relay.damus.io"


class SessionConfig(BaseModel):
    """Behaviour of a single [RelaySession][nostra.client.session.RelaySession].

    Attributes:
        connect_timeout: Seconds allowed for the WebSocket handshake.
        close_timeout: Seconds allowed for the closing handshake.
        heartbeat: WebSocket ping interval in seconds (``None`` disables).
        max_message_size: Largest inbound frame in bytes.
        verify_ssl: Verify the relay's TLS certificate.
        verify_events: Drop inbound events whose id or signature is invalid.
        enforce_filters: Drop events that do not match the filters of the
            tracked subscription they arrive on.
        yield_unknown: Yield frames with unrecognized tags as
            [UnknownMessage][nostra.models.messages.UnknownMessage] instead of
            logging and skipping them.
    """

    connect_timeout: float = Field(default=10.0, gt=0.0, le=300.0)
    close_timeout: float = Field(default=5.0, gt=0.0, le=60.0)
    heartbeat: float | None = Field(default=30.0, gt=0.0)
    max_message_size: int = Field(default=DEFAULT_MAX_MESSAGE_SIZE, ge=0)
    verify_ssl: bool = Field(default=True)
    verify_events: bool = Field(default=True)
    enforce_filters: bool = Field(default=True)
    yield_unknown: bool = Field(default=False)


class ClientConfig(KeysConfig):
    """Configuration of the ``nostra`` command-line client.

    Inherits key management from [KeysConfig][nostra.utils.keys.KeysConfig].

    Attributes:
        relay: Relay URL to publish to and listen on.
        subscription_id: Id of the catch-all subscription.
        session: Per-session behaviour.
    """

    relay: str = Field(default=DEFAULT_RELAY)
    subscription_id: str = Field(default="all")
    session: SessionConfig = Field(default_factory=SessionConfig)

    @field_validator("relay")
    @classmethod
    def validate_relay_url(cls, v: str) -> str:
        """Normalize the relay URL, rejecting anything but ws/wss."""
        try:
            return Relay(v).url
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid relay URL '{v}': {e}") from e

    @field_validator("subscription_id")
    @classmethod
    def validate_subscription_id(cls, v: str) -> str:
        validate_subscription_id(v)
        return v

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> Self:
        """Load from a YAML file via [load_yaml()][nostra.core.yaml.load_yaml]."""
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(**data)
