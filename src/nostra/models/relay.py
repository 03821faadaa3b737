"""
Validated relay WebSocket URL.

[Relay][nostra.models.relay.Relay] parses a ``ws://`` or ``wss://`` URL with
RFC 3986 rules, rejects query strings and fragments, lowercases scheme and
host, collapses duplicate slashes, strips a trailing slash and drops the
port when it is the scheme default. Equal relays therefore compare equal
and produce identical NIP-19 relay hints.

Examples:
    ```python
    Relay("WSS://Relay.Damus.io:443/").url   # 'wss://relay.damus.io'
    Relay("ws://localhost:7777").url         # 'ws://localhost:7777'
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from ._validation import validate_text


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable, normalized relay URL.

    Attributes:
        url: Fully normalized URL including scheme.
        scheme: ``ws`` or ``wss``.
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit non-default port, or ``None``.
        path: URL path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses a scheme other than
            ``ws``/``wss``, or carries a query string or fragment.
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ws": 80, "wss": 443}

    def __post_init__(self) -> None:
        validate_text(self.raw_url, "relay url")
        parsed = self._parse(self.raw_url)
        # Bypass frozen restriction to set computed fields
        for name, value in parsed.items():
            object.__setattr__(self, name, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Relay):
            return NotImplemented
        return self.url == other.url

    def __hash__(self) -> int:
        return hash(self.url)

    def __str__(self) -> str:
        return self.url

    @staticmethod
    def _parse(raw: str) -> dict[str, Any]:
        """Parse and normalize a raw relay URL string.

        Returns:
            Dictionary with ``url``, ``scheme``, ``host``, ``port`` and ``path``.
        """
        uri = uri_reference(raw.strip()).normalize()

        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )

        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        scheme = uri.scheme
        host = uri.host.strip("[]")
        port = int(uri.port) if uri.port else None
        if port == Relay._DEFAULT_PORTS[scheme]:
            port = None

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        formatted_host = f"[{host}]" if ":" in host else host
        authority = f"{formatted_host}:{port}" if port else formatted_host

        return {
            "url": f"{scheme}://{authority}{path or ''}",
            "scheme": scheme,
            "host": host,
            "port": port,
            "path": path,
        }
