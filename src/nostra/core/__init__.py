"""Core layer: exceptions, structured logging and YAML loading.

Sits in the middle of the diamond DAG next to ``nostra.nips`` and
``nostra.utils``. Depends on nothing else in the package.

Attributes:
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostra.core.logger.Logger].
    StructuredFormatter: Root handler formatter used by the CLI.
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.
    NostraError: Root of the exception hierarchy in
        [nostra.core.exceptions][].
"""

from .exceptions import (
    ConfigurationError,
    DuplicateSubscriptionError,
    InvalidEventError,
    MalformedEncodingError,
    MalformedFrameError,
    NostraError,
    ProtocolError,
    RelayConnectionError,
    SubscriptionError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .yaml import load_yaml


__all__ = [
    "ConfigurationError",
    "DuplicateSubscriptionError",
    "InvalidEventError",
    "Logger",
    "MalformedEncodingError",
    "MalformedFrameError",
    "NostraError",
    "ProtocolError",
    "RelayConnectionError",
    "StructuredFormatter",
    "SubscriptionError",
    "format_kv_pairs",
    "load_yaml",
]
