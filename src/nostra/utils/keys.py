"""Secret key loading from environment variables.

Accepts both ``nsec1`` (NIP-19 bech32) and 64-character hex secret keys.

Warning:
    Secret keys must **never** be stored in configuration files, source code,
    or logged. Error messages raised here never include the key value.

Note:
    [KeysConfig][nostra.utils.keys.KeysConfig] loads the key eagerly at
    validation time, so a malformed key fails at startup rather than at the
    first publish. Unlike a required key, an unset variable is not an error:
    the field stays ``None`` and callers decide what to do (the CLI signs
    with a fresh random key).

See Also:
    [nostra.nips.nip19][]: ``nsec`` decoding.
    [ClientConfig][nostra.client.configs.ClientConfig]: Inherits
        [KeysConfig][nostra.utils.keys.KeysConfig].

Examples:
    ```python
    import os

    os.environ["PRIVATE_KEY"] = "nsec1..."  # pragma: allowlist secret
    secret_key = load_secret_key_from_env("PRIVATE_KEY")
    print(secret_key.public_key().to_hex())
    ```
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, model_validator

from nostra.core.exceptions import ConfigurationError, MalformedEncodingError
from nostra.models.keys import SecretKey
from nostra.nips.nip19 import HRP_NSEC, Nsec, decode


ENV_PRIVATE_KEY = "PRIVATE_KEY"  # pragma: allowlist secret  # Default env var name


def parse_secret_key(value: str) -> SecretKey:
    """Parse an ``nsec1`` or hex secret key.

    Raises:
        ConfigurationError: If *value* is neither a valid ``nsec`` nor a
            valid 64-character hex scalar.
    """
    value = value.strip()

    if value.lower().startswith(HRP_NSEC + "1"):
        try:
            entity = decode(value)
        except MalformedEncodingError as e:
            raise ConfigurationError(f"invalid nsec secret key: {e}") from None
        if not isinstance(entity, Nsec):
            raise ConfigurationError("invalid nsec secret key")
        return entity.key

    try:
        return SecretKey.from_hex(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            "secret key must be an nsec1 string or 64 hex characters"
        ) from None


def load_secret_key_from_env(env_var: str) -> SecretKey:
    """Load a secret key from an environment variable.

    Args:
        env_var: Name of the environment variable holding the key.

    Raises:
        ConfigurationError: If the variable is unset, empty or malformed.
    """
    value = os.getenv(env_var)

    if not value:
        raise ConfigurationError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )

    return parse_secret_key(value)


class KeysConfig(BaseModel):
    """Pydantic mixin that loads an optional secret key from the environment.

    Attributes:
        keys_env: Environment variable name for the secret key.
        secret_key: Loaded key, or ``None`` when the variable is unset.

    Raises:
        ConfigurationError: If the variable is set but malformed.

    Warning:
        ``secret_key`` holds live key material. It is excluded from ``repr``
        and from ``model_dump()``.
    """

    model_config = {"arbitrary_types_allowed": True}

    keys_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable name for the secret key",
    )
    secret_key: SecretKey | None = Field(
        default=None,
        repr=False,
        exclude=True,
        description="Secret key loaded from keys_env (optional)",
    )

    @model_validator(mode="before")
    @classmethod
    def _load_secret_key_from_env(cls, data: Any) -> Any:
        """Populate ``secret_key`` from the environment variable when set."""
        if isinstance(data, dict) and data.get("secret_key") is None:
            env_var = data.get("keys_env", ENV_PRIVATE_KEY)
            if os.getenv(env_var):
                data = {**data, "secret_key": load_secret_key_from_env(env_var)}
        return data
