"""CLI entry point: publish a note and listen to a relay.

Signs ``TEXT`` (when given) with the key from the configured environment
variable, or with a fresh random key, publishes it, prints its ``nevent``
and JSON, then subscribes to everything from now on and prints each event's
JSON until the relay disconnects or a shutdown signal arrives.

Logs go to stderr; event output goes to stdout.

Examples:
    ```bash
    nostra "hello nostr"
    python -m nostra --relay wss://nos.lol --log-level DEBUG
    PRIVATE_KEY=nsec1... nostra "signed with my key" --json-logs
    nostra --config config/client.yaml
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from nostra.client.configs import ClientConfig
from nostra.client.session import RelaySession
from nostra.core.exceptions import ConfigurationError, RelayConnectionError
from nostra.core.logger import Logger, StructuredFormatter
from nostra.core.yaml import load_yaml
from nostra.models.event import create_note, finalize
from nostra.models.filter import Filter
from nostra.models.keys import SecretKey
from nostra.models.messages import (
    DisconnectedMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
)
from nostra.nips import nip19
from nostra.utils.transport import Transport


logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="nostra",
        description="Publish a Nostr note and print the relay's event stream",
    )

    parser.add_argument(
        "text",
        nargs="?",
        help="Note to publish before listening (default: only listen)",
    )

    parser.add_argument(
        "--relay",
        help="Relay URL (default: from config, else wss://relay.damus.io)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Client config path (YAML)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON objects, one per line",
    )

    return parser.parse_args(argv)


def setup_logging(level: str, *, json_output: bool = False) -> None:
    """Configure the root logger with structured formatting.

    Installs a ``StructuredFormatter`` on the root handler so that all
    log output -- from both ``Logger`` (with ``structured_kv`` extra) and
    plain ``logging.getLogger()`` calls in models/utils -- is unified as
    ``level name message key=value ...`` (or JSON).
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def load_config(config_path: Path | None, relay: str | None) -> ClientConfig:
    """Build the client config from an optional YAML file and CLI overrides.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        try:
            data = load_yaml(config_path)
        except FileNotFoundError as e:
            raise ConfigurationError(str(e)) from e
    if relay is not None:
        data["relay"] = relay

    try:
        return ClientConfig.from_dict(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e


async def run_client(
    config: ClientConfig,
    text: str | None = None,
    *,
    transport: Transport | None = None,
) -> int:
    """Publish *text* (if any), then print events until disconnected.

    Returns:
        Exit code: 0 when the session ended cleanly, 1 otherwise.
    """
    secret_key = config.secret_key
    if secret_key is None:
        secret_key = SecretKey.generate()
        logger.info("key_generated", npub=nip19.npub(secret_key.public_key()))

    session = RelaySession(config.relay, config.session, transport=transport)
    shutdown_tasks: set[asyncio.Task[None]] = set()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        task = asyncio.ensure_future(session.close())
        shutdown_tasks.add(task)
        task.add_done_callback(shutdown_tasks.discard)

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_signal, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug("signal_handler_unavailable", signal=sig.name)

    try:
        async with session:
            if text is not None:
                event = finalize(create_note(text), secret_key)
                await session.publish(event)
                print(
                    nip19.nevent(
                        event.id,
                        (session.relay.url,),
                        author=event.pubkey,
                        kind=event.kind,
                    ),
                    flush=True,
                )
                print(event.to_json(), flush=True)

            await session.subscribe(config.subscription_id, Filter(since=int(time.time())))

            async for message in session.listen():
                if isinstance(message, EventMessage):
                    print(message.event.to_json(), flush=True)
                elif isinstance(message, OkMessage):
                    logger.info(
                        "ok_received",
                        event_id=message.event_id,
                        accepted=message.accepted,
                        message=message.message,
                    )
                elif isinstance(message, NoticeMessage):
                    logger.info("notice_received", message=message.message)
                elif isinstance(message, DisconnectedMessage):
                    return 0 if message.clean else 1
        return 0
    except RelayConnectionError as e:
        logger.error("connection_failed", error=str(e))
        return 1
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, load config, run the client."""
    args = parse_args(argv)
    setup_logging(args.log_level, json_output=args.json_logs)

    try:
        config = load_config(args.config, args.relay)
    except ConfigurationError as e:
        logger.error("config_invalid", error=str(e))
        return 2

    try:
        return await run_client(config, args.text)
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
