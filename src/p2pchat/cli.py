"""Command-line interface for p2pchat.

Start two instances with the same host and port: the first binds the port,
the second falls back to an ephemeral one, and both announce themselves to
the shared port until they find each other.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import Config
from .robustness import ChatError, ConfigError, TransportError, setup_logging
from .session import run

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="p2pchat", description="Simple p2p chat over UDP with an encrypted channel"
    )
    p.add_argument("--config", default=None, help="Path to config YAML")
    p.add_argument("--host", default=None, help="IP address to bind and connect to")
    p.add_argument("-p", "--port", type=int, default=None, help="Port to listen to")
    p.add_argument(
        "-c",
        "--port-connect",
        type=int,
        default=None,
        help="Port to announce to until a chat mate is found (defaults to --port)",
    )
    p.add_argument(
        "--loglevel",
        default=None,
        help="Logging level (DEBUG/INFO/WARNING/ERROR/CRITICAL)",
    )
    p.add_argument("--logfile", default=None, help="Optional log file path")
    return p


def load_config(args: argparse.Namespace) -> Config:
    """Read the config file and environment, then apply command-line flags."""
    config = Config(args.config)
    if args.host is not None:
        config.set_nested("network", "bind_host", value=args.host)
    if args.port is not None:
        config.set_nested("network", "listen_port", value=args.port)
    if args.port_connect is not None:
        config.set_nested("network", "rendezvous_port", value=args.port_connect)
    if args.loglevel is not None:
        config.set_nested("logging", "level", value=args.loglevel)
    if args.logfile is not None:
        config.set_nested("logging", "file", value=args.logfile)
    config.validate()
    return config


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.get("logging", "level"), config.get("logging", "file"))

    try:
        result = asyncio.run(
            run(
                config.bind_address(),
                config.rendezvous_address(),
                quit_token=config.quit_token(),
                max_datagram_size=config.max_datagram_size(),
            )
        )
    except TransportError as e:
        print(f"Network error: {e}", file=sys.stderr)
        return 1
    except ChatError as e:
        print(f"Application error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nBye Bye!")
        return 0

    logger.info(f"Exiting after {result.value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
