"""Command-line interface for the local tracking replica."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..config import ConfigManager, TrackerConfig, config_manager
from ..core.exceptions import StoreUnavailable
from ..services.stats import export_sessions
from .extension import TrackerClient

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="email-tracker-client",
        description="Email Tracker client - local replica of tracking sessions",
    )

    parser.add_argument(
        "--api-url",
        help="Base URL of the aggregator (e.g., http://127.0.0.1:3000)",
    )
    parser.add_argument(
        "--store-path",
        type=Path,
        help="Path of the local JSON replica",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="HTTP timeout of one sync round trip in seconds (default: 30.0)",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Enable development mode (verbose logging)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("sync", help="Run one sync round trip")

    watch = subparsers.add_parser("watch", help="Sync periodically until interrupted")
    watch.add_argument(
        "--interval",
        type=float,
        help="Seconds between round trips (default: 300.0)",
    )

    subparsers.add_parser("stats", help="Print open and click statistics")

    export = subparsers.add_parser("export", help="Export the replica as JSON")
    export.add_argument("--output", "-o", type=Path, help="Write to a file instead of stdout")

    subparsers.add_parser("clear", help="Delete every local tracking session")

    return parser.parse_args(argv)


def build_config(ns: argparse.Namespace, base: TrackerConfig) -> TrackerConfig:
    """Apply command-line overrides on top of the loaded configuration."""
    if ns.api_url:
        base.client.api_base_url = ns.api_url.rstrip("/")
    if ns.store_path:
        base.client.store_path = str(ns.store_path)
    if ns.timeout is not None:
        if ns.timeout <= 0:
            raise ValueError("--timeout must be positive")
        base.client.sync_timeout_secs = ns.timeout
    if getattr(ns, "interval", None) is not None:
        if ns.interval <= 0:
            raise ValueError("--interval must be positive")
        base.client.sync_interval_secs = ns.interval
    if ns.dev:
        base.app.is_development = True
    return base


def configure_logging(dev: bool) -> None:
    """Configure console logging for the client process."""
    logging.basicConfig(
        level=logging.DEBUG if dev else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from requests library
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    if dev:
        logger.info("Development mode enabled - verbose logging active")


async def run_command(ns: argparse.Namespace, client: TrackerClient) -> int:
    """Execute one subcommand against ``client``. Returns the exit code."""
    if ns.command == "sync":
        return 0 if await client.sync_engine.sync_once() else 1

    if ns.command == "watch":
        client.sync_engine.start()
        try:
            await asyncio.Event().wait()
        finally:
            await client.sync_engine.stop()
        return 0

    if ns.command == "stats":
        print(json.dumps(await client.statistics(), indent=2))
        return 0

    if ns.command == "export":
        text = export_sessions(await client.store.get_all())
        if ns.output:
            ns.output.write_text(text, encoding="utf-8")
            logger.info(f"Exported tracking data to {ns.output}")
        else:
            print(text)
        return 0

    if ns.command == "clear":
        try:
            cleared = await client.clear()
        except StoreUnavailable as e:
            logger.error(f"Failed to clear tracking data: {e}")
            return 1
        logger.info(f"Cleared {cleared} tracking sessions")
        return 0

    raise ValueError(f"Unknown command: {ns.command}")


async def _main_async(ns: argparse.Namespace, config: TrackerConfig, manager: ConfigManager) -> int:
    client = TrackerClient.from_config(config, config_manager=manager)
    try:
        return await run_command(ns, client)
    finally:
        await client.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entrypoint for the client CLI.

    Args:
        argv: Command line arguments (for testing)

    Returns:
        Exit code (0 for success)
    """
    ns = parse_args(argv)
    try:
        config = build_config(ns, config_manager.load_config())
        configure_logging(ns.dev or config.app.is_development)

        logger.info(f"Aggregator: {config.client.api_base_url}")
        logger.info(f"Local replica: {config.client.store_path}")

        return asyncio.run(_main_async(ns, config, config_manager))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130  # Standard exit code for Ctrl+C

    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
