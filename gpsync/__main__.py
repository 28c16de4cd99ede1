"""main module"""

import argparse
import asyncio
import sys

from aiohttp import ClientSession, ClientTimeout

from gpsync.app import App
from gpsync.config import load_settings
from gpsync.errors import ConfigurationError, DestinationError
from gpsync.fetch import FetchClient, create_session
from gpsync.immich import ImmichClient
from gpsync.utils import error, info, set_debug


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="gpsync",
        description="Mirror Google Photos shared albums into Immich.",
    )
    parser.add_argument("--config", help="Path to JSON config file (default: config.json)")
    parser.add_argument("--once", action="store_true", help="Sync every album once and exit")
    parser.add_argument("--debug", action="store_true", help="Print debug output")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """
    The main function that runs the program.
    """
    args = parse_args(argv)
    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        error(f"Configuration error: {e}")
        return 1
    set_debug(args.debug or settings.debug)

    info("Starting Google Photos -> Immich sync")
    # Uploads of large videos may take a while; cap idle reads instead of total time.
    immich_timeout = ClientTimeout(total=None, connect=30, sock_connect=30, sock_read=300)
    async with create_session() as source_session, ClientSession(
        timeout=immich_timeout
    ) as immich_session:
        app = App(
            settings,
            ImmichClient(immich_session, settings.api_url, settings.api_key),
            FetchClient(source_session),
        )
        try:
            await app.run(once=args.once)
        except DestinationError as e:
            error(f"Failed to connect to Immich: {e}")
            return 1
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n[!] Exiting...")
        sys.exit(0)


if __name__ == "__main__":
    run()
