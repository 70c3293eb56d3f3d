"""
mxindex Matrix homeserver index - Main Entry Point

Usage::

    python main.py [--config PATH] [--discover-once]
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from services.index_server import IndexServer

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mxindex", description="Matrix homeserver index")
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=os.environ.get('CONFIG_FILE', 'config/config.yaml'),
        help="YAML configuration file (default: CONFIG_FILE env var or config/config.yaml)",
    )
    parser.add_argument(
        "--discover-once",
        action="store_true",
        help="Run a single federation discovery pass, print its summary and exit",
    )
    return parser.parse_args(argv)


async def discover_once(server: IndexServer) -> int:
    """Crawl the federation once without serving HTTP"""
    await server.initialize()
    try:
        result = await server.discovery.run_discovery()
    finally:
        await server.close()

    print(f"Added {result.added_count} servers "
          f"({result.servers_probed} probed, {result.probe_failures} failed, "
          f"{result.peers_seen} seen) in {result.duration_seconds:.1f}s")
    for domain in result.added_domains:
        print(f"  + {domain}")
    return 0


async def serve(server: IndexServer) -> int:
    """Serve the API until a signal arrives"""
    loop = asyncio.get_running_loop()

    def request_stop(signum):
        logger.info(f"Received signal {signum}, shutting down...")
        asyncio.create_task(server.stop())

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, request_stop, signum)

    try:
        await server.start()
    finally:
        await server.stop()
    return 0


async def main(argv=None) -> int:
    args = parse_args(argv)
    logger.info(f"Using configuration file: {args.config}")

    try:
        server = IndexServer(config_path=args.config)
    except Exception as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        if args.discover_once:
            return await discover_once(server)
        return await serve(server)
    except Exception as e:
        logger.error(f"Server failed: {e}")
        return 1


def run():
    """Console script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
