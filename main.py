"""
Main command-line interface for pysnowmix.

This script provides a CLI to interact with a Snowmix server.
"""

import argparse
import asyncio
import logging

from pysnowmix.exceptions import SnowmixError
from pysnowmix.listener import LoggingListener
from pysnowmix.snowmix import DEFAULT_PORT, Snowmix


async def _connect(hostname: str, port: int) -> Snowmix:
    print(f"Connecting to Snowmix at {hostname}:{port}...")
    snowmix = Snowmix(hostname, port, reconnect=False, populate_on_connect=False)
    snowmix.register_listener(LoggingListener(logging.getLogger("snowmix")))
    await snowmix.async_connect()
    return snowmix


async def show_status(hostname: str, port: int):
    """Discover and display every known object."""
    snowmix = await _connect(hostname, port)
    try:
        await snowmix.populate()
        if snowmix.version:
            print(f"Snowmix version {snowmix.version}")

        for collection in snowmix.collections:
            limit = f" (max {collection.max_items})" if collection.max_items is not None else ""
            print(f"\n{collection.kind}s: {len(collection)}{limit}")
            print("-" * 100)
            for item in collection:
                if collection.codec.info_command is None:
                    print(f"{item.id:3d}  {item.text}")
                    continue
                volume = ",".join(str(level) for level in item.volume or ())
                muted = "MUTED" if item.muted else "on"
                print(
                    f"{item.id:3d}  {item.name:20s} {item.state or '?':10s} "
                    f"{item.rate}Hz x{item.channels} | Vol: {volume:12s} | {muted}"
                )
    finally:
        snowmix.close()


async def add_mixer(hostname: str, port: int, name: str, channels, rate):
    """Create an audio mixer."""
    snowmix = await _connect(hostname, port)
    try:
        await snowmix.populate()
        attributes = {"name": name}
        if channels is not None:
            attributes["channels"] = channels
        if rate is not None:
            attributes["rate"] = rate
        mixer = await snowmix.audio_mixers.create(**attributes)
        print(f"Created audio mixer {mixer.id} <{mixer.name}>")
    finally:
        snowmix.close()


async def delete_all(hostname: str, port: int, kind: str):
    """Delete every object of one kind."""
    snowmix = await _connect(hostname, port)
    try:
        await snowmix.populate()
        for collection in snowmix.collections:
            if collection.kind == kind:
                count = len(collection)
                await collection.delete_all()
                print(f"Deleted {count} {kind}(s)")
                return
        print(f"Error: Unknown kind '{kind}'")
    finally:
        snowmix.close()


def main():
    parser = argparse.ArgumentParser(description="Control a Snowmix server")
    parser.add_argument("--host", default="localhost", help="Snowmix hostname or IP (default: localhost)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Snowmix port (default: {DEFAULT_PORT})")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Status command
    subparsers.add_parser("status", help="Show every audio feed, mixer, sink and text")

    # Add mixer command
    mixer_parser = subparsers.add_parser("mixer-add", help="Create an audio mixer")
    mixer_parser.add_argument("name", help="Mixer name")
    mixer_parser.add_argument("--channels", type=int, help="Number of channels")
    mixer_parser.add_argument("--rate", type=int, help="Sample rate in Hz")

    # Delete all command
    delete_parser = subparsers.add_parser("delete-all", help="Delete every object of one kind")
    delete_parser.add_argument("kind", help="'audio feed', 'audio mixer', 'audio sink' or 'text string'")

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)

    try:
        if args.command == "status":
            asyncio.run(show_status(args.host, args.port))
        elif args.command == "mixer-add":
            asyncio.run(add_mixer(args.host, args.port, args.name, args.channels, args.rate))
        elif args.command == "delete-all":
            asyncio.run(delete_all(args.host, args.port, args.kind))
        else:
            parser.print_help()
    except (SnowmixError, OSError) as e:
        print(f"Error: {e}")


if __name__ == "__main__":
    main()
