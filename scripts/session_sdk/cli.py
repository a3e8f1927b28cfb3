#!/usr/bin/env python3
"""
Command line interface for the session SDK.

Usage:
    session-sdk replay events.jsonl --api-key KEY [--endpoint URL]
    session-sdk check-config config.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .config import SDKConfig
from .context import HostEnvironment
from .errors import SessionSDKError
from .producer import ReplayProducer
from .session import SessionSDK


def _parse_attributes(pairs):
    attributes = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"Attribute must be KEY=VALUE: {pair}")
        attributes[key] = value
    return attributes


def _load_config(args) -> SDKConfig:
    overrides = {}
    if args.api_key:
        overrides["apiKey"] = args.api_key
    if args.endpoint:
        overrides["endpoint"] = args.endpoint
    if args.debug:
        overrides["debug"] = True

    if args.config:
        return SDKConfig.from_file(args.config, overrides=overrides)
    return SDKConfig.from_env(overrides)


async def _replay(args) -> int:
    config = _load_config(args)
    producer = ReplayProducer(args.file)
    environment = HostEnvironment(url=args.url or "", referrer=args.referrer or "")
    sdk = SessionSDK(producer=producer, environment=environment).init(config)

    if args.user_id:
        sdk.set_user_id(args.user_id)
    attributes = _parse_attributes(args.attr)
    if attributes:
        sdk.set_attributes(attributes)

    try:
        if not await sdk.start_recording():
            print("Do-Not-Track is enabled; nothing was recorded.")
            return 0

        session_id = sdk.get_session_id()
        buffered = sdk.buffered_events
        dropped = sdk.dropped_events
        result = await sdk.stop()
    finally:
        sdk.destroy()

    print(f"Session:   {session_id}")
    print(f"Replayed:  {producer.replayed} record(s)")
    print(f"Recorded:  {buffered + dropped} event(s) after privacy filtering")
    if dropped:
        print(f"Dropped:   {dropped} event(s) over maxBufferSize ({config.overflow_policy})")

    if result is None:
        print("Delivered: nothing to send")
        return 0
    if result.success:
        print(f"Delivered: yes ({result.attempts} attempt(s))")
        return 0

    print(f"Delivered: no ({result.error})")
    return 1


def _check_config(args) -> int:
    config = SDKConfig.from_file(args.file)
    merged = config.get_all()
    merged["apiKey"] = merged["apiKey"][:4] + "***"
    print(json.dumps(merged, indent=2, default=str))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="session-sdk",
        description="Session recording SDK utilities",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s replay events.jsonl --api-key pk_test_123
  %(prog)s replay events.jsonl --config sdk.json --user-id u-42 --attr plan=pro
  %(prog)s check-config sdk.json

Environment:
  SESSION_SDK_API_KEY, SESSION_SDK_ENDPOINT, SESSION_SDK_DEBUG, DO_NOT_TRACK
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    replay = subparsers.add_parser(
        "replay",
        help="Record a JSONL file of raw events and deliver it",
    )
    replay.add_argument("file", type=Path, help="JSONL file of raw event records")
    replay.add_argument("--config", type=Path, help="JSON configuration file")
    replay.add_argument("--api-key", help="Collector API key (overrides config)")
    replay.add_argument("--endpoint", help="Collector URL (overrides config)")
    replay.add_argument("--url", help="Page URL recorded in session metadata")
    replay.add_argument("--referrer", help="Referrer recorded in session metadata")
    replay.add_argument("--user-id", help="User id attached to the session")
    replay.add_argument(
        "--attr",
        action="append",
        metavar="KEY=VALUE",
        help="Session attribute (repeatable)",
    )
    replay.add_argument("--debug", action="store_true", help="Print diagnostics to stderr")

    check = subparsers.add_parser(
        "check-config",
        help="Validate a JSON configuration file and print the merged result",
    )
    check.add_argument("file", type=Path, help="JSON configuration file")

    args = parser.parse_args(argv)

    try:
        if args.command == "replay":
            return asyncio.run(_replay(args))
        return _check_config(args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except SessionSDKError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
