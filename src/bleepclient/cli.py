"""CLI entry point for bleepclient."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx

from bleepclient.client import Client
from bleepclient.config import ClientConfig, load_config
from bleepclient.errors import BleepClientError
from bleepclient.logging_config import configure_logging
from bleepclient.multipart import DEFAULT_PART_SIZE

logger = logging.getLogger("bleepclient")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="bleepclient",
        description="bleepclient - S3 object storage client",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("bleepclient.yaml"),
        help="Path to YAML configuration file (default: bleepclient.yaml)",
    )
    parser.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="Service endpoint host (overrides config)",
    )
    parser.add_argument(
        "--bucket",
        type=str,
        default=None,
        help="Bucket name (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    put = sub.add_parser("put", help="Upload a local file")
    put.add_argument("src", type=Path)
    put.add_argument("key")

    get = sub.add_parser("get", help="Download an object to a local file")
    get.add_argument("key")
    get.add_argument("dest", type=Path)

    head = sub.add_parser("head", help="Show object size, etag and modification time")
    head.add_argument("key")

    rm = sub.add_parser("rm", help="Delete an object")
    rm.add_argument("key")

    url = sub.add_parser("url", help="Print the object URL")
    url.add_argument("key")

    presign = sub.add_parser("presign", help="Print a presigned GET URL")
    presign.add_argument("key")
    presign.add_argument(
        "--expires",
        type=int,
        default=3600,
        help="Lifetime in seconds (default: 3600)",
    )

    upload = sub.add_parser("upload", help="Upload a local file with multipart upload")
    upload.add_argument("src", type=Path)
    upload.add_argument("key")
    upload.add_argument(
        "--part-size",
        type=int,
        default=DEFAULT_PART_SIZE,
        help=f"Part size in bytes (default: {DEFAULT_PART_SIZE})",
    )

    abort = sub.add_parser("abort", help="Abort a multipart upload")
    abort.add_argument("key")
    abort.add_argument("upload_id")

    return parser.parse_args(argv)


def _status_ok(response: httpx.Response, expected: tuple[int, ...] = (200,)) -> bool:
    if response.status_code in expected:
        return True
    logger.error("Request failed with HTTP %d", response.status_code)
    return False


async def run(args: argparse.Namespace, client: Client) -> int:
    """Execute the parsed command. Returns the process exit code."""
    if args.command == "put":
        response = await client.put_file(args.src, args.key)
        return 0 if _status_ok(response) else 1

    if args.command == "get":
        response = await client.get_file(args.key, args.dest)
        return 0 if _status_ok(response) else 1

    if args.command == "head":
        info = await client.file_info(args.key)
        if info is None:
            logger.error("No such object: %s", args.key)
            return 1
        print(f"etag={info.etag} size={info.size} modified={info.modified}")
        return 0

    if args.command == "rm":
        response = await client.delete(args.key)
        return 0 if _status_ok(response, (200, 204)) else 1

    if args.command == "url":
        print(client.url(args.key))
        return 0

    if args.command == "presign":
        expiration = datetime.now(timezone.utc) + timedelta(seconds=args.expires)
        print(client.signed_url(args.key, expiration))
        return 0

    if args.command == "upload":
        result = await client.upload_multipart(args.src, args.key, part_size=args.part_size)
        print(f"etag={result.etag} location={result.location}")
        return 0

    if args.command == "abort":
        await client.abort_upload(args.key, args.upload_id)
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def _main(args: argparse.Namespace, config: ClientConfig) -> int:
    async with Client.from_config(config) as client:
        return await run(args, client)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the bleepclient CLI.

    Loads configuration, applies CLI overrides and runs one command.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    # Apply CLI overrides
    if args.endpoint is not None:
        config.bucket = config.bucket.model_copy(update={"endpoint": args.endpoint})
    if args.bucket is not None:
        config.bucket = config.bucket.model_copy(update={"bucket": args.bucket})
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format

    configure_logging(level=config.logging.level, fmt=config.logging.format)

    try:
        code = asyncio.run(_main(args, config))
    except (BleepClientError, httpx.TransportError, OSError) as exc:
        logger.error("%s", exc)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
