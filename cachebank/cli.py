"""
Command-line tool for cachebank.

Runs single record-store operations against a memcached deployment:

Usage:
    cachebank read widget 1
    cachebank create widget 1 '{"a": 1}'
    cachebank search widget a=1 owner.name=ann
    cachebank append log today '"first entry"'
    cachebank schema schema.yaml

Values and criteria values are parsed as JSON when they parse, and taken
as plain strings otherwise. Configuration comes from the environment
(see config.py); command-line options override it.

Invariants:
    - Results go to stdout as JSON, one document per line
    - Store and cache errors exit with status 1, usage errors with 2
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import json_log_formatter

from .cache.base import CacheError
from .config import BankConfig, CacheBackend, parse_server_locations
from .errors import DatabankError
from .schema import load_schema
from .store import CacheBank

logger = logging.getLogger(__name__)


def setup_logging(config: BankConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Bank configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("pymemcache").setLevel(logging.WARNING)


def parse_value(text: str) -> Any:
    """JSON if it parses, else the raw string."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def parse_criteria(items: List[str]) -> Dict[str, Any]:
    """Parse ``path=value`` pairs into a criteria mapping."""
    criteria: Dict[str, Any] = {}
    for item in items:
        path, sep, value = item.partition("=")
        if not sep or not path:
            raise ValueError(f"Criterion must look like path=value, got {item!r}")
        criteria[path] = parse_value(value)
    return criteria


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cachebank",
        description="Indexed record store on memcached",
    )
    parser.add_argument("--servers", help="Comma-separated memcached servers (host:port)")
    parser.add_argument(
        "--backend",
        choices=[b.value for b in CacheBackend],
        help="Cache backend (memory is process-local, for trying things out)",
    )
    parser.add_argument("--schema", dest="schema_file", help="YAML or JSON schema file")
    parser.add_argument("--expire", type=int, help="TTL in seconds for written records")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", choices=["text", "json"])

    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("read", "delete", "incr", "decr"):
        p = sub.add_parser(name)
        p.add_argument("type")
        p.add_argument("id")

    for name in ("create", "update", "save", "append", "prepend", "remove"):
        p = sub.add_parser(name)
        p.add_argument("type")
        p.add_argument("id")
        p.add_argument("value", help="JSON value (or plain string)")

    p = sub.add_parser("read-all")
    p.add_argument("type")
    p.add_argument("ids", nargs="+")

    p = sub.add_parser("search")
    p.add_argument("type")
    p.add_argument("criteria", nargs="*", help="path=value pairs")

    p = sub.add_parser("scan")
    p.add_argument("type")

    p = sub.add_parser("schema", help="Validate and print a schema file")
    p.add_argument("file")

    return parser


def config_from_args(args: argparse.Namespace) -> BankConfig:
    """Environment configuration with command-line overrides applied."""
    config = BankConfig.from_env()
    if args.servers:
        config.memcached = dataclasses.replace(
            config.memcached, server_locations=parse_server_locations(args.servers)
        )
    if args.backend:
        config.cache_backend = CacheBackend(args.backend)
    if args.expire is not None:
        config.store = dataclasses.replace(config.store, expire=args.expire)
    if args.schema_file:
        config.store = dataclasses.replace(config.store, schema_file=args.schema_file)
        config.schema = load_schema(args.schema_file)
    if args.log_level or args.log_format:
        config.observability = dataclasses.replace(
            config.observability,
            log_level=args.log_level or config.observability.log_level,
            log_format=args.log_format or config.observability.log_format,
        )
    config.validate()
    return config


def _emit(value: Any) -> None:
    print(json.dumps(value, sort_keys=True))


async def run_command(bank: CacheBank, args: argparse.Namespace) -> None:
    """Run one subcommand against a connected bank and print its result."""
    command = args.command
    if command == "read":
        _emit(await bank.read(args.type, args.id))
    elif command == "delete":
        await bank.delete(args.type, args.id)
    elif command in ("incr", "decr"):
        _emit(await getattr(bank, command)(args.type, args.id))
    elif command in ("create", "update", "save"):
        _emit(await getattr(bank, command)(args.type, args.id, parse_value(args.value)))
    elif command in ("append", "prepend", "remove"):
        await getattr(bank, command)(args.type, args.id, parse_value(args.value))
    elif command == "read-all":
        _emit(await bank.read_all(args.type, args.ids))
    elif command == "search":
        count = await bank.search(args.type, parse_criteria(args.criteria), _emit)
        logger.info("%d match(es)", count)
    elif command == "scan":
        count = await bank.scan(args.type, _emit)
        logger.info("%d record(s)", count)
    else:
        raise ValueError(f"Unknown command: {command}")


async def _run(config: BankConfig, args: argparse.Namespace) -> None:
    async with CacheBank(config) as bank:
        await run_command(bank, args)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "schema":
        try:
            schema = load_schema(args.file)
        except (OSError, ValueError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print(json.dumps(schema.to_dict(), indent=2, sort_keys=True))
        return 0

    try:
        config = config_from_args(args)
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    setup_logging(config)
    config.log_config()

    try:
        asyncio.run(_run(config, args))
    except (DatabankError, CacheError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
