#!/usr/bin/env python3
"""
CLI entry point for batchload.

Streams a text file through a record processor and sends one HTTP request
per line, throttled by the configured limits.

Usage:
    batchload data.csv --config config/batchload.yaml
    batchload data.csv --base-url http://localhost:3000 --endpoint /api/Accounts \\
        --method POST --parser csv --csv-headers "name, balance"
    batchload data.jsonl --access-token abc --endpoint http://host/api/Items -v
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .config import BatchConfig, RunOptions
from .connectors import HttpTransport
from .core.errors import RunAbortedError, ValidationError
from .core.processor import RecordProcessor
from .core.run_store import RunStore
from .parsers import CsvRecordProcessor, FixedWidthRecordProcessor, JsonLinesRecordProcessor
from .runner import BatchRunner
from .storage import RestRunStore, SqliteRunStore


EXIT_COMPLETED = 0
EXIT_ABORTED = 1
EXIT_INVALID = 2


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    log_level = logging.DEBUG if verbose else logging.INFO
    env_level = os.environ.get("BATCHLOAD_LOG_LEVEL")
    if env_level and not verbose:
        log_level = getattr(logging, env_level.strip().upper(), log_level)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_header_args(values: Optional[List[str]]) -> Optional[Dict[str, str]]:
    """Parse repeated ``NAME=VALUE`` header arguments."""
    if not values:
        return None
    headers = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ValidationError(f"Header must be NAME=VALUE, got '{item}'")
        headers[name.strip()] = value.strip()
    return headers


def apply_cli_options(options: RunOptions, args: argparse.Namespace) -> RunOptions:
    """Overlay command-line values on the configured run options."""
    if args.base_url:
        options.base_url = args.base_url
    if args.endpoint:
        options.endpoint = args.endpoint
    if args.method:
        options.method = args.method
    headers = parse_header_args(args.header)
    if headers:
        options.headers = dict(options.headers or {}, **headers)
    if args.username:
        options.credentials.username = args.username
    if args.password:
        options.credentials.password = args.password
    if args.tenant_id:
        options.credentials.tenant_id = args.tenant_id
    if args.access_token:
        options.credentials.access_token = args.access_token
    return options


def build_processor(config: BatchConfig, args: argparse.Namespace) -> RecordProcessor:
    """Build the record processor from configuration and arguments."""
    parser_config = dict(config.get_parser_config() or {})
    parser_type = args.parser or parser_config.pop("type", None) or "json"
    parser_config.pop("type", None)
    if args.csv_headers:
        parser_config["headers"] = args.csv_headers

    if parser_type == "csv":
        return CsvRecordProcessor(**parser_config)
    if parser_type == "fixed_width":
        return FixedWidthRecordProcessor(**parser_config)
    if parser_type == "json":
        return JsonLinesRecordProcessor(**parser_config)
    raise ValidationError(f"Unknown parser type: {parser_type}")


def build_store(config: BatchConfig, options: RunOptions, args: argparse.Namespace) -> RunStore:
    """Build the run store from configuration."""
    store_config = config.get_store_config()
    store_type = args.store or store_config.get("type", "sqlite")

    if store_type == "sqlite":
        db_path = Path(args.db_path or store_config.get("db_path", "local/state/batchload.db"))
        return SqliteRunStore(db_path=db_path)

    if store_type == "rest":
        base_url = store_config.get("base_url") or options.base_url
        if not base_url:
            raise ValidationError("store.base_url or a run base_url is required for the rest store")
        return RestRunStore(
            base_url=base_url,
            access_token=(
                os.environ.get("BATCHLOAD_ACCESS_TOKEN") or options.credentials.access_token
            ),
            timeout=config.get_transport_config().get("timeout", 10),
        )

    raise ValidationError(f"Unknown store type: {store_type}")


def build_transport(config: BatchConfig) -> HttpTransport:
    """Build the HTTP transport from configuration."""
    transport_config = config.get_transport_config()
    return HttpTransport(
        timeout=transport_config.get("timeout", 10),
        max_attempts=transport_config.get("max_attempts", 1),
        user_agent=transport_config.get("user_agent"),
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Throttled bulk loader: one HTTP request per line of a text file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("file", type=Path, help="Input file, one record per line")
    parser.add_argument("--config", type=Path, help="Path to configuration YAML file")

    request = parser.add_argument_group("request")
    request.add_argument("--base-url", help="Base URL for relative endpoints")
    request.add_argument("--endpoint", help="Endpoint path or absolute URL")
    request.add_argument("--method", help="HTTP method (e.g. POST)")
    request.add_argument(
        "--header",
        action="append",
        metavar="NAME=VALUE",
        help="Extra request header (repeatable)",
    )

    auth = parser.add_argument_group("credentials")
    auth.add_argument("--username", help="Login user name")
    auth.add_argument("--password", help="Login password")
    auth.add_argument("--tenant-id", help="Tenant id sent on login")
    auth.add_argument("--access-token", help="Access token (used when not logging in)")

    parsing = parser.add_argument_group("parsing")
    parsing.add_argument(
        "--parser",
        choices=["csv", "fixed_width", "json"],
        help="Built-in record processor (default: json)",
    )
    parsing.add_argument("--csv-headers", help="CSV headers, e.g. 'name, balance'")

    storage = parser.add_argument_group("storage")
    storage.add_argument("--store", choices=["sqlite", "rest"], help="Run store type")
    storage.add_argument("--db-path", help="SQLite database path")

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    setup_logging(verbose=args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = BatchConfig(config_path=args.config)
        runner_config = config.get_runner_config()
        options = apply_cli_options(config.get_run_options(), args)
        processor = build_processor(config, args)
        store = build_store(config, options, args)
    except (ValidationError, FileNotFoundError, TypeError) as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_INVALID

    logger.info(f"Run store: {store.get_name()}, processor: {type(processor).__name__}")
    transport = build_transport(config)

    try:
        runner = BatchRunner(
            file_path=args.file,
            options=options,
            processor=processor,
            transport=transport,
            store=store,
            config=runner_config,
        )
        stats = asyncio.run(runner.run())
    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_INVALID
    except RunAbortedError as e:
        stats = e.stats
        print(
            f"Run {getattr(stats, 'run_id', None) or '-'} aborted: {e.reason} "
            f"(total={getattr(stats, 'total_record_count', 0)}, "
            f"succeeded={getattr(stats, 'success_count', 0)}, "
            f"failed={getattr(stats, 'failure_count', 0)})"
        )
        return EXIT_ABORTED
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_ABORTED
    finally:
        transport.close()
        store.close()

    print(
        f"Run {stats.run_id} completed: total={stats.total_record_count}, "
        f"succeeded={stats.success_count}, failed={stats.failure_count}, "
        f"duration_ms={stats.duration_ms}"
    )
    return EXIT_COMPLETED


if __name__ == "__main__":
    sys.exit(main())
