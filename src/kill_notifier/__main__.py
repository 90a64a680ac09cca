#!/usr/bin/env python3
"""
Kill Notifier CLI Entry Point

Run with: python -m kill_notifier <command> [args]

Commands:
    run      Process newline-delimited JSON killmails from a file or stdin
    config   Show the effective configuration
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, TextIO

from .core.config import get_settings
from .core.logging import get_logger
from .services.killmail import (
    EsiNameResolver,
    InMemoryTrackingStore,
    PoolConfig,
    SQLiteKillmailStore,
    WorkerPool,
    build_pipeline,
)
from .services.killmail.models import NotificationDocument
from .services.killmail.notifications import DiscordChannelClient, SendResult

logger = get_logger(__name__)


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent, default=str))


class PrintingDeliveryClient:
    """Delivery client that writes documents to stdout instead of Discord."""

    async def deliver(self, channel_id: str, document: NotificationDocument) -> SendResult:
        output_json({"channel_id": channel_id, "document": document.to_dict()})
        return SendResult(success=True, status_code=200)


async def _run(stream: TextIO, dry_run: bool) -> dict[str, Any]:
    settings = get_settings()

    if settings.tracking_file:
        tracking = InMemoryTrackingStore.from_yaml(settings.tracking_file)
    else:
        logger.warning("No tracking file configured; every kill will be skipped")
        tracking = InMemoryTrackingStore()

    store = None
    if settings.killmail_db_path:
        store = SQLiteKillmailStore(settings.killmail_db_path)
        await store.initialize()

    delivery: Any
    if dry_run:
        delivery = PrintingDeliveryClient()
    else:
        delivery = DiscordChannelClient.from_settings(settings)

    try:
        async with EsiNameResolver.from_settings(settings) as resolver:
            pipeline = build_pipeline(settings, resolver, delivery, tracking, store)
            pool = WorkerPool(pipeline, PoolConfig.from_settings(settings))
            pool.start()

            for line_no, line in enumerate(stream, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    raw = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning("Line %d is not JSON: %s", line_no, e)
                    continue
                await pool.submit(raw)

            await pool.stop()
            return {"pipeline": pipeline.get_status(), "pool": pool.stats()}
    finally:
        if isinstance(delivery, DiscordChannelClient):
            await delivery.close()
        if store is not None:
            await store.close()


def cmd_run(args: argparse.Namespace) -> int:
    if args.input == "-":
        status = asyncio.run(_run(sys.stdin, args.dry_run))
    else:
        with open(args.input) as f:
            status = asyncio.run(_run(f, args.dry_run))
    output_json(status)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    settings = get_settings()
    data = settings.model_dump(mode="json")
    if data.get("discord_bot_token"):
        data["discord_bot_token"] = "***"
    output_json(data)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="kill_notifier",
        description="Killmail enrichment and notification pipeline",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Process NDJSON killmails")
    run_parser.add_argument(
        "--input", "-i", default="-", help="NDJSON file of killmails (default: stdin)"
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print notifications instead of posting to Discord",
    )
    run_parser.set_defaults(func=cmd_run)

    config_parser = subparsers.add_parser("config", help="Show effective configuration")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
