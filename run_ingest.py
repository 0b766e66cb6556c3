"""CLI entry point.

Runs source connectors against the listing store, or cleans the store up.

Examples:
    python run_ingest.py ingest
    python run_ingest.py ingest --source euractiv --source eu-agencies --limit 20
    python run_ingest.py ingest --dry-run
    python run_ingest.py ingest --notify
    python run_ingest.py purge --source eurobrussels
    python run_ingest.py purge --created-from 2024-05-01 --created-to 2024-05-02

Settings come from the environment or a local ``.env`` file (see
``listing_ingest/config.py``). Exit status is 1 when the store is unreachable
or any source run aborted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import List, Optional

from listing_ingest.config import Settings, load_settings
from listing_ingest.dispatch import DispatchQueue, ResendEmailSender
from listing_ingest.errors import StoreError, StoreUnavailableError
from listing_ingest.log import configure_logging
from listing_ingest.maintenance import delete_by_source, delete_created_between
from listing_ingest.net import build_client
from listing_ingest.pipeline import IngestPipeline
from listing_ingest.sources import create_source, source_names
from listing_ingest.store import InMemoryListingStore, MongoListingStore
from listing_ingest.utils import parse_datetime

logger = logging.getLogger("run_ingest")


def _date_arg(value: str) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"not a date: {value!r}")
    return parsed


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Ingest EU job listings into the job board store.")
    p.add_argument("--env-file", type=str, default=None, help="Path to a .env file.")
    sub = p.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Run source connectors.")
    ingest.add_argument(
        "--source",
        action="append",
        choices=source_names(),
        help="Source to run (repeatable). Default: all sources.",
    )
    ingest.add_argument("--limit", type=int, default=None, help="Max candidates per source.")
    ingest.add_argument(
        "--notify",
        action="store_true",
        help="Email contacts found in new listings (also enabled by NOTIFY_CONTACTS).",
    )
    ingest.add_argument(
        "--dry-run",
        action="store_true",
        help="Use an empty in-memory store and send no email.",
    )

    purge = sub.add_parser("purge", help="Delete listings from the store.")
    purge.add_argument("--source", type=str, default=None, help="Delete every listing from this source.")
    purge.add_argument("--created-from", type=_date_arg, default=None, help="Inclusive lower bound (UTC).")
    purge.add_argument("--created-to", type=_date_arg, default=None, help="Exclusive upper bound (UTC).")

    args = p.parse_args(argv)
    if args.command == "purge":
        has_range = args.created_from is not None or args.created_to is not None
        if args.source and has_range:
            p.error("purge takes either --source or --created-from/--created-to, not both")
        if not args.source and not (args.created_from and args.created_to):
            p.error("purge needs --source, or both --created-from and --created-to")
    if args.command == "ingest" and args.limit is not None and args.limit <= 0:
        p.error("--limit must be positive")
    return args


def _build_queue(settings: Settings):
    if not settings.resend_api_key:
        logger.warning("Notifications requested but RESEND_API_KEY is not set; not sending email")
        return None, None
    sender = ResendEmailSender(settings.resend_api_key, settings.email_from, timeout_s=settings.http_timeout_s)
    return sender, DispatchQueue(sender)


async def ingest(args: argparse.Namespace, settings: Settings) -> int:
    names = args.source or source_names()
    explicit = bool(args.source)

    if args.dry_run:
        store = InMemoryListingStore()
    else:
        try:
            store = await MongoListingStore.connect(settings.mongodb_uri, settings.mongodb_db)
        except StoreUnavailableError as e:
            logger.error(f"Store unavailable: {e}")
            return 1

    sender, queue = None, None
    if (args.notify or settings.notify_contacts) and not args.dry_run:
        sender, queue = _build_queue(settings)

    failed = False
    try:
        async with build_client(settings.http_timeout_s) as client:
            pipeline = IngestPipeline(
                store, client, queue=queue, notification_subject=settings.notification_subject
            )
            for name in names:
                try:
                    source = create_source(name, settings)
                except ValueError as e:
                    if explicit:
                        logger.error(f"Cannot run {name}: {e}")
                        failed = True
                    else:
                        logger.warning(f"Skipping {name}: {e}")
                    continue
                if args.limit is not None:
                    source.max_candidates = args.limit
                stats = await pipeline.run(source)
                print(stats.summary())
                failed = failed or stats.aborted
    finally:
        if queue is not None:
            await queue.join()
        if sender is not None:
            await sender.aclose()
        if isinstance(store, MongoListingStore):
            await store.close()
    return 1 if failed else 0


async def purge(args: argparse.Namespace, settings: Settings) -> int:
    try:
        store = await MongoListingStore.connect(settings.mongodb_uri, settings.mongodb_db)
    except StoreUnavailableError as e:
        logger.error(f"Store unavailable: {e}")
        return 1
    try:
        if args.source:
            deleted = await delete_by_source(store, args.source)
        else:
            deleted = await delete_created_between(store, args.created_from, args.created_to)
    except (StoreError, ValueError) as e:
        logger.error(f"Purge failed: {e}")
        return 1
    finally:
        await store.close()
    print(f"Deleted {deleted} listing(s)")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.env_file)
    configure_logging(settings.log_level)
    if args.command == "ingest":
        return asyncio.run(ingest(args, settings))
    return asyncio.run(purge(args, settings))


if __name__ == "__main__":
    sys.exit(main())
