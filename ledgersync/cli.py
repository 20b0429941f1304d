"""Run the transaction sync engine for one user."""

import argparse
import asyncio
from typing import Optional

import structlog

from ledgersync.audit import configure_logging
from ledgersync.config import get_settings, validate_all_settings
from ledgersync.store import JsonFileTransactionStore, StoreError
from ledgersync.sync import SyncService, create_sync_service


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronize local transactions with Firestore")
    parser.add_argument("--user", required=True, help="Authenticated user id (Firebase UID)")
    parser.add_argument(
        "--store",
        type=str,
        default=None,
        help="Path of the local store file (defaults to SYNC_LOCAL_STORE_PATH)",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running: listen for remote changes and retry pending ones",
    )
    parser.add_argument(
        "--migrate-orphans",
        action="store_true",
        help="Reassign transactions without a valid account before syncing",
    )
    return parser.parse_args(argv)


async def _run_once(service: SyncService, migrate_orphans: bool) -> int:
    if migrate_orphans:
        migrated = await service.migrate_orphaned_transactions()
        print(f"Migrated {migrated} orphaned transactions")

    report = await service.force_sync()
    print(f"{report.outcome.value}: pushed={report.pushed} deleted={report.deleted} "
          f"merged={report.merged} conflicts={len(report.conflicts)}")
    if report.error_message:
        print(f"Error: {report.error_message}")
    return 0 if report.succeeded else 1


async def _run_forever(service: SyncService, migrate_orphans: bool) -> int:
    service.add_status_observer(lambda status: print(status.description))
    if migrate_orphans:
        await service.migrate_orphaned_transactions()

    await service.start()
    try:
        await asyncio.Event().wait()
    finally:
        await service.stop()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.app.log_level)
    logger = structlog.get_logger("ledgersync.cli")

    checks = validate_all_settings()
    for name in ("sync", "firestore", "app"):
        if not checks[name]:
            print(f"Configuration error in {name}: {checks.get(f'{name}_error')}")
            return 2

    try:
        store = None
        if args.store:
            store = JsonFileTransactionStore(args.store, user_id=args.user)
        service = create_sync_service(args.user, store=store, settings=settings)
    except StoreError as e:
        print(f"Error: {e}")
        return 2

    logger.info("cli_started", user_id=args.user, watch=args.watch)
    runner = _run_forever if args.watch else _run_once
    try:
        return asyncio.run(runner(service, args.migrate_orphans))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
