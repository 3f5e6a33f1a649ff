"""
Database maintenance for the transactions collection.

Creates indexes, moves the id counter past existing records and reclassifies
legacy savings entries (recorded as expenses before the 'saved' type existed)
as 'saved'.

    python migrate.py
    python migrate.py --reason Savings --amount 800000
"""
import argparse
import asyncio
import logging
import os

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient
from rich.logging import RichHandler

from services import transactions_service

logger = logging.getLogger("migrate")


async def run_all_migrations(collection, reason: str = None, amount: float = None) -> dict:
    """Run every maintenance step against the given collection and report what changed."""
    logger.info("=" * 60)
    logger.info("Finance Tracker Database Migration")
    logger.info("=" * 60)

    await transactions_service.ensure_indexes(collection)
    top_id = await transactions_service.sync_id_counter(collection)

    reclassified = 0
    if reason:
        reclassified = await transactions_service.reclassify_as_saved(collection, reason, amount)
    else:
        logger.info("No --reason given, skipping reclassification.")

    logger.info("=" * 60)
    logger.info("Migration complete!")
    logger.info("=" * 60)
    return {"top_id": top_id, "reclassified": reclassified}


async def _main(args: argparse.Namespace) -> None:
    client = AsyncIOMotorClient(os.getenv("MONGODB_URI"))
    try:
        db = client[os.getenv("DB_NAME", "finance_db")]
        collection = db.get_collection(os.getenv("COLLECTION_NAME", "transactions"))
        await run_all_migrations(collection, reason=args.reason, amount=args.amount)
    finally:
        client.close()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run maintenance migrations on the transactions collection.")
    parser.add_argument("--reason", help="Reason of legacy entries to mark as 'saved' (exact match).")
    parser.add_argument("--amount", type=float, help="Only reclassify entries with exactly this amount.")
    return parser.parse_args(argv)


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level="INFO", format="%(message)s", handlers=[RichHandler(show_path=False)])
    try:
        asyncio.run(_main(parse_args()))
    except ConnectionError as e:
        logger.error(f"Migration failed: {e}")
        raise SystemExit(1)
