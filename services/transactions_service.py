"""Service layer for storing and reading transactions in MongoDB."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from models.transaction import Transaction, TransactionCreate

logger = logging.getLogger(__name__)

COUNTERS_COLLECTION = "counters"


# --- Helpers ---

def _doc_to_transaction(doc: Dict[str, Any]) -> Transaction:
    doc = dict(doc)
    doc.pop('_id', None)
    if isinstance(doc.get('date'), datetime):
        doc['date'] = doc['date'].date()
    return Transaction(**doc)


async def next_transaction_id(collection: AsyncIOMotorCollection) -> int:
    """Allocates the next integer id from the counters document that belongs to this collection."""
    counters = collection.database.get_collection(COUNTERS_COLLECTION)
    result = await counters.find_one_and_update(
        {"_id": collection.name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(result["seq"])


# --- Database Interaction Functions (Depend on collection passed from route) ---

async def ensure_indexes(collection: AsyncIOMotorCollection) -> None:
    """Creates the unique id index and the date listing index if they are missing."""
    logger.info(f"Ensuring indexes on collection '{collection.name}'...")
    try:
        await collection.create_index([("id", ASCENDING)], unique=True)
        await collection.create_index([("date", DESCENDING), ("created_at", DESCENDING)])
    except Exception as e:
        logger.error(f"Database error creating indexes: {e}")
        raise ConnectionError(f"Database error creating indexes: {e}")


async def get_all_transactions_from_db(collection: AsyncIOMotorCollection) -> List[Transaction]:
    """Fetches every transaction, newest date first and newest entry first within a day."""
    logger.info(f"Fetching all transactions from collection '{collection.name}'...")
    transactions = []
    try:
        cursor = collection.find({}).sort([("date", DESCENDING), ("created_at", DESCENDING)])
        async for doc in cursor:
            try:
                transactions.append(_doc_to_transaction(doc))
            except ValidationError as e:
                logger.error(f"Data validation error for document ID {doc.get('id', 'N/A')}: {e}")
                # Skip invalid documents
                continue
        logger.info(f"Fetched {len(transactions)} transactions successfully.")
    except Exception as e:
        logger.error(f"Database error fetching transactions: {e}")
        raise ConnectionError(f"Database error fetching transactions: {e}")
    return transactions


async def create_transaction(collection: AsyncIOMotorCollection, payload: TransactionCreate) -> int:
    """Stores a validated transaction and returns its new id."""
    try:
        new_id = await next_transaction_id(collection)
        doc = {
            "id": new_id,
            "date": payload.date.isoformat(),
            "amount": payload.amount,
            "type": payload.type,
            "reason": payload.reason,
            "description": payload.description or "",
            "created_at": datetime.now(timezone.utc),
        }
        await collection.insert_one(doc)
    except Exception as e:
        logger.error(f"Database error creating transaction: {e}")
        raise ConnectionError(f"Database error creating transaction: {e}")
    logger.info(f"Created transaction {new_id} ({payload.type} {payload.amount} '{payload.reason}').")
    return new_id


async def delete_transaction(collection: AsyncIOMotorCollection, transaction_id: int) -> bool:
    """Deletes one transaction. Returns False when no record had that id."""
    logger.warning(f"Deleting transaction {transaction_id} from collection '{collection.name}'.")
    try:
        result = await collection.delete_one({"id": transaction_id})
    except Exception as e:
        logger.error(f"Database error deleting transaction {transaction_id}: {e}")
        raise ConnectionError(f"Database error deleting transaction: {e}")
    deleted = result.deleted_count > 0
    if not deleted:
        logger.info(f"No transaction with id {transaction_id} to delete.")
    return deleted


# --- Maintenance ---

async def reclassify_as_saved(collection: AsyncIOMotorCollection, reason: str, amount: float = None) -> int:
    """
    Marks transactions with the given reason (and amount, when given) as 'saved'.
    Used to move legacy savings entries that were recorded as expenses out of the expense totals.
    """
    query: Dict[str, Any] = {"reason": reason, "type": {"$ne": "saved"}}
    if amount is not None:
        query["amount"] = amount
    logger.info(f"Reclassifying transactions matching {query} as 'saved'...")
    try:
        result = await collection.update_many(query, {"$set": {"type": "saved"}})
    except Exception as e:
        logger.error(f"Database error reclassifying transactions: {e}")
        raise ConnectionError(f"Database error reclassifying transactions: {e}")
    logger.info(f"Reclassified {result.modified_count} transactions.")
    return result.modified_count


async def sync_id_counter(collection: AsyncIOMotorCollection) -> int:
    """Moves the id counter up to the highest stored id so imported rows never collide with new ones."""
    try:
        highest = await collection.find_one({}, sort=[("id", DESCENDING)])
        top_id = int(highest["id"]) if highest else 0
        counters = collection.database.get_collection(COUNTERS_COLLECTION)
        await counters.update_one({"_id": collection.name}, {"$max": {"seq": top_id}}, upsert=True)
    except Exception as e:
        logger.error(f"Database error syncing id counter: {e}")
        raise ConnectionError(f"Database error syncing id counter: {e}")
    logger.info(f"Id counter for '{collection.name}' is at least {top_id}.")
    return top_id
