"""API Routes for transactions"""
from fastapi import APIRouter, HTTPException, Depends, Request, Query, Response
from typing import List, Annotated, Optional, Dict, Any
from datetime import date
from services import transactions_service, aggregation
from models.transaction import Transaction, TransactionCreate, TRANSACTION_TYPES
from models.insights import FilterSpec, TransactionView, SORT_FIELDS, SORT_ORDERS
from utils.csv_export import transactions_to_csv
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


# --- Dependency Functions ---
def get_transactions_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB transactions collection from the request state."""
    collection = getattr(request.state, "transactions_collection", None)
    if collection is None:
        logger.error("Transactions collection not found in application state. Check MongoDB connection.")
        raise HTTPException(status_code=503, detail="Database service not available.")
    return collection


def get_today() -> date:
    """The date insights are anchored to. Overridden in tests."""
    return date.today()


def get_filter_spec(
    start_date: Optional[date] = Query(None, description="Earliest date to include (YYYY-MM-DD)."),
    end_date: Optional[date] = Query(None, description="Latest date to include (YYYY-MM-DD)."),
    min_amount: Optional[str] = Query(None, description="Smallest amount to include. Ignored if not a number."),
    max_amount: Optional[str] = Query(None, description="Largest amount to include. Ignored if not a number."),
    search: Optional[str] = Query(None, description="Case-insensitive text matched against reason and description."),
    type: Optional[str] = Query(None, description="Only this type: income, expense or saved."),
    all_months: bool = Query(False, description="Show every month instead of only the current one."),
    sort_by: str = Query('date', description="Field to sort by: date, amount or type."),
    sort_order: str = Query('desc', description="Sort order: asc or desc."),
) -> FilterSpec:
    if sort_by not in SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Invalid sort_by field. Allowed fields: {', '.join(SORT_FIELDS)}")
    if sort_order not in SORT_ORDERS:
        raise HTTPException(status_code=400, detail="Invalid sort_order value. Use 'asc' or 'desc'.")
    if type is not None and type not in TRANSACTION_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid type. Allowed types: {', '.join(TRANSACTION_TYPES)}")
    return FilterSpec(
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
        type=type,
        scope_to_current_month=not all_months,
        sort_by=sort_by,
        sort_order=sort_order,
    )


# Type hints for the dependencies
TransactionsCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_transactions_collection)]
TodayDep = Annotated[date, Depends(get_today)]
FilterSpecDep = Annotated[FilterSpec, Depends(get_filter_spec)]


async def _load_all(collection: AsyncIOMotorCollection) -> List[Transaction]:
    try:
        return await transactions_service.get_all_transactions_from_db(collection)
    except ConnectionError as ce:
        logger.error(f"Connection error fetching transactions: {ce}")
        raise HTTPException(status_code=503, detail=f"Database connection error: {ce}")
    except Exception as e:
        logger.exception(f"Unexpected error fetching transactions: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch transactions")


# --- API Routes ---

@router.get("/transactions", response_model=List[Transaction], summary="Get All Transactions", description="Retrieves every transaction, newest date first.")
async def get_transactions(collection: TransactionsCollectionDep) -> List[Transaction]:
    logger.info("GET /transactions endpoint called.")
    return await _load_all(collection)


@router.post("/transactions", status_code=201, summary="Add Transaction", description="Validates and stores a new income, expense or saved transaction.")
async def add_transaction(request: Request, collection: TransactionsCollectionDep):
    """
    Creates a transaction. Malformed bodies, missing fields, unknown types and
    non-positive amounts are rejected with a single 400 message before touching the database.
    """
    payload = await _read_json_object(request)
    logger.info(f"POST /transactions endpoint called with: {payload}")
    missing = [f for f in ("date", "amount", "type", "reason") if payload.get(f) in (None, "")]
    if missing:
        raise HTTPException(status_code=400, detail="Missing required fields: date, amount, type, reason")

    try:
        data = TransactionCreate(**payload)
    except ValidationError as e:
        logger.warning(f"Rejected transaction payload: {e}")
        raise HTTPException(status_code=400, detail=_first_error_message(e))

    try:
        new_id = await transactions_service.create_transaction(collection, data)
    except ConnectionError as ce:
        logger.error(f"ConnectionError creating transaction: {ce}")
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        logger.exception(f"Unexpected error creating transaction: {e}")
        raise HTTPException(status_code=500, detail="Failed to create transaction")
    return {"id": new_id, "message": "Transaction added"}


@router.delete("/transactions", summary="Delete Transaction", description="Deletes the transaction with the given id.")
async def remove_transaction(collection: TransactionsCollectionDep, id: Optional[str] = Query(None, description="Id of the transaction to delete.")):
    logger.info(f"DELETE /transactions endpoint called for id={id}")
    if not id:
        raise HTTPException(status_code=400, detail="Transaction ID is required")
    try:
        transaction_id = int(id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Transaction ID must be an integer")

    try:
        deleted = await transactions_service.delete_transaction(collection, transaction_id)
    except ConnectionError as ce:
        logger.error(f"ConnectionError deleting transaction {transaction_id}: {ce}")
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        logger.exception(f"Unexpected error deleting transaction {transaction_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete transaction")
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")
    return {"message": "Transaction deleted"}


@router.get("/transactions/view", response_model=TransactionView, summary="Transactions View", description="Filtered and sorted transactions with month groups and insights.")
async def get_transaction_view(collection: TransactionsCollectionDep, spec: FilterSpecDep, today: TodayDep) -> TransactionView:
    logger.info(f"GET /transactions/view endpoint called with {spec}")
    transactions = await _load_all(collection)
    return aggregation.build_view(transactions, spec, today)


@router.get("/transactions/export", summary="Export Transactions", description="Downloads the filtered and sorted transactions as CSV.")
async def export_transactions(collection: TransactionsCollectionDep, spec: FilterSpecDep, today: TodayDep) -> Response:
    logger.info(f"GET /transactions/export endpoint called with {spec}")
    transactions = await _load_all(collection)
    rows = aggregation.apply_filter(transactions, spec, today)
    return Response(
        content=transactions_to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


async def _read_json_object(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Rejected transaction payload: body is not valid JSON")
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    if not isinstance(payload, dict):
        logger.warning(f"Rejected transaction payload of type {type(payload).__name__}")
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def _first_error_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    if field == "amount":
        return "Amount must be a positive number"
    if field == "type":
        return f"Type must be one of: {', '.join(TRANSACTION_TYPES)}"
    return f"{field}: {first.get('msg')}" if field else str(first.get('msg'))
