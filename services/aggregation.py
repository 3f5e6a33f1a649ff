"""Aggregation and insight engine over a snapshot of transactions.

Everything here is pure: callers pass the transactions, a FilterSpec and the
current date, and get plain data back. Nothing reads the clock or touches the
database.
"""
import calendar
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from models.transaction import Transaction
from models.insights import (
    FilterSpec,
    MonthGroup,
    DailySpend,
    ReasonTotal,
    TagCount,
    InsightSet,
    TransactionView,
    RUNWAY_UNBOUNDED,
)
from utils.formatting import format_currency, month_label

logger = logging.getLogger(__name__)

TOP_REASONS_LIMIT = 5
FREQUENT_TAGS_LIMIT = 3
TREND_DAYS = 7


# --- Small helpers ---

def _sum_type(transactions: Iterable[Transaction], tx_type: str) -> float:
    return sum(t.amount for t in transactions if t.type == tx_type)


def net_flow(transactions: Iterable[Transaction]) -> float:
    """
    Income minus expense minus saved. Saved money leaves the liquid pool.

    Amounts are floats, so totals summed per month match this one only within
    float tolerance unless every amount is a whole number.
    """
    total = 0.0
    for t in transactions:
        total += t.amount if t.type == 'income' else -t.amount
    return total


def signed_amount(transaction: Transaction) -> float:
    return transaction.amount if transaction.type == 'income' else -transaction.amount


def in_month(transaction: Transaction, year: int, month: int) -> bool:
    return transaction.date.year == year and transaction.date.month == month


def current_month(transactions: Iterable[Transaction], today: date) -> List[Transaction]:
    return [t for t in transactions if in_month(t, today.year, today.month)]


def reason_key(reason: str) -> str:
    """Lowercased first whitespace-delimited word of a reason ('Lunch at cafe' -> 'lunch')."""
    words = reason.split()
    return words[0].lower() if words else ""


# --- Filtering & sorting ---

def _matches(transaction: Transaction, spec: FilterSpec, today: date) -> bool:
    if spec.has_date_range:
        if spec.start_date is not None and transaction.date < spec.start_date:
            return False
        if spec.end_date is not None and transaction.date > spec.end_date:
            return False
    elif spec.scope_to_current_month and not in_month(transaction, today.year, today.month):
        return False

    if spec.min_amount is not None and transaction.amount < spec.min_amount:
        return False
    if spec.max_amount is not None and transaction.amount > spec.max_amount:
        return False

    if spec.type is not None and transaction.type != spec.type:
        return False

    if spec.search:
        needle = spec.search.lower()
        if needle not in transaction.reason.lower() and needle not in (transaction.description or "").lower():
            return False
    return True


def filter_transactions(transactions: Sequence[Transaction], spec: FilterSpec, today: date) -> List[Transaction]:
    """Returns the transactions that satisfy every active filter predicate, in input order."""
    return [t for t in transactions if _matches(t, spec, today)]


_SORT_KEYS = {
    'date': lambda t: t.date,
    'amount': signed_amount,
    'type': lambda t: t.type,
}


def sort_transactions(transactions: Sequence[Transaction], sort_by: str = 'date', sort_order: str = 'desc') -> List[Transaction]:
    """
    Stable sort by date, signed amount or type.

    Equal keys keep their original relative order in both directions.
    """
    if sort_by not in _SORT_KEYS:
        raise ValueError(f"Invalid sort field: {sort_by}")
    return sorted(transactions, key=_SORT_KEYS[sort_by], reverse=(sort_order == 'desc'))


def apply_filter(transactions: Sequence[Transaction], spec: FilterSpec, today: date) -> List[Transaction]:
    """Filter then sort, as the table and export views show them."""
    filtered = filter_transactions(transactions, spec, today)
    return sort_transactions(filtered, spec.sort_by, spec.sort_order)


# --- Month grouping ---

def group_by_month(transactions: Sequence[Transaction]) -> List[MonthGroup]:
    """
    Partitions transactions by (year, month), most recent month first.

    Group order comes from the month itself, so it does not depend on how the
    input happens to be sorted. Members keep their input order.
    """
    buckets: Dict[Tuple[int, int], List[Transaction]] = {}
    for t in transactions:
        buckets.setdefault((t.date.year, t.date.month), []).append(t)

    groups = []
    for (year, month) in sorted(buckets, reverse=True):
        members = buckets[(year, month)]
        total = net_flow(members)
        groups.append(MonthGroup(
            year=year,
            month=month,
            label=month_label(year, month),
            total=total,
            total_display=format_currency(total),
            transactions=members,
        ))
    return groups


# --- Insights ---

def top_reasons(transactions: Iterable[Transaction], limit: int = TOP_REASONS_LIMIT) -> List[ReasonTotal]:
    """Expense totals per reason keyword, largest first; ties keep first-seen order."""
    totals: Dict[str, float] = {}
    for t in transactions:
        if t.type != 'expense':
            continue
        key = reason_key(t.reason)
        totals[key] = totals.get(key, 0.0) + t.amount
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [ReasonTotal(reason=k, total=v) for k, v in ranked[:limit]]


def frequent_tags(transactions: Iterable[Transaction], limit: int = FREQUENT_TAGS_LIMIT) -> List[TagCount]:
    """How often each reason keyword appears among expenses, most frequent first."""
    counts: Dict[str, int] = {}
    for t in transactions:
        if t.type != 'expense':
            continue
        key = reason_key(t.reason)
        counts[key] = counts.get(key, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [TagCount(tag=k, count=v) for k, v in ranked[:limit]]


def largest_expense(transactions: Iterable[Transaction]) -> Optional[Transaction]:
    best = None
    for t in transactions:
        if t.type == 'expense' and (best is None or t.amount > best.amount):
            best = t
    return best


def last_7_days(transactions: Iterable[Transaction], today: date) -> List[DailySpend]:
    """Daily expense totals for today and the six days before it, oldest first."""
    days = [today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1)]
    totals = {day: 0.0 for day in days}
    for t in transactions:
        if t.type == 'expense' and t.date in totals:
            totals[t.date] += t.amount
    return [DailySpend(date=day, total=totals[day]) for day in days]


def runway_days(liquid_balance: float, daily_burn: float):
    """Whole days the liquid balance lasts at the current burn, or RUNWAY_UNBOUNDED when nothing is being spent."""
    if daily_burn <= 0:
        return RUNWAY_UNBOUNDED
    return int(liquid_balance // daily_burn)


def compute_insights(visible: Sequence[Transaction], all_transactions: Sequence[Transaction], today: date) -> InsightSet:
    """
    Builds the insight cards.

    `visible` is the filtered slice the user is looking at; balance, savings total
    and reason rankings come from it. Burn rate, projections and savings rate
    always use the real current month of `all_transactions` so they stay
    anchored to today whatever the filter is. The 7-day trend also ignores filters.
    """
    if not all_transactions:
        logger.debug("No transactions, returning empty insights.")
        return InsightSet(last_7_days=last_7_days([], today))

    month = current_month(all_transactions, today)
    month_income = _sum_type(month, 'income')
    month_expense = _sum_type(month, 'expense')
    month_saved = _sum_type(month, 'saved')

    days_elapsed = max(today.day, 1)
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    daily_burn = month_expense / days_elapsed
    projected_expense = daily_burn * days_in_month

    liquid_balance = net_flow(visible)
    # half-up like Math.round; the ratio is never negative
    savings_rate = int(month_saved / month_income * 100 + 0.5) if month_income > 0 else 0

    return InsightSet(
        has_data=True,
        liquid_balance=liquid_balance,
        total_saved=_sum_type(visible, 'saved'),
        month_income=month_income,
        month_expense=month_expense,
        month_saved=month_saved,
        month_outflow=month_expense + month_saved,
        daily_burn=daily_burn,
        projected_expense=projected_expense,
        projected_balance=month_income - projected_expense - month_saved,
        savings_rate=savings_rate,
        runway=runway_days(liquid_balance, daily_burn),
        top_reasons=top_reasons(visible),
        frequent_tags=frequent_tags(visible),
        top_expense=largest_expense(month),
        last_7_days=last_7_days(all_transactions, today),
    )


def build_view(transactions: Sequence[Transaction], spec: FilterSpec, today: date) -> TransactionView:
    """Runs one full pass: sorted visible rows, their month groups and the insights."""
    rows = apply_filter(transactions, spec, today)
    logger.debug(f"View built: {len(rows)} of {len(transactions)} transactions visible")
    return TransactionView(
        transactions=rows,
        month_groups=group_by_month(rows),
        insights=compute_insights(rows, transactions, today),
    )
