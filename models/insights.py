"""Pydantic models for filter settings and the derived views built from transactions"""
from pydantic import BaseModel, field_validator
from datetime import date
from typing import List, Literal, Optional, Union
from models.transaction import Transaction, TransactionType

SortField = Literal['date', 'amount', 'type']
SortOrder = Literal['asc', 'desc']
SORT_FIELDS = ('date', 'amount', 'type')
SORT_ORDERS = ('asc', 'desc')

RUNWAY_UNBOUNDED = "unbounded"


class FilterSpec(BaseModel):
    """
    Immutable description of what slice of the transactions to show and how to order it.

    When neither date bound is set and scope_to_current_month is True, only the
    current calendar month is kept. Amount bounds that do not parse as numbers
    are dropped rather than rejected.
    """
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    search: Optional[str] = None
    type: Optional[TransactionType] = None
    scope_to_current_month: bool = True
    sort_by: SortField = 'date'
    sort_order: SortOrder = 'desc'

    @field_validator('min_amount', 'max_amount', mode='before')
    @classmethod
    def _ignore_bad_amount(cls, value):
        if value is None or isinstance(value, bool):
            return None
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return None
        if parsed != parsed:  # NaN
            return None
        return parsed

    @field_validator('search', mode='before')
    @classmethod
    def _blank_search(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    class Config:
        frozen = True


class MonthGroup(BaseModel):
    """Transactions sharing a calendar month, with their net liquid flow."""
    year: int
    month: int
    label: str
    total: float
    total_display: str
    transactions: List[Transaction]


class DailySpend(BaseModel):
    date: date
    total: float


class ReasonTotal(BaseModel):
    reason: str
    total: float


class TagCount(BaseModel):
    tag: str
    count: int


class InsightSet(BaseModel):
    """Derived figures shown on the insights cards."""
    has_data: bool = False
    liquid_balance: float = 0.0
    total_saved: float = 0.0
    month_income: float = 0.0
    month_expense: float = 0.0
    month_saved: float = 0.0
    month_outflow: float = 0.0
    daily_burn: float = 0.0
    projected_expense: float = 0.0
    projected_balance: float = 0.0
    savings_rate: int = 0
    runway: Union[int, Literal['unbounded']] = RUNWAY_UNBOUNDED
    top_reasons: List[ReasonTotal] = []
    frequent_tags: List[TagCount] = []
    top_expense: Optional[Transaction] = None
    last_7_days: List[DailySpend] = []


class TransactionView(BaseModel):
    """Everything the transactions page needs for one render."""
    transactions: List[Transaction]
    month_groups: List[MonthGroup]
    insights: InsightSet
