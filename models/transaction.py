"""Pydantic models for transaction records and create payloads"""
from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Literal, Optional

TransactionType = Literal['income', 'expense', 'saved']
TRANSACTION_TYPES = ('income', 'expense', 'saved')


class Transaction(BaseModel):
    """
    Represents a single stored income, expense or saved transaction.
    Records are never updated once created.
    """
    id: int
    date: date
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    type: TransactionType
    reason: str = Field(..., min_length=1)
    description: str = ""
    created_at: Optional[datetime] = None

    @field_validator('description', mode='before')
    @classmethod
    def _none_description(cls, value):
        return "" if value is None else value

    class Config:
        populate_by_name = True
        from_attributes = True
        frozen = True


class TransactionCreate(BaseModel):
    """Payload accepted when recording a new transaction."""
    date: date
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    type: TransactionType
    reason: str
    description: Optional[str] = ""

    @field_validator('reason')
    @classmethod
    def _reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Reason cannot be empty")
        return value

    @field_validator('description', mode='before')
    @classmethod
    def _none_description(cls, value):
        return "" if value is None else value
