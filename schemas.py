import datetime as dt
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import ExpenseStatus, TransactionType
from periods import to_local_naive


class PeriodIn(BaseModel):
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)


class RecurringExpenseIn(BaseModel):
    concept: str = Field(..., min_length=1, max_length=200)
    category_id: int
    currency_code: str = Field(..., min_length=3, max_length=3)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)

    @field_validator("concept")
    @classmethod
    def _strip_concept(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Concept must not be blank")
        return value

    @field_validator("currency_code")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        value = value.strip().upper()
        if not value.isalpha():
            raise ValueError("Currency code must be three letters")
        return value


class RecurringExpenseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    concept: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category_id: Optional[int] = None
    currency_code: Optional[str] = Field(default=None, min_length=3, max_length=3)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    is_active: Optional[bool] = None

    @field_validator("concept")
    @classmethod
    def _strip_concept(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Concept must not be blank")
        return value

    @field_validator("currency_code")
    @classmethod
    def _normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip().upper()
        if not value.isalpha():
            raise ValueError("Currency code must be three letters")
        return value


class PayMonthlyExpenseIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: int = Field(..., gt=0)
    account_id: int
    paid_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("paid_date")
    @classmethod
    def _localize_paid_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(value) if value is not None else None


class UpdateMonthlyExpenseIn(BaseModel):
    """Partial edit of a paid instance.

    Only fields present in the payload are applied; ``notes=None`` sent explicitly
    clears the notes.
    """

    model_config = ConfigDict(extra="forbid")

    amount_cents: Optional[int] = Field(default=None, gt=0)
    account_id: Optional[int] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("paid_date")
    @classmethod
    def _localize_paid_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(value) if value is not None else None


class GenerateIn(PeriodIn):
    pass


class GenerationResultOut(BaseModel):
    created: int
    skipped: int
    errors: int
    month: int
    year: int


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    category_id: int
    type: TransactionType
    amount_cents: int
    concept: str
    date: dt.date
    occurred_at: datetime
    note: Optional[str]
    deleted_at: Optional[datetime]


class MonthlyExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    recurring_expense_id: int
    month: int
    year: int
    concept: str
    category_id: int
    amount_cents: int
    previous_amount_cents: int
    status: ExpenseStatus
    account_id: Optional[int]
    paid_date: Optional[datetime]
    notes: Optional[str]
    transaction_id: Optional[int]


class RecurringExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    concept: str
    category_id: int
    currency_code: str
    due_day: Optional[int]
    is_active: bool


class PaymentOut(BaseModel):
    monthly_expense: MonthlyExpenseOut
    transaction: TransactionOut


class MonthlyExpenseListOut(BaseModel):
    monthly_expenses: list[MonthlyExpenseOut]
    count: int
    month: int
    year: int
