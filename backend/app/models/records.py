from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class RecordKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"

    @property
    def table(self) -> str:
        # income rows live in the "invoices" table
        return "expenses" if self is RecordKind.EXPENSE else "invoices"

    @property
    def label(self) -> str:
        return "Expense" if self is RecordKind.EXPENSE else "Income"


@dataclass(frozen=True)
class FinancialRecord:
    id: str
    owner_id: str
    kind: RecordKind
    title: str
    description: str
    amount: Decimal
    currency_code: str
    attachment: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class RecordFields:
    """Validated user-editable fields of a record."""

    title: str
    description: str
    amount: Decimal
    currency_code: str


@dataclass(frozen=True)
class UploadPayload:
    filename: str
    content: bytes


class RecordOut(BaseModel):
    id: str
    kind: RecordKind
    title: str
    description: str
    amount: str
    currency_code: str
    attachment: str | None = None
    attachment_url: str | None = None
    created_at: str
    updated_at: str


class RecordResponse(BaseModel):
    record: RecordOut


class RecordListResponse(BaseModel):
    kind: RecordKind
    q: str | None = None
    records: list[RecordOut]


class MutationResponse(BaseModel):
    ok: bool = True
    record: RecordOut
    redirect_to: str | None = None


class LatestRecordsResponse(BaseModel):
    latest: dict[RecordKind, RecordOut | None]
