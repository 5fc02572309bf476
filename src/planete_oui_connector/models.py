from __future__ import annotations

from datetime import date as _date
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class RawRow(BaseModel):
    # One row of the billing-history table, before normalization.
    date_text: str
    link: Optional[str] = None
    amount_text: str


class Account(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    href: str
    name: str


class BillMetadata(BaseModel):
    import_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = 1


class BillingRecord(BaseModel):
    date: datetime
    amount: Optional[float] = Field(default=None, ge=0)
    file_url: str
    currency: str
    vendor: str
    vendor_ref: str
    filename: str

    account_ref: Optional[str] = None
    account_name: Optional[str] = None

    metadata: BillMetadata = Field(default_factory=BillMetadata)

    def dedup_key(self) -> str:
        # Used for idempotency across re-scrapes. Keep stable and human-readable.
        return "|".join([self.account_ref or "", self.vendor_ref])


class BankOperation(BaseModel):
    id: str
    date: _date
    label: str
    amount: float
