"""Table models for documents, credits, CSV schemas and purchases.

Records are flat; ownership is carried by ``user_id`` on every table and
checked in the service layer.
"""

from datetime import datetime, timezone
from enum import StrEnum

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from docscan.utils.formatting import new_record_id


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite stores no offset."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DocumentStatus(StrEnum):
    """Processing states of an uploaded document."""

    INIT = "init"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PurchaseStatus(StrEnum):
    """States of a purchase log entry."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CreditTier(StrEnum):
    """Credit counters held for every user."""

    FREE = "free"
    TIER1 = "tier1"
    TIER2 = "tier2"


class Document(SQLModel, table=True):
    """An uploaded document image and its OCR result."""

    __tablename__ = "documents"

    id: str = Field(default_factory=new_record_id, primary_key=True)
    user_id: str = Field(index=True)
    status: str = Field(default=DocumentStatus.INIT.value, index=True)
    filename: str = ""
    text: str = ""
    original_uri: str | None = None
    thumbnail_uri: str | None = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class UserCredits(SQLModel, table=True):
    """Credit balances of a single user."""

    __tablename__ = "user_credits"

    user_id: str = Field(primary_key=True)
    free_credits: int = 0
    paid_tier1_credits: int = 0
    paid_tier2_credits: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def total(self) -> int:
        return self.free_credits + self.paid_tier1_credits + self.paid_tier2_credits


class CsvSchema(SQLModel, table=True):
    """A named list of CSV columns used for exports."""

    __tablename__ = "csv_schemas"

    id: str = Field(default_factory=new_record_id, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    columns: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def column_list(self) -> list[str]:
        return [c.strip() for c in self.columns.split(",") if c.strip()]


class PurchaseLog(SQLModel, table=True):
    """A top-up attempt through one of the payment providers."""

    __tablename__ = "purchase_logs"
    __table_args__ = (
        # one record per Stripe checkout session
        Index(
            "uq_purchase_logs_stripe_session",
            "external_ref",
            unique=True,
            sqlite_where=text("provider = 'stripe'"),
            postgresql_where=text("provider = 'stripe'"),
        ),
    )

    id: str = Field(default_factory=new_record_id, primary_key=True)
    user_id: str = Field(index=True)
    plan_id: str
    provider: str
    amount: int = 0
    status: str = Field(default=PurchaseStatus.PENDING.value)
    order_info: str | None = None
    response_code: str | None = None
    external_ref: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
