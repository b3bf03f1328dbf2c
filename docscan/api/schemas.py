"""Pydantic request/response schemas for the FastAPI endpoints."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from docscan.storage.models import CsvSchema, Document, DocumentStatus, UserCredits


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    backend_mode: str
    ocr_service_reachable: bool | None = None


class DocumentResponse(BaseModel):
    """A document record as shown on the dashboard."""

    id: str
    status: str
    filename: str
    text: str
    thumbnail_url: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            status=document.status,
            filename=document.filename,
            text=document.text,
            thumbnail_url=(
                f"/documents/{document.id}/thumbnail" if document.thumbnail_uri else None
            ),
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentPageResponse(BaseModel):
    """One page of document search results."""

    documents: list[DocumentResponse]
    has_more: bool
    has_previous: bool
    next_cursor: str | None = None
    prev_cursor: str | None = None


class UploadItemResponse(BaseModel):
    """Outcome for a single uploaded file."""

    filename: str
    document: DocumentResponse | None = None
    error: str | None = None


class UploadResponse(BaseModel):
    """Response schema for a multi-file upload."""

    success: bool
    total_files: int
    successful: int
    failed: int
    results: list[UploadItemResponse]


class ScanRequest(BaseModel):
    document_ids: list[str] = Field(min_length=1)


class ScanResponse(BaseModel):
    documents: list[DocumentResponse]
    credits_remaining: int


class OcrResultRequest(BaseModel):
    """Result reported by the external OCR service."""

    text: str = ""
    status: Literal["processing", "completed", "failed"] = DocumentStatus.COMPLETED.value


class SchemaRequest(BaseModel):
    """Create (no id) or update (id) a CSV schema."""

    id: str | None = None
    name: str
    columns: str | list[str]


class SchemaResponse(BaseModel):
    id: str
    name: str
    columns: str
    column_list: list[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, schema: CsvSchema) -> "SchemaResponse":
        return cls(
            id=schema.id,
            name=schema.name,
            columns=schema.columns,
            column_list=schema.column_list,
            created_at=schema.created_at,
            updated_at=schema.updated_at,
        )


class DetectSchemaRequest(BaseModel):
    document_id: str


class ExportRequest(BaseModel):
    """Documents to export; no schema id picks one automatically."""

    document_ids: list[str] = Field(min_length=1)
    schema_id: str | None = None


class CreditsResponse(BaseModel):
    """A user's credit balances."""

    free_credits: int
    paid_tier1_credits: int
    paid_tier2_credits: int
    total: int
    has_credits: bool

    @classmethod
    def from_record(cls, credits: UserCredits) -> "CreditsResponse":
        return cls(
            free_credits=credits.free_credits,
            paid_tier1_credits=credits.paid_tier1_credits,
            paid_tier2_credits=credits.paid_tier2_credits,
            total=credits.total,
            has_credits=credits.total > 0,
        )


class PlanResponse(BaseModel):
    id: str
    title: str
    credits: int
    tier: str
    price_vnd: int
    price_usd: float
    recurring: bool
    features: list[str]


class VNPayPaymentRequest(BaseModel):
    plan_id: str
    order_info: str | None = None
    language: str | None = None
    bank_code: str | None = None


class VNPayPaymentResponse(BaseModel):
    url: str
    order_id: str


class VNPayReturnResponse(BaseModel):
    """Verification of the gateway's browser redirect."""

    is_valid: bool
    is_successful: bool
    response_code: str | None
    order_id: str | None
    order_info: str | None
    amount: float
    pay_date: str | None
    transaction_no: str | None
    bank_code: str | None


class CheckoutSessionRequest(BaseModel):
    plan_type: Literal["monthly", "onetime"]


class CheckoutSessionResponse(BaseModel):
    session_id: str
