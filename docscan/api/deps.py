"""Dependency providers for the FastAPI routes.

Shared resources (engine, object store, OCR client) are built lazily on
first use and cached on ``app.state``; per-request services are bound to
the request's database session.
"""

from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.engine import Engine
from sqlmodel import Session

from docscan.billing.credits import CreditLedger
from docscan.documents.repository import DocumentRepository
from docscan.documents.scanning import ScanService
from docscan.exporting.csv_export import CsvExporter
from docscan.exporting.schemas import SchemaRepository
from docscan.payments.stripe_checkout import StripeCheckout
from docscan.payments.vnpay import VNPayGateway, VNPayPayments
from docscan.services.ocr_client import OcrServiceClient
from docscan.storage.blobs import BlobStore
from docscan.storage.database import create_db_engine, init_db, iter_session
from docscan.utils.config import AppConfig


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_engine(request: Request) -> Engine:
    state = request.app.state
    if getattr(state, "engine", None) is None:
        state.engine = create_db_engine(state.config.database)
        init_db(state.engine)
    return state.engine


def get_session(engine: Annotated[Engine, Depends(get_engine)]) -> Iterator[Session]:
    yield from iter_session(engine)


def get_blob_store(request: Request) -> BlobStore:
    state = request.app.state
    if getattr(state, "blobs", None) is None:
        state.blobs = BlobStore(state.config.storage, state.config.backend_mode)
    return state.blobs


def get_ocr_client(request: Request) -> OcrServiceClient:
    state = request.app.state
    if getattr(state, "ocr_client", None) is None:
        state.ocr_client = OcrServiceClient(state.config)
    return state.ocr_client


ConfigDep = Annotated[AppConfig, Depends(get_config)]
SessionDep = Annotated[Session, Depends(get_session)]


def get_current_user(request: Request, config: ConfigDep) -> str:
    """Return the user id set by the authenticating proxy."""
    user_id = (request.headers.get(config.server.user_header) or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="User not authenticated"
        )
    return user_id


def require_callback_token(
    config: ConfigDep,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Guard the OCR callback with the shared service token."""
    expected = config.server.ocr_callback_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OCR callback token is not configured",
        )
    if authorization != f"Bearer {expected}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_ledger(session: SessionDep, config: ConfigDep) -> CreditLedger:
    return CreditLedger(session, config.billing)


def get_document_repository(session: SessionDep) -> DocumentRepository:
    return DocumentRepository(session)


def get_schema_repository(session: SessionDep) -> SchemaRepository:
    return SchemaRepository(session)


UserDep = Annotated[str, Depends(get_current_user)]
LedgerDep = Annotated[CreditLedger, Depends(get_ledger)]
DocumentsDep = Annotated[DocumentRepository, Depends(get_document_repository)]
SchemasDep = Annotated[SchemaRepository, Depends(get_schema_repository)]
BlobsDep = Annotated[BlobStore, Depends(get_blob_store)]
OcrDep = Annotated[OcrServiceClient, Depends(get_ocr_client)]


def get_scan_service(
    config: ConfigDep,
    documents: DocumentsDep,
    ledger: LedgerDep,
    blobs: BlobsDep,
    ocr: OcrDep,
) -> ScanService:
    return ScanService(config, documents, ledger, blobs, ocr)


def get_exporter(documents: DocumentsDep, schemas: SchemasDep, ocr: OcrDep) -> CsvExporter:
    return CsvExporter(documents, schemas, ocr)


def get_vnpay_payments(
    session: SessionDep, config: ConfigDep, ledger: LedgerDep
) -> VNPayPayments:
    return VNPayPayments(session, VNPayGateway(config.vnpay), ledger)


def get_stripe_checkout(
    session: SessionDep, config: ConfigDep, ledger: LedgerDep
) -> StripeCheckout:
    return StripeCheckout(config.stripe, session, ledger)


ScanDep = Annotated[ScanService, Depends(get_scan_service)]
ExporterDep = Annotated[CsvExporter, Depends(get_exporter)]
VNPayDep = Annotated[VNPayPayments, Depends(get_vnpay_payments)]
StripeDep = Annotated[StripeCheckout, Depends(get_stripe_checkout)]
