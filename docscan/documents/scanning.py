"""Document intake and OCR orchestration.

Uploads are normalised and written to the object store; scanning is delegated to the
external OCR service, which reports results back through
:meth:`ScanService.record_ocr_result`. Each scanned document costs credits.
"""

from docscan.billing.credits import CreditLedger
from docscan.documents.repository import DocumentRepository
from docscan.documents.uploads import check_content_type, prepare_upload
from docscan.services.ocr_client import OcrServiceClient
from docscan.storage.blobs import BlobStore
from docscan.storage.models import CreditTier, Document, DocumentStatus
from docscan.utils.config import AppConfig
from docscan.utils.errors import (
    NotFoundError,
    OcrServiceError,
    StorageError,
    ValidationError,
)
from docscan.utils.formatting import new_record_id
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

_RESULT_STATUSES = (DocumentStatus.PROCESSING, DocumentStatus.COMPLETED, DocumentStatus.FAILED)


class ScanService:
    """Coordinates uploads, credits and the OCR service for one request.

    Args:
        config: Application configuration.
        repository: Document repository bound to the request session.
        ledger: Credit ledger bound to the same session.
        blobs: Object store for originals and thumbnails.
        ocr: Client for the external OCR service.
    """

    def __init__(
        self,
        config: AppConfig,
        repository: DocumentRepository,
        ledger: CreditLedger,
        blobs: BlobStore,
        ocr: OcrServiceClient,
    ) -> None:
        self.config = config
        self.repository = repository
        self.ledger = ledger
        self.blobs = blobs
        self.ocr = ocr

    def ingest_upload(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> Document:
        """Store an uploaded image and create its document record.

        The user must hold at least one credit; nothing is consumed until
        the document is scanned. Stored renditions are removed again if the
        record cannot be created.
        """
        check_content_type(content_type)
        self.ledger.require(user_id, 1)
        prepared = prepare_upload(data, self.config.uploads)

        document_id = new_record_id()
        prefix = f"{user_id}/{document_id}"
        stored: list[str] = []
        try:
            original_uri = self.blobs.put(f"{prefix}/original.jpg", prepared.original)
            stored.append(f"{prefix}/original.jpg")
            thumbnail_uri = self.blobs.put(f"{prefix}/thumbnail.jpg", prepared.thumbnail)
            stored.append(f"{prefix}/thumbnail.jpg")
            return self.repository.create_document(
                user_id,
                filename=filename,
                original_uri=original_uri,
                thumbnail_uri=thumbnail_uri,
                document_id=document_id,
            )
        except Exception:
            for key in stored:
                try:
                    self.blobs.delete(key)
                except StorageError as exc:
                    logger.warning("Could not remove orphaned object %s: %s", key, exc.message)
            raise

    def thumbnail_bytes(self, user_id: str, document_id: str) -> bytes:
        document = self.repository.get_document(user_id, document_id)
        if not document.thumbnail_uri:
            return b""
        return self.blobs.get(self.blobs.key_from_uri(document.thumbnail_uri))

    def _dispatch(self, user_id: str, documents: list[Document], send) -> list[Document]:
        cost = self.config.billing.credits_per_document * len(documents)
        self.ledger.consume_credits(user_id, cost)
        try:
            send()
        except OcrServiceError:
            logger.error("OCR dispatch failed, refunding %d credits to %s", cost, user_id)
            self.ledger.add_credits(user_id, CreditTier.FREE, cost)
            raise
        return [
            self.repository.update_status(document, DocumentStatus.PENDING)
            for document in documents
        ]

    def scan_documents(self, user_id: str, document_ids: list[str]) -> list[Document]:
        """Queue documents for OCR and mark them pending.

        Raises:
            ValidationError: If no ids are given.
            InsufficientCreditsError: If the batch is not affordable.
            OcrServiceError: If the service rejects the request; credits
                are refunded first.
        """
        if not document_ids:
            raise ValidationError("At least one document id is required")
        unique_ids = list(dict.fromkeys(document_ids))
        documents = self.repository.get_documents(user_id, unique_ids)
        return self._dispatch(user_id, documents, lambda: self.ocr.scan(unique_ids))

    def rescan_document(self, user_id: str, document_id: str) -> Document:
        document = self.repository.get_document(user_id, document_id)
        return self._dispatch(
            user_id, [document], lambda: self.ocr.rescan(document_id)
        )[0]

    def record_ocr_result(
        self, document_id: str, text: str, status: DocumentStatus | str
    ) -> Document:
        """Store the OCR outcome reported by the external service."""
        try:
            status = DocumentStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status: {status}") from None
        if status not in _RESULT_STATUSES:
            raise ValidationError(f"Status {status.value} cannot be reported by OCR")
        document = self.repository.session.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document not found")
        logger.info("OCR result for %s: %s (%d chars)", document_id, status.value, len(text))
        return self.repository.update_status(document, status, text=text)
