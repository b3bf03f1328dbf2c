"""Document endpoints: search, upload, delete, scan and OCR callbacks."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from docscan.api.deps import (
    BlobsDep,
    DocumentsDep,
    LedgerDep,
    ScanDep,
    UserDep,
    require_callback_token,
)
from docscan.api.schemas import (
    DocumentPageResponse,
    DocumentResponse,
    OcrResultRequest,
    ScanRequest,
    ScanResponse,
    UploadItemResponse,
    UploadResponse,
)
from docscan.documents.repository import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from docscan.utils.errors import InvalidUploadError, ValidationError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=DocumentPageResponse)
def search_documents(
    user_id: UserDep,
    documents: DocumentsDep,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    cursor: Annotated[str | None, Query()] = None,
    direction: Annotated[Literal["next", "back"], Query()] = "next",
) -> DocumentPageResponse:
    """List the caller's documents, newest first, one page at a time."""
    page = documents.search_documents(user_id, status_filter, page_size, cursor, direction)
    return DocumentPageResponse(
        documents=[DocumentResponse.from_record(d) for d in page.documents],
        has_more=page.has_more,
        has_previous=page.has_previous,
        next_cursor=page.next_cursor,
        prev_cursor=page.prev_cursor,
    )


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_documents(
    user_id: UserDep,
    scanner: ScanDep,
    ledger: LedgerDep,
    files: Annotated[list[UploadFile], File(...)],
) -> UploadResponse:
    """Store one or more images as new documents.

    Files that are not decodable images are reported per file; the rest
    of the batch is still stored.
    """
    if len(files) > scanner.config.uploads.max_files:
        raise ValidationError(
            f"At most {scanner.config.uploads.max_files} files can be uploaded at once"
        )
    await run_in_threadpool(ledger.require, user_id, 1)

    results: list[UploadItemResponse] = []
    successful = 0
    for upload in files:
        filename = upload.filename or "document"
        data = await upload.read()
        try:
            document = await run_in_threadpool(
                scanner.ingest_upload, user_id, filename, data, upload.content_type
            )
        except InvalidUploadError as exc:
            logger.warning("Rejected upload %s: %s", filename, exc.message)
            results.append(UploadItemResponse(filename=filename, error=exc.message))
            continue
        results.append(
            UploadItemResponse(filename=filename, document=DocumentResponse.from_record(document))
        )
        successful += 1

    return UploadResponse(
        success=successful > 0,
        total_files=len(files),
        successful=successful,
        failed=len(files) - successful,
        results=results,
    )


@router.post("/scan", response_model=ScanResponse)
def scan_documents(
    request: ScanRequest, user_id: UserDep, scanner: ScanDep, ledger: LedgerDep
) -> ScanResponse:
    """Send documents to OCR, one credit each."""
    scanned = scanner.scan_documents(user_id, request.document_ids)
    return ScanResponse(
        documents=[DocumentResponse.from_record(d) for d in scanned],
        credits_remaining=ledger.get_user_credits(user_id).total,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(document_id: str, user_id: UserDep, documents: DocumentsDep) -> DocumentResponse:
    return DocumentResponse.from_record(documents.get_document(user_id, document_id))


@router.get("/{document_id}/thumbnail")
def get_thumbnail(document_id: str, user_id: UserDep, scanner: ScanDep) -> Response:
    return Response(
        content=scanner.thumbnail_bytes(user_id, document_id), media_type="image/jpeg"
    )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: str, user_id: UserDep, documents: DocumentsDep, blobs: BlobsDep
) -> Response:
    documents.delete_document(user_id, document_id, blobs)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{document_id}/rescan", response_model=ScanResponse)
def rescan_document(
    document_id: str, user_id: UserDep, scanner: ScanDep, ledger: LedgerDep
) -> ScanResponse:
    document = scanner.rescan_document(user_id, document_id)
    return ScanResponse(
        documents=[DocumentResponse.from_record(document)],
        credits_remaining=ledger.get_user_credits(user_id).total,
    )


@router.post(
    "/{document_id}/ocr-result",
    response_model=DocumentResponse,
    dependencies=[Depends(require_callback_token)],
)
def record_ocr_result(
    document_id: str, result: OcrResultRequest, scanner: ScanDep
) -> DocumentResponse:
    """Callback used by the OCR service to deliver extracted text."""
    document = scanner.record_ocr_result(document_id, result.text, result.status)
    return DocumentResponse.from_record(document)
