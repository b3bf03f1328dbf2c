"""Document records: CRUD, status filtering and cursor pagination.

Pages are ordered newest first. A cursor names the boundary record of
the page the client is looking at; the client sends it back with a
direction to move forward or backward.
"""

import base64
import json
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, or_
from sqlmodel import Session, col, select

from docscan.storage.blobs import BlobStore
from docscan.storage.models import Document, DocumentStatus, utcnow
from docscan.utils.errors import NotFoundError, PermissionDeniedError, ValidationError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
UNFINISHED = "unfinished"
DIRECTIONS = ("next", "back")


@dataclass
class DocumentPage:
    """One page of search results."""

    documents: list[Document]
    has_more: bool
    has_previous: bool
    next_cursor: str | None = None
    prev_cursor: str | None = None


def encode_cursor(document: Document) -> str:
    payload = json.dumps({"t": document.created_at.isoformat(), "id": document.id})
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode a cursor token into ``(created_at, id)``.

    Raises:
        ValidationError: If the token is malformed.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return datetime.fromisoformat(payload["t"]), str(payload["id"])
    except (ValueError, KeyError, TypeError) as exc:
        raise ValidationError("Invalid pagination cursor") from exc


def normalize_status(status: str | None) -> str | None:
    """Validate a status filter; ``None`` and ``all`` mean no filter."""
    if status is None or status == "all":
        return None
    if status == UNFINISHED:
        return status
    try:
        return DocumentStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown status filter: {status}") from None


class DocumentRepository:
    """Stores and queries document records for a session.

    Args:
        session: Open database session.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create_document(
        self,
        user_id: str,
        filename: str = "",
        original_uri: str | None = None,
        thumbnail_uri: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        document = Document(
            user_id=user_id,
            filename=filename,
            original_uri=original_uri,
            thumbnail_uri=thumbnail_uri,
        )
        if document_id:
            document.id = document_id
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)
        logger.info("Created document %s for %s", document.id, user_id)
        return document

    def get_document(self, user_id: str, document_id: str) -> Document:
        """Fetch a document owned by ``user_id``.

        Raises:
            NotFoundError: If the document does not exist.
            PermissionDeniedError: If another user owns it.
        """
        document = self.session.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document not found")
        if document.user_id != user_id:
            raise PermissionDeniedError("Not authorized to access this document")
        return document

    def get_documents(self, user_id: str, document_ids: list[str]) -> list[Document]:
        """Fetch several owned documents, keeping the requested order."""
        return [self.get_document(user_id, document_id) for document_id in document_ids]

    def update_status(
        self, document: Document, status: DocumentStatus, text: str | None = None
    ) -> Document:
        document.status = status.value
        if text is not None:
            document.text = text
        document.updated_at = utcnow()
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)
        return document

    def delete_document(self, user_id: str, document_id: str, blobs: BlobStore) -> None:
        """Delete a document and its stored files.

        Storage objects are removed first; if that fails the record is
        kept so the delete can be retried.
        """
        document = self.get_document(user_id, document_id)
        for uri in (document.original_uri, document.thumbnail_uri):
            if uri:
                blobs.delete(blobs.key_from_uri(uri))
        self.session.delete(document)
        self.session.commit()
        logger.info("Deleted document %s for %s", document_id, user_id)

    def search_documents(
        self,
        user_id: str,
        status: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        cursor: str | None = None,
        direction: str = "next",
    ) -> DocumentPage:
        """Return one page of a user's documents, newest first.

        Args:
            user_id: Owner of the documents.
            status: Status filter; ``None``/``all`` for everything,
                ``unfinished`` for anything not completed.
            page_size: Number of documents per page (1-100).
            cursor: Boundary token from a previous page.
            direction: ``next`` for the page after the cursor, ``back``
                for the page before it.

        Returns:
            The page with exact ``has_more``/``has_previous`` flags.
        """
        if direction not in DIRECTIONS:
            raise ValidationError(f"Unknown direction: {direction}")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        status_filter = normalize_status(status)

        query = select(Document).where(Document.user_id == user_id)
        if status_filter == UNFINISHED:
            query = query.where(Document.status != DocumentStatus.COMPLETED.value)
        elif status_filter is not None:
            query = query.where(Document.status == status_filter)

        backwards = direction == "back" and cursor is not None
        if cursor is not None:
            created_at, boundary_id = decode_cursor(cursor)
            if backwards:
                query = query.where(
                    or_(
                        col(Document.created_at) > created_at,
                        and_(Document.created_at == created_at, col(Document.id) > boundary_id),
                    )
                )
            else:
                query = query.where(
                    or_(
                        col(Document.created_at) < created_at,
                        and_(Document.created_at == created_at, col(Document.id) < boundary_id),
                    )
                )

        if backwards:
            query = query.order_by(col(Document.created_at).asc(), col(Document.id).asc())
        else:
            query = query.order_by(col(Document.created_at).desc(), col(Document.id).desc())

        rows = list(self.session.exec(query.limit(page_size + 1)).all())
        overflow = len(rows) > page_size
        rows = rows[:page_size]

        if backwards:
            rows.reverse()
            has_more, has_previous = True, overflow
        else:
            has_more, has_previous = overflow, cursor is not None

        return DocumentPage(
            documents=rows,
            has_more=has_more,
            has_previous=has_previous,
            next_cursor=encode_cursor(rows[-1]) if rows else None,
            prev_cursor=encode_cursor(rows[0]) if rows else None,
        )
