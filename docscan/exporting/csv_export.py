"""CSV export of extracted document data.

Rows are produced by the AI service from each document's OCR text, one
cell per schema column, behind two fixed metadata columns.
"""

import csv
import io
from dataclasses import dataclass

from docscan.documents.repository import DocumentRepository
from docscan.exporting.schemas import SchemaRepository
from docscan.services.ocr_client import OcrServiceClient
from docscan.storage.models import CsvSchema, Document
from docscan.utils.errors import ValidationError
from docscan.utils.formatting import format_date
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

META_COLUMNS = ["document_id", "created_at"]


@dataclass
class CsvExport:
    """A rendered export and the schema it was built with."""

    schema: CsvSchema
    columns: list[str]
    rows: list[dict[str, str]]
    content: str

    @property
    def filename(self) -> str:
        slug = "".join(c if c.isalnum() else "-" for c in self.schema.name.lower()).strip("-")
        return f"{slug or 'export'}.csv"


def write_csv(rows: list[dict[str, str]], columns: list[str]) -> str:
    """Render rows to CSV text with a header line."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


class CsvExporter:
    """Builds CSV exports for a user's documents.

    Args:
        documents: Document repository.
        schemas: Schema repository.
        ocr: Client for the AI extraction endpoint.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        schemas: SchemaRepository,
        ocr: OcrServiceClient,
    ) -> None:
        self.documents = documents
        self.schemas = schemas
        self.ocr = ocr

    def resolve_schema(
        self, user_id: str, schema_id: str | None, documents: list[Document]
    ) -> CsvSchema:
        """Pick the schema for an export.

        Uses the given schema, else the user's newest schema, else detects
        one from the first selected document.
        """
        if schema_id:
            return self.schemas.get_schema(user_id, schema_id)
        existing = self.schemas.list_schemas(user_id)
        if existing:
            return existing[0]
        logger.info("No schema for %s, detecting one from %s", user_id, documents[0].id)
        return self.schemas.detect_schema(user_id, documents[0].text, self.ocr)

    def _row(self, document: Document, columns: list[str]) -> dict[str, str]:
        row = {"document_id": document.id, "created_at": format_date(document.created_at)}
        if document.text.strip():
            row.update(self.ocr.extract_row(document.text, columns))
        else:
            logger.warning("Document %s has no OCR text, exporting empty cells", document.id)
            row.update({column: "" for column in columns})
        return row

    def export_documents(
        self, user_id: str, document_ids: list[str], schema_id: str | None = None
    ) -> CsvExport:
        """Export the selected documents to CSV.

        Args:
            user_id: Owner of the documents.
            document_ids: Documents to export, in output order.
            schema_id: Schema to use; ``None`` selects one automatically.

        Returns:
            The rendered export.
        """
        if not document_ids:
            raise ValidationError("Select at least one document to export")
        documents = self.documents.get_documents(user_id, list(dict.fromkeys(document_ids)))
        schema = self.resolve_schema(user_id, schema_id, documents)
        schema_columns = [c for c in schema.column_list if c not in META_COLUMNS]
        columns = META_COLUMNS + schema_columns

        rows = [self._row(document, schema_columns) for document in documents]
        logger.info(
            "Exported %d documents for %s with schema %s", len(rows), user_id, schema.id
        )
        return CsvExport(
            schema=schema, columns=columns, rows=rows, content=write_csv(rows, columns)
        )
