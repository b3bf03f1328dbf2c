"""Tests for CSV schemas and CSV export."""

import csv
import io
from collections.abc import Callable
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlmodel import Session

from docscan.documents.repository import DocumentRepository
from docscan.exporting.csv_export import META_COLUMNS, CsvExporter, write_csv
from docscan.exporting.schemas import AUTO_DETECTED_NAME, SchemaRepository, normalize_columns
from docscan.storage.models import CsvSchema
from docscan.utils.errors import NotFoundError, PermissionDeniedError, ValidationError


@pytest.fixture
def schemas(session: Session) -> SchemaRepository:
    return SchemaRepository(session)


@pytest.fixture
def exporter(session: Session, schemas: SchemaRepository, ocr_client: MagicMock) -> CsvExporter:
    return CsvExporter(DocumentRepository(session), schemas, ocr_client)


def _add_schema(
    session: Session, user_id: str, name: str, columns: str, minute: int
) -> CsvSchema:
    schema = CsvSchema(
        user_id=user_id,
        name=name,
        columns=columns,
        created_at=datetime(2024, 3, 1, 12, minute),
    )
    session.add(schema)
    session.commit()
    session.refresh(schema)
    return schema


class TestNormalizeColumns:
    """Tests for normalize_columns."""

    def test_from_string(self) -> None:
        assert normalize_columns(" Name ,Total,, Date ") == "Name, Total, Date"

    def test_from_list(self) -> None:
        assert normalize_columns(["Vendor", " ", "Amount"]) == "Vendor, Amount"

    @pytest.mark.parametrize("columns", ["", " , ", []])
    def test_empty(self, columns) -> None:
        with pytest.raises(ValidationError):
            normalize_columns(columns)


class TestSchemaRepository:
    """Tests for SchemaRepository."""

    def test_create_and_list_newest_first(
        self, schemas: SchemaRepository, session: Session
    ) -> None:
        older = _add_schema(session, "alice", "Old", "A", minute=0)
        newer = _add_schema(session, "alice", "New", "B", minute=5)
        _add_schema(session, "bob", "Other", "C", minute=9)

        assert [s.id for s in schemas.list_schemas("alice")] == [newer.id, older.id]

    def test_list_without_user(self, schemas: SchemaRepository) -> None:
        assert schemas.list_schemas("") == []

    def test_save_new(self, schemas: SchemaRepository) -> None:
        schema = schemas.save_schema("alice", " Receipts ", "Vendor,Total")
        assert schema.name == "Receipts"
        assert schema.columns == "Vendor, Total"
        assert schema.column_list == ["Vendor", "Total"]

    def test_update_existing(self, schemas: SchemaRepository) -> None:
        schema = schemas.save_schema("alice", "Receipts", "Vendor")
        updated = schemas.save_schema("alice", "Invoices", ["Number", "Due"], schema.id)
        assert updated.id == schema.id
        assert updated.name == "Invoices"
        assert updated.columns == "Number, Due"
        assert len(schemas.list_schemas("alice")) == 1

    def test_name_required(self, schemas: SchemaRepository) -> None:
        with pytest.raises(ValidationError, match="name"):
            schemas.save_schema("alice", "  ", "A")

    def test_update_foreign(self, schemas: SchemaRepository) -> None:
        schema = schemas.save_schema("bob", "Bob's", "A")
        with pytest.raises(PermissionDeniedError, match="Unauthorized access"):
            schemas.save_schema("alice", "Mine", "B", schema.id)

    def test_delete(self, schemas: SchemaRepository) -> None:
        schema = schemas.save_schema("alice", "Temp", "A")
        schemas.delete_schema("alice", schema.id)
        with pytest.raises(NotFoundError, match="Schema not found"):
            schemas.get_schema("alice", schema.id)

    def test_delete_foreign(self, schemas: SchemaRepository) -> None:
        schema = schemas.save_schema("bob", "Bob's", "A")
        with pytest.raises(PermissionDeniedError):
            schemas.delete_schema("alice", schema.id)

    def test_detect(self, schemas: SchemaRepository, ocr_client: MagicMock) -> None:
        ocr_client.detect_columns.return_value = ["Vendor", "Date", "Total"]
        schema = schemas.detect_schema("alice", "ACME 2024-01-01 $5", ocr_client)
        assert schema.name == AUTO_DETECTED_NAME
        assert schema.columns == "Vendor, Date, Total"
        ocr_client.detect_columns.assert_called_once_with("ACME 2024-01-01 $5")

    def test_detect_requires_text(self, schemas: SchemaRepository, ocr_client: MagicMock) -> None:
        with pytest.raises(ValidationError):
            schemas.detect_schema("alice", "   ", ocr_client)
        ocr_client.detect_columns.assert_not_called()


class TestCsvExporter:
    """Tests for CsvExporter."""

    def test_write_csv(self) -> None:
        content = write_csv([{"a": "1", "b": "x,y"}], ["a", "b"])
        assert content.splitlines() == ["a,b", '1,"x,y"']

    def test_export_with_schema(
        self,
        exporter: CsvExporter,
        schemas: SchemaRepository,
        ocr_client: MagicMock,
        make_documents: Callable,
    ) -> None:
        schema = schemas.save_schema("alice", "Receipts", "Vendor, Total")
        docs = make_documents("alice", 2, status="completed", text="ACME total 5")
        ocr_client.extract_row.return_value = {"Vendor": "ACME", "Total": "5"}

        export = exporter.export_documents("alice", [d.id for d in docs], schema.id)

        assert export.columns == META_COLUMNS + ["Vendor", "Total"]
        rows = list(csv.DictReader(io.StringIO(export.content)))
        assert [r["document_id"] for r in rows] == [docs[0].id, docs[1].id]
        assert rows[0]["created_at"] == "Jan 1, 2024, 09:00 AM"
        assert rows[0]["Vendor"] == "ACME"
        assert export.filename == "receipts.csv"
        ocr_client.extract_row.assert_called_with("ACME total 5", ["Vendor", "Total"])

    def test_defaults_to_newest_schema(
        self,
        exporter: CsvExporter,
        session: Session,
        ocr_client: MagicMock,
        make_documents: Callable,
    ) -> None:
        _add_schema(session, "alice", "Old", "A", minute=0)
        newest = _add_schema(session, "alice", "New", "B", minute=1)
        (doc,) = make_documents("alice", 1, text="text")
        ocr_client.extract_row.return_value = {"B": "b"}

        export = exporter.export_documents("alice", [doc.id])

        assert export.schema.id == newest.id

    def test_detects_schema_when_none_saved(
        self,
        exporter: CsvExporter,
        schemas: SchemaRepository,
        ocr_client: MagicMock,
        make_documents: Callable,
    ) -> None:
        (doc,) = make_documents("alice", 1, text="Invoice 7 due Friday")
        ocr_client.detect_columns.return_value = ["Invoice", "Due"]
        ocr_client.extract_row.return_value = {"Invoice": "7", "Due": "Friday"}

        export = exporter.export_documents("alice", [doc.id])

        assert export.schema.name == AUTO_DETECTED_NAME
        assert export.rows[0]["Due"] == "Friday"
        assert len(schemas.list_schemas("alice")) == 1

    def test_documents_without_text_get_empty_cells(
        self,
        exporter: CsvExporter,
        schemas: SchemaRepository,
        ocr_client: MagicMock,
        make_documents: Callable,
    ) -> None:
        schema = schemas.save_schema("alice", "S", "Vendor")
        (doc,) = make_documents("alice", 1, text="")

        export = exporter.export_documents("alice", [doc.id], schema.id)

        assert export.rows[0]["Vendor"] == ""
        ocr_client.extract_row.assert_not_called()

    def test_meta_columns_not_duplicated(
        self,
        exporter: CsvExporter,
        schemas: SchemaRepository,
        ocr_client: MagicMock,
        make_documents: Callable,
    ) -> None:
        schema = schemas.save_schema("alice", "S", "document_id, Vendor")
        (doc,) = make_documents("alice", 1, text="x")
        ocr_client.extract_row.return_value = {"Vendor": "v"}

        export = exporter.export_documents("alice", [doc.id], schema.id)

        assert export.columns == ["document_id", "created_at", "Vendor"]

    def test_requires_documents(self, exporter: CsvExporter) -> None:
        with pytest.raises(ValidationError):
            exporter.export_documents("alice", [])

    def test_foreign_documents(self, exporter: CsvExporter, make_documents: Callable) -> None:
        (doc,) = make_documents("bob", 1, text="x")
        with pytest.raises(PermissionDeniedError):
            exporter.export_documents("alice", [doc.id])
