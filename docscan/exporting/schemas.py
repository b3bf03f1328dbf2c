"""CSV schema records: named column lists owned by a user."""

from sqlmodel import Session, col, select

from docscan.services.ocr_client import OcrServiceClient
from docscan.storage.models import CsvSchema, utcnow
from docscan.utils.errors import NotFoundError, PermissionDeniedError, ValidationError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

AUTO_DETECTED_NAME = "Auto-detected Schema"


def normalize_columns(columns: str | list[str]) -> str:
    """Canonicalise a column list to ``"a, b, c"``.

    Raises:
        ValidationError: If no column name remains.
    """
    items = columns.split(",") if isinstance(columns, str) else list(columns)
    names = [name.strip() for name in items if name and name.strip()]
    if not names:
        raise ValidationError("A schema needs at least one column")
    return ", ".join(names)


class SchemaRepository:
    """CRUD for CSV schemas.

    Args:
        session: Open database session.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_schemas(self, user_id: str) -> list[CsvSchema]:
        if not user_id:
            logger.warning("No user id given to list_schemas")
            return []
        query = (
            select(CsvSchema)
            .where(CsvSchema.user_id == user_id)
            .order_by(col(CsvSchema.created_at).desc(), col(CsvSchema.id).desc())
        )
        return list(self.session.exec(query).all())

    def _owned(self, user_id: str, schema_id: str) -> CsvSchema:
        schema = self.session.get(CsvSchema, schema_id)
        if schema is None:
            raise NotFoundError("Schema not found")
        if schema.user_id != user_id:
            raise PermissionDeniedError("Unauthorized access")
        return schema

    def get_schema(self, user_id: str, schema_id: str) -> CsvSchema:
        return self._owned(user_id, schema_id)

    def save_schema(
        self,
        user_id: str,
        name: str,
        columns: str | list[str],
        schema_id: str | None = None,
    ) -> CsvSchema:
        """Create a schema, or update an existing one when ``schema_id`` is set."""
        if not name or not name.strip():
            raise ValidationError("Schema name is required")
        normalized = normalize_columns(columns)

        if schema_id:
            schema = self._owned(user_id, schema_id)
            schema.name = name.strip()
            schema.columns = normalized
            schema.updated_at = utcnow()
        else:
            schema = CsvSchema(user_id=user_id, name=name.strip(), columns=normalized)

        self.session.add(schema)
        self.session.commit()
        self.session.refresh(schema)
        logger.info("Saved schema %s (%s) for %s", schema.id, schema.name, user_id)
        return schema

    def delete_schema(self, user_id: str, schema_id: str) -> None:
        schema = self._owned(user_id, schema_id)
        self.session.delete(schema)
        self.session.commit()
        logger.info("Deleted schema %s for %s", schema_id, user_id)

    def detect_schema(self, user_id: str, text: str, ocr: OcrServiceClient) -> CsvSchema:
        """Ask the AI service for columns and save them as a new schema."""
        if not text or not text.strip():
            raise ValidationError("The document has no OCR text to detect a schema from")
        columns = ocr.detect_columns(text)
        return self.save_schema(user_id, AUTO_DETECTED_NAME, columns)
