"""CSV schema management and CSV export endpoints."""

from fastapi import APIRouter, Response, status

from docscan.api.deps import DocumentsDep, ExporterDep, OcrDep, SchemasDep, UserDep
from docscan.api.schemas import (
    DetectSchemaRequest,
    ExportRequest,
    SchemaRequest,
    SchemaResponse,
)

router = APIRouter(tags=["exports"])


@router.get("/csv-schemas", response_model=list[SchemaResponse])
def list_schemas(user_id: UserDep, schemas: SchemasDep) -> list[SchemaResponse]:
    return [SchemaResponse.from_record(s) for s in schemas.list_schemas(user_id)]


@router.post("/csv-schemas", response_model=SchemaResponse)
def save_schema(
    request: SchemaRequest, user_id: UserDep, schemas: SchemasDep, response: Response
) -> SchemaResponse:
    """Create a schema, or update it when the request carries an id."""
    schema = schemas.save_schema(user_id, request.name, request.columns, schema_id=request.id)
    if request.id is None:
        response.status_code = status.HTTP_201_CREATED
    return SchemaResponse.from_record(schema)


@router.delete("/csv-schemas/{schema_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schema(schema_id: str, user_id: UserDep, schemas: SchemasDep) -> Response:
    schemas.delete_schema(user_id, schema_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/csv-schemas/detect", response_model=SchemaResponse, status_code=status.HTTP_201_CREATED
)
def detect_schema(
    request: DetectSchemaRequest,
    user_id: UserDep,
    schemas: SchemasDep,
    documents: DocumentsDep,
    ocr: OcrDep,
) -> SchemaResponse:
    """Detect CSV columns from a document's OCR text and save them."""
    document = documents.get_document(user_id, request.document_id)
    return SchemaResponse.from_record(schemas.detect_schema(user_id, document.text, ocr))


@router.post("/exports/csv")
def export_csv(request: ExportRequest, user_id: UserDep, exporter: ExporterDep) -> Response:
    """Download the selected documents as CSV."""
    export = exporter.export_documents(user_id, request.document_ids, request.schema_id)
    return Response(
        content=export.content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Schema-Id": export.schema.id,
        },
    )
