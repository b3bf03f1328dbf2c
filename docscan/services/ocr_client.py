"""HTTP client for the external OCR and AI functions.

OCR itself runs outside this service. This client triggers scans,
probes reachability and asks the AI endpoint for CSV columns and rows.
"""

from typing import Any

import httpx

from docscan.utils.config import AppConfig
from docscan.utils.errors import OcrServiceError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)


def _split_columns(raw: Any) -> list[str]:
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, list):
        items = [str(item) for item in raw]
    else:
        raise OcrServiceError(f"Unexpected columns payload: {type(raw).__name__}")
    return [item.strip() for item in items if item.strip()]


class OcrServiceClient:
    """Thin client for the upload, scan, rescan, hello and airequest functions.

    Args:
        config: Application configuration, used to resolve endpoints for
            the active backend mode.
        client: Optional pre-built ``httpx.Client`` (used by tests).
    """

    def __init__(self, config: AppConfig, client: httpx.Client | None = None) -> None:
        self.config = config
        self.auth_token = config.services.auth_token
        self._client = client or httpx.Client(
            timeout=config.services.timeout, follow_redirects=True
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def _request(self, method: str, name: str, payload: dict | None = None) -> Any:
        url = self.config.endpoint(name)
        logger.debug("OCR service %s %s", method, url)
        try:
            response = self._client.request(
                method, url, headers=self._headers(), json=payload
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise OcrServiceError(
                f"OCR service {name} failed: {exc.response.status_code}",
                upstream_status=exc.response.status_code,
                details=exc.response.text,
            ) from exc
        except httpx.HTTPError as exc:
            raise OcrServiceError(f"OCR service {name} unreachable: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def hello(self) -> bool:
        """Return True when the OCR service answers."""
        try:
            self._request("GET", "hello")
        except OcrServiceError as exc:
            logger.warning("OCR service probe failed: %s", exc)
            return False
        return True

    def scan(self, document_ids: list[str]) -> Any:
        """Queue documents for OCR."""
        logger.info("Requesting scan of %d documents", len(document_ids))
        return self._request("POST", "scan", {"documentIds": document_ids})

    def rescan(self, document_id: str) -> Any:
        """Queue a single document for another OCR pass."""
        logger.info("Requesting rescan of %s", document_id)
        return self._request("POST", "rescan", {"documentId": document_id})

    def detect_columns(self, text: str) -> list[str]:
        """Ask the AI endpoint which CSV columns fit a document's text.

        The endpoint may answer with a JSON list, an object holding a
        ``columns`` entry, or a comma-separated string.

        Returns:
            Column names in the order suggested by the service.
        """
        data = self._request("POST", "airequest", {"task": "detect_schema", "text": text})
        if isinstance(data, dict):
            data = data.get("columns", "")
        columns = _split_columns(data if data is not None else "")
        if not columns:
            raise OcrServiceError("AI service returned no columns")
        return columns

    def extract_row(self, text: str, columns: list[str]) -> dict[str, str]:
        """Extract one CSV row for ``columns`` from a document's text.

        Missing columns come back as empty strings; extra keys are dropped.
        """
        data = self._request(
            "POST", "airequest", {"task": "extract_row", "text": text, "columns": columns}
        )
        if isinstance(data, dict) and isinstance(data.get("row"), dict):
            data = data["row"]
        if not isinstance(data, dict):
            raise OcrServiceError("AI service returned a malformed row")
        return {
            column: "" if data.get(column) is None else str(data.get(column))
            for column in columns
        }

    def close(self) -> None:
        self._client.close()
