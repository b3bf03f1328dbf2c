"""Error taxonomy shared by the service layer and the HTTP API.

Each error carries the HTTP status code the API answers with, so service
code can raise domain errors without importing FastAPI.
"""


class DocScanError(Exception):
    """Base class for all DocScan domain errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DocScanError):
    """Raised when a request carries invalid input."""

    status_code = 400


class InvalidUploadError(ValidationError):
    """Raised when an uploaded file is not a decodable image."""


class PaymentError(DocScanError):
    """Raised when a payment callback cannot be verified."""

    status_code = 400


class NotFoundError(DocScanError):
    """Raised when a record or object does not exist."""

    status_code = 404


class PermissionDeniedError(DocScanError):
    """Raised when a user touches a record owned by someone else."""

    status_code = 403


class InsufficientCreditsError(DocScanError):
    """Raised when a user cannot afford an operation."""

    status_code = 402


class ConfigurationError(DocScanError):
    """Raised when a required integration is not configured."""

    status_code = 500


class OcrServiceError(DocScanError):
    """Raised when the external OCR/AI service fails.

    Args:
        message: Human readable description.
        upstream_status: Upstream HTTP status, if a response was received.
        details: Upstream response body, if any.
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        self.details = details


class StorageError(DocScanError):
    """Raised when the object store rejects a request."""

    status_code = 502
