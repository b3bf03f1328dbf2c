"""Object storage for original images and thumbnails.

Objects live in one bucket of an S3-compatible store (a local MinIO
server in emulator mode) and are addressed by bucket-relative keys.
Stored records keep the object URI (``gs://<bucket>/<key>``) so they can
be mapped back to a key on delete.
"""

import io
from pathlib import PurePosixPath

from minio import Minio
from minio.error import S3Error

from docscan.utils.config import StorageConfig
from docscan.utils.errors import NotFoundError, StorageError, ValidationError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

MISSING_CODES = ("NoSuchKey", "NoSuchBucket", "NoSuchObject")


def create_minio_client(config: StorageConfig, mode: str = "emulator") -> Minio:
    """Build a MinIO client for the endpoint selected by ``mode``."""
    endpoint = config.endpoint(mode)
    client = Minio(
        endpoint,
        access_key=config.access_key,
        secret_key=config.secret_key,
        secure=config.secure(mode),
        region=config.region,
    )
    logger.info("Object store client: endpoint=%s, bucket=%s", endpoint, config.bucket)
    return client


class BlobStore:
    """S3-backed object store.

    Args:
        config: Storage configuration with endpoints, credentials and bucket.
        mode: Backend mode, ``emulator`` or ``live``.
        client: Preconfigured MinIO client; built from ``config`` if omitted.
    """

    def __init__(
        self, config: StorageConfig, mode: str = "emulator", client: Minio | None = None
    ) -> None:
        self.bucket = config.bucket
        self.scheme = config.scheme
        self.client = client if client is not None else create_minio_client(config, mode)
        self._bucket_ready = False

    @property
    def uri_prefix(self) -> str:
        return f"{self.scheme}://{self.bucket}/"

    def _check_key(self, key: str) -> str:
        pure = PurePosixPath(key)
        if not key or pure.is_absolute() or ".." in pure.parts:
            raise ValidationError(f"Invalid object key: {key!r}")
        return key

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info("Created bucket %s", self.bucket)
        except S3Error as exc:
            raise StorageError(f"Bucket {self.bucket} unavailable: {exc.code}") from exc
        self._bucket_ready = True

    def uri(self, key: str) -> str:
        return f"{self.uri_prefix}{key}"

    def key_from_uri(self, uri: str) -> str:
        """Map a stored object URI back to its key.

        Strips the bucket prefix and any query string.
        """
        key = uri.split("?", 1)[0]
        if key.startswith(self.uri_prefix):
            key = key[len(self.uri_prefix):]
        return key

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        """Upload an object and return its URI.

        Args:
            key: Bucket-relative object key.
            data: Object contents.
            content_type: MIME type stored with the object.

        Returns:
            URI of the stored object.
        """
        self._check_key(key)
        self._ensure_bucket()
        try:
            self.client.put_object(
                self.bucket,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as exc:
            raise StorageError(f"Could not store {key}: {exc.code}") from exc
        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)
        return self.uri(key)

    def get(self, key: str) -> bytes:
        self._check_key(key)
        try:
            response = self.client.get_object(self.bucket, key)
        except S3Error as exc:
            if exc.code in MISSING_CODES:
                raise NotFoundError(f"Object not found: {key}") from exc
            raise StorageError(f"Could not read {key}: {exc.code}") from exc
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def exists(self, key: str) -> bool:
        self._check_key(key)
        try:
            self.client.stat_object(self.bucket, key)
        except S3Error as exc:
            if exc.code in MISSING_CODES:
                return False
            raise StorageError(f"Could not stat {key}: {exc.code}") from exc
        return True

    def delete(self, key: str) -> None:
        """Delete an object; missing objects are ignored."""
        self._check_key(key)
        try:
            self.client.remove_object(self.bucket, key)
        except S3Error as exc:
            if exc.code not in MISSING_CODES:
                raise StorageError(f"Could not delete {key}: {exc.code}") from exc
            logger.debug("Delete skipped, %s does not exist", key)
            return
        logger.debug("Deleted %s", key)
