"""Shared test fixtures for the DocScan test suite."""

import io
import struct
import zlib
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from minio.error import S3Error
from PIL import Image
from sqlalchemy.engine import Engine
from sqlmodel import Session

from docscan.api.app import create_app
from docscan.api.deps import get_ocr_client
from docscan.services.ocr_client import OcrServiceClient
from docscan.storage.blobs import BlobStore
from docscan.storage.database import create_db_engine, init_db
from docscan.storage.models import Document
from docscan.utils.config import (
    AppConfig,
    DatabaseConfig,
    ServerConfig,
    StorageConfig,
    StripeConfig,
    VNPayConfig,
)

VNP_SECRET = "TESTHASHSECRET"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
CALLBACK_TOKEN = "callback-token"


def s3_error(code: str, bucket: str, key: str = "") -> S3Error:
    return S3Error(
        code=code,
        message=f"{code}: {bucket}/{key}",
        resource=f"/{bucket}/{key}",
        request_id="test-request",
        host_id="test-host",
        response=None,
        bucket_name=bucket,
        object_name=key or None,
    )


class InMemoryMinio:
    """Dict-backed replacement for the MinIO client calls BlobStore makes."""

    def __init__(self) -> None:
        self.buckets: dict[str, dict[str, tuple[bytes, str]]] = {}

    def _objects(self, bucket: str) -> dict[str, tuple[bytes, str]]:
        if bucket not in self.buckets:
            raise s3_error("NoSuchBucket", bucket)
        return self.buckets[bucket]

    def bucket_exists(self, bucket: str) -> bool:
        return bucket in self.buckets

    def make_bucket(self, bucket: str) -> None:
        self.buckets.setdefault(bucket, {})

    def put_object(
        self,
        bucket: str,
        key: str,
        data: io.BytesIO,
        length: int,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._objects(bucket)[key] = (data.read(length), content_type)

    def get_object(self, bucket: str, key: str) -> MagicMock:
        objects = self._objects(bucket)
        if key not in objects:
            raise s3_error("NoSuchKey", bucket, key)
        response = MagicMock()
        response.read.return_value = objects[key][0]
        return response

    def stat_object(self, bucket: str, key: str) -> MagicMock:
        objects = self._objects(bucket)
        if key not in objects:
            raise s3_error("NoSuchKey", bucket, key)
        data, content_type = objects[key]
        return MagicMock(size=len(data), content_type=content_type)

    def remove_object(self, bucket: str, key: str) -> None:
        self._objects(bucket).pop(key, None)


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with an in-memory database and the test bucket."""
    return AppConfig(
        server=ServerConfig(ocr_callback_token=CALLBACK_TOKEN),
        database=DatabaseConfig(url="sqlite://"),
        storage=StorageConfig(bucket="docscan"),
        vnpay=VNPayConfig(
            tmn_code="TESTTMN1",
            hash_secret=VNP_SECRET,
            return_url="http://localhost:3000/payment/return",
        ),
        stripe=StripeConfig(
            secret_key="sk_test_123",
            webhook_secret=STRIPE_WEBHOOK_SECRET,
            monthly_price_id="price_monthly",
            onetime_price_id="price_onetime",
        ),
    )


@pytest.fixture
def engine(app_config: AppConfig) -> Iterator[Engine]:
    db_engine = create_db_engine(app_config.database)
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session(engine: Engine) -> Iterator[Session]:
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def minio_client() -> InMemoryMinio:
    return InMemoryMinio()


@pytest.fixture
def blobs(app_config: AppConfig, minio_client: InMemoryMinio) -> BlobStore:
    return BlobStore(app_config.storage, client=minio_client)


@pytest.fixture
def ocr_client() -> MagicMock:
    """A stand-in for the external OCR/AI service client."""
    client = MagicMock(spec=OcrServiceClient)
    client.hello.return_value = True
    client.scan.return_value = {"queued": True}
    client.rescan.return_value = {"queued": True}
    return client


@pytest.fixture
def client(
    app_config: AppConfig, engine: Engine, blobs: BlobStore, ocr_client: MagicMock
) -> TestClient:
    """API test client sharing the fixture database, bucket and OCR stub."""
    app = create_app(app_config)
    app.state.engine = engine
    app.state.blobs = blobs
    app.dependency_overrides[get_ocr_client] = lambda: ocr_client
    return TestClient(app)


@pytest.fixture
def image_bytes() -> bytes:
    """A 400x300 PNG image."""
    image = Image.new("RGB", (400, 300), color=(240, 240, 240))
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_documents(session: Session) -> Callable[..., list[Document]]:
    """Factory inserting ``count`` documents one minute apart, oldest first."""

    def _make(
        user_id: str,
        count: int,
        status: str = "init",
        text: str = "",
        start: datetime = datetime(2024, 1, 1, 9, 0, 0),
    ) -> list[Document]:
        documents = []
        for i in range(count):
            document = Document(
                user_id=user_id,
                status=status,
                text=text,
                filename=f"doc{i}.png",
                created_at=start + timedelta(minutes=i),
            )
            session.add(document)
            documents.append(document)
        session.commit()
        for document in documents:
            session.refresh(document)
        return documents

    return _make


def _png_chunk(kind: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body))


@pytest.fixture
def oversized_png() -> bytes:
    """A tiny PNG whose header declares a 30000x30000 canvas."""
    header = struct.pack(">IIBBBBB", 30000, 30000, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )
