"""Tests for the external OCR/AI service client."""

import json

import httpx
import pytest

from docscan.services.ocr_client import OcrServiceClient
from docscan.utils.config import AppConfig, ServicesConfig
from docscan.utils.errors import OcrServiceError


def _client(handler, **services) -> OcrServiceClient:
    config = AppConfig(services=ServicesConfig(local_base="http://ocr.test/proj", **services))
    return OcrServiceClient(config, client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestOcrServiceClient:
    """Tests for OcrServiceClient."""

    def test_scan_posts_ids(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"queued": 2})

        client = _client(handler, auth_token="svc-token")
        assert client.scan(["a", "b"]) == {"queued": 2}
        assert seen["url"] == "http://ocr.test/proj/scan"
        assert seen["body"] == {"documentIds": ["a", "b"]}
        assert seen["auth"] == "Bearer svc-token"

    def test_rescan_posts_single_id(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text="ok")

        assert _client(handler).rescan("doc-1") == "ok"
        assert seen["url"].endswith("/rescan")
        assert seen["body"] == {"documentId": "doc-1"}

    def test_live_mode_uses_production_base(self) -> None:
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(204)

        config = AppConfig(
            backend_mode="live",
            services=ServicesConfig(production_base="https://prod.test"),
        )
        client = OcrServiceClient(
            config, client=httpx.Client(transport=httpx.MockTransport(handler))
        )
        assert client.scan(["a"]) is None
        assert urls == ["https://prod.test/scan"]

    def test_upstream_error(self) -> None:
        client = _client(lambda request: httpx.Response(500, text="kaboom"))
        with pytest.raises(OcrServiceError) as exc_info:
            client.scan(["a"])
        assert exc_info.value.upstream_status == 500
        assert exc_info.value.details == "kaboom"
        assert exc_info.value.status_code == 502

    def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(OcrServiceError, match="unreachable"):
            _client(handler).rescan("a")

    def test_hello(self) -> None:
        assert _client(lambda request: httpx.Response(200, text="Hello")).hello() is True
        assert _client(lambda request: httpx.Response(503)).hello() is False

    @pytest.mark.parametrize(
        "payload",
        [
            ["Vendor", "Total"],
            {"columns": ["Vendor", "Total"]},
            {"columns": "Vendor, Total"},
            "Vendor,Total",
        ],
    )
    def test_detect_columns_shapes(self, payload) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body == {"task": "detect_schema", "text": "ACME 5"}
            if isinstance(payload, str):
                return httpx.Response(200, text=payload)
            return httpx.Response(200, json=payload)

        assert _client(handler).detect_columns("ACME 5") == ["Vendor", "Total"]

    def test_detect_columns_empty(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"columns": []}))
        with pytest.raises(OcrServiceError, match="no columns"):
            client.detect_columns("text")

    def test_extract_row(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["task"] == "extract_row"
            assert body["columns"] == ["Vendor", "Total", "Date"]
            return httpx.Response(
                200, json={"row": {"Vendor": "ACME", "Total": 5, "Extra": "x"}}
            )

        row = _client(handler).extract_row("ACME 5", ["Vendor", "Total", "Date"])
        assert row == {"Vendor": "ACME", "Total": "5", "Date": ""}

    def test_extract_row_malformed(self) -> None:
        client = _client(lambda request: httpx.Response(200, json=["not", "a", "row"]))
        with pytest.raises(OcrServiceError, match="malformed"):
            client.extract_row("text", ["A"])
