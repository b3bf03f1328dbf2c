"""FastAPI application for the DocScan API.

Provides REST endpoints for documents, CSV schemas and exports, credits,
and the VNPay and Stripe payment integrations.
"""

from typing import Annotated

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware

from docscan import __version__
from docscan.api.deps import ConfigDep, OcrDep
from docscan.api.errors import setup_exception_handlers
from docscan.api.routes import billing, documents, exports, payments
from docscan.api.schemas import HealthResponse
from docscan.utils.config import AppConfig, load_config
from docscan.utils.logger import get_logger

logger = get_logger(__name__)


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the application for a configuration.

    Args:
        config: Application configuration; loaded from configs/config.yaml
            and the environment when omitted.
    """
    config = config or load_config()

    application = FastAPI(
        title="DocScan API",
        description="Upload document images, review OCR text and export it to CSV",
        version=__version__,
    )
    application.state.config = config

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_exception_handlers(application)

    @application.get("/health", response_model=HealthResponse, tags=["health"])
    def health_check(
        config: ConfigDep,
        ocr: OcrDep,
        probe: Annotated[bool, Query()] = False,
    ) -> HealthResponse:
        """Return service health; ``probe=true`` also pings the OCR service."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            backend_mode=config.backend_mode,
            ocr_service_reachable=ocr.hello() if probe else None,
        )

    application.include_router(documents.router)
    application.include_router(exports.router)
    application.include_router(billing.router)
    application.include_router(payments.router)

    logger.info("DocScan API configured in %s mode", config.backend_mode)
    return application


app = create_app()
