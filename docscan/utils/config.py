"""Configuration management for the DocScan service.

Loads and validates YAML configuration with sensible defaults, then
applies environment overrides for secrets and backend mode switches.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

BACKEND_MODES = ("emulator", "live")


class ServerConfig(BaseModel):
    """Configuration for the HTTP server."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    user_header: str = "X-User-Id"
    ocr_callback_token: str | None = None


class DatabaseConfig(BaseModel):
    """Configuration for the document database."""

    url: str = "sqlite:///./docscan.db"
    echo: bool = False


class StorageConfig(BaseModel):
    """Configuration for the S3-compatible object store.

    The emulator endpoint is a local MinIO server; the live endpoint is the
    bucket host reached through its S3 interoperability API.
    """

    emulator_endpoint: str = "127.0.0.1:9000"
    live_endpoint: str = "storage.googleapis.com"
    access_key: str = "minioadmin"
    secret_key: str = "minioadmin"
    region: str | None = None
    bucket: str = "docscan"
    scheme: str = "gs"

    def endpoint(self, mode: str) -> str:
        return self.live_endpoint if mode == "live" else self.emulator_endpoint

    def secure(self, mode: str) -> bool:
        return mode == "live"


class UploadConfig(BaseModel):
    """Image normalisation settings applied on upload."""

    original_max_size: int = 1920
    original_quality: int = 80
    thumbnail_max_size: int = 200
    thumbnail_quality: int = 60
    max_files: int = 20


class ServicesConfig(BaseModel):
    """Endpoints of the external OCR and AI functions."""

    local_base: str = "http://127.0.0.1:5001/docscan/asia-east1"
    production_base: str = "https://asia-east1-docscan.cloudfunctions.net"
    timeout: float = 30.0
    auth_token: str | None = None

    def endpoint(self, name: str, mode: str) -> str:
        """Resolve the URL of a named function for a backend mode.

        Args:
            name: Function name (upload, scan, rescan, hello, airequest).
            mode: Backend mode, ``emulator`` or ``live``.

        Returns:
            Absolute endpoint URL.
        """
        base = self.production_base if mode == "live" else self.local_base
        return f"{base.rstrip('/')}/{name}"


class VNPayConfig(BaseModel):
    """Configuration for the VNPay redirect gateway."""

    tmn_code: str | None = None
    hash_secret: str | None = None
    url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    return_url: str | None = None
    api_url: str = "https://sandbox.vnpayment.vn/merchant_webapi/api/transaction"
    utc_offset_hours: int = 7
    locale: str = "vn"

    @property
    def is_configured(self) -> bool:
        return bool(self.tmn_code and self.hash_secret and self.url and self.return_url)


class StripeConfig(BaseModel):
    """Configuration for Stripe Checkout."""

    secret_key: str | None = None
    webhook_secret: str | None = None
    monthly_price_id: str | None = None
    onetime_price_id: str | None = None
    app_url: str = "http://localhost:3000"


class BillingConfig(BaseModel):
    """Configuration for the credits ledger."""

    initial_free_credits: int = 3
    credits_per_document: int = 1


class AppConfig(BaseModel):
    """Top-level application configuration."""

    backend_mode: str = "emulator"
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    uploads: UploadConfig = Field(default_factory=UploadConfig)
    services: ServicesConfig = Field(default_factory=ServicesConfig)
    vnpay: VNPayConfig = Field(default_factory=VNPayConfig)
    stripe: StripeConfig = Field(default_factory=StripeConfig)
    billing: BillingConfig = Field(default_factory=BillingConfig)
    log_level: str = "INFO"

    @property
    def is_live(self) -> bool:
        return self.backend_mode == "live"

    def endpoint(self, name: str) -> str:
        return self.services.endpoint(name, self.backend_mode)


# env var -> (section, key); section None means top level
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "FIREBASE_MODE": (None, "backend_mode"),
    "DOCSCAN_BACKEND_MODE": (None, "backend_mode"),
    "DOCSCAN_LOG_LEVEL": (None, "log_level"),
    "DOCSCAN_DATABASE_URL": ("database", "url"),
    "STORAGE_ENDPOINT": ("storage", "live_endpoint"),
    "STORAGE_BUCKET": ("storage", "bucket"),
    "STORAGE_ACCESS_KEY": ("storage", "access_key"),
    "STORAGE_SECRET_KEY": ("storage", "secret_key"),
    "OCR_CALLBACK_TOKEN": ("server", "ocr_callback_token"),
    "OCR_SERVICE_TOKEN": ("services", "auth_token"),
    "VNP_TMN_CODE": ("vnpay", "tmn_code"),
    "VNP_HASH_SECRET": ("vnpay", "hash_secret"),
    "VNP_URL": ("vnpay", "url"),
    "VNP_RETURN_URL": ("vnpay", "return_url"),
    "STRIPE_SECRET_KEY": ("stripe", "secret_key"),
    "STRIPE_WEBHOOK_SECRET": ("stripe", "webhook_secret"),
    "STRIPE_MONTHLY_PRICE_ID": ("stripe", "monthly_price_id"),
    "STRIPE_ONETIME_PRICE_ID": ("stripe", "onetime_price_id"),
    "APP_URL": ("stripe", "app_url"),
}


def _apply_env_overrides(raw: dict, environ: dict[str, str]) -> dict:
    """Merge environment overrides into raw configuration data.

    Later entries in ``_ENV_OVERRIDES`` win, so ``DOCSCAN_BACKEND_MODE``
    takes precedence over the legacy ``FIREBASE_MODE``.
    """
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        if section is None:
            raw[key] = value
        else:
            raw.setdefault(section, {})[key] = value
        logger.debug("Configuration %s overridden from %s", key, env_name)
    return raw


def load_config(
    path: Path | None = None, environ: dict[str, str] | None = None
) -> AppConfig:
    """Load configuration from a YAML file and the environment.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        Validated application configuration.

    Raises:
        ValueError: If the backend mode is not recognised.
    """
    if path is None:
        path = Path("configs/config.yaml")
    if environ is None:
        environ = dict(os.environ)

    raw: dict = {}
    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found at %s, using defaults", path)

    config = AppConfig(**_apply_env_overrides(raw, environ))
    if config.backend_mode not in BACKEND_MODES:
        raise ValueError(
            f"Unknown backend mode {config.backend_mode!r}, "
            f"expected one of {', '.join(BACKEND_MODES)}"
        )
    return config
