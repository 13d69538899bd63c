"""Runtime settings loaded from `.env` and environment variables."""

from __future__ import annotations

import logging
import ssl
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, PrivateAttr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from offerintel.exceptions import SettingsError
from offerintel.typing.enums import VisionBackendType, VisionInputMode

try:
    import certifi
except Exception:  # pragma: no cover - optional dependency at runtime
    certifi: Any
    certifi = None

try:
    import httpx
except Exception:  # pragma: no cover - optional dependency at runtime
    httpx: Any
    httpx = None

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Package settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    project_name: str = "offerintel"
    app_env: str = Field(
        default="dev",
        validation_alias="APP_ENV",
        description="Application environment, e.g. 'dev', 'prod'.",
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL", description="Logging level.")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON", description="Enable JSON formatted logs.")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE", description="File path for log output.")

    https_proxy: str | None = Field(default=None, validation_alias="HTTPS_PROXY", description="HTTPS proxy URL.")
    cert_path: str | None = Field(default=None, validation_alias="CERT_PATH", description="Path to SSL certificate.")
    timeout: float = Field(default=60.0, validation_alias="TIMEOUT", description="Request timeout in seconds.")
    max_connections: int = Field(
        default=20,
        validation_alias="MAX_CONNECTIONS",
        description="Maximum number of concurrent connections.",
    )

    openai_base_url: str | None = Field(
        default=None,
        validation_alias="OPENAI_BASE_URL",
        description="Base URL of the OpenAI-compatible vision endpoint.",
    )
    openai_api_key: str | None = Field(
        default=None,
        validation_alias="OPENAI_API_KEY",
        description="API key for the vision endpoint.",
    )
    openai_model: str = Field(
        default="gemini-2.0-flash",
        validation_alias="OPENAI_MODEL",
        description="Vision model name.",
    )

    vision_backend: VisionBackendType = Field(
        default=VisionBackendType.MODEL,
        validation_alias="VISION_BACKEND",
        description="Vision tier implementation: 'model' or 'standardization'.",
    )
    vision_input: VisionInputMode = Field(
        default=VisionInputMode.DOCUMENT,
        validation_alias="VISION_INPUT",
        description="Send the whole PDF ('document') or rasterized pages ('pages').",
    )
    vision_max_pages: int = Field(default=3, ge=1, validation_alias="VISION_MAX_PAGES")

    docupipe_base_url: str = Field(default="https://app.docupipe.ai", validation_alias="DOCUPIPE_BASE_URL")
    docupipe_api_key: str | None = Field(default=None, validation_alias="DOCUPIPE_API_KEY")
    docupipe_schema_id: str | None = Field(default=None, validation_alias="DOCUPIPE_SCHEMA_ID")
    docupipe_schema_name: str | None = Field(default=None, validation_alias="DOCUPIPE_SCHEMA_NAME")
    docupipe_poll_initial_delay: float = Field(default=1.0, gt=0, validation_alias="DOCUPIPE_POLL_INITIAL_DELAY")
    docupipe_poll_max_delay: float = Field(default=30.0, gt=0, validation_alias="DOCUPIPE_POLL_MAX_DELAY")
    docupipe_poll_budget: float = Field(default=60.0, gt=0, validation_alias="DOCUPIPE_POLL_BUDGET")

    raster_dpi: int = Field(default=200, ge=36, validation_alias="RASTER_DPI")
    raster_format: str = Field(default="png", validation_alias="RASTER_FORMAT")
    raster_max_pages: int = Field(default=20, ge=1, validation_alias="RASTER_MAX_PAGES")

    visual_concurrency: int = Field(default=4, ge=1, validation_alias="VISUAL_CONCURRENCY")
    initials_anchor_pages: Annotated[list[int], NoDecode] = Field(
        default_factory=lambda: [1, 2, 3, 4, 6],
        validation_alias="INITIALS_ANCHOR_PAGES",
        description="Pages of Form 100 carrying buyer/seller initials boxes.",
    )
    confirmation_page: int = Field(default=5, ge=1, validation_alias="CONFIRMATION_PAGE")

    acroform_accept_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        validation_alias="ACROFORM_ACCEPT_THRESHOLD",
        description="AcroForm fill rate above which the tier result is returned.",
    )
    validation_pass_threshold: float = Field(default=0.7, ge=0.0, le=1.0, validation_alias="VALIDATION_PASS_THRESHOLD")
    validation_review_threshold: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        validation_alias="VALIDATION_REVIEW_THRESHOLD",
    )

    offer_default_expiry_hours: float = Field(
        default=24.0,
        gt=0,
        validation_alias="OFFER_DEFAULT_EXPIRY_HOURS",
        description="Expiry applied when no irrevocability date can be read.",
    )
    offer_timezone: str = Field(default="America/Toronto", validation_alias="OFFER_TIMEZONE")
    auto_reject_failed_offers: bool = Field(default=False, validation_alias="AUTO_REJECT_FAILED_OFFERS")

    storage_bucket: str = Field(default="offers", validation_alias="STORAGE_BUCKET")
    signed_url_ttl_seconds: int = Field(default=3600, ge=60, validation_alias="SIGNED_URL_TTL_SECONDS")
    signing_webhook_secret: str | None = Field(default=None, validation_alias="SIGNING_WEBHOOK_SECRET")
    verify_webhook_signatures: bool | None = Field(
        default=None,
        validation_alias="VERIFY_WEBHOOK_SIGNATURES",
        description="Force webhook HMAC verification on or off. Defaults to on in prod.",
    )

    _http_client: object | None = PrivateAttr(default=None)

    @field_validator("initials_anchor_pages", mode="before")
    @classmethod
    def _parse_anchor_pages(cls, value: object) -> object:
        if isinstance(value, str):
            return [int(chunk) for chunk in value.replace(" ", "").split(",") if chunk]
        return value

    @field_validator("raster_format")
    @classmethod
    def _normalize_raster_format(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def _check_threshold_order(self) -> Settings:
        if self.validation_review_threshold >= self.validation_pass_threshold:
            message = (
                "VALIDATION_REVIEW_THRESHOLD must be lower than VALIDATION_PASS_THRESHOLD "
                f"(got {self.validation_review_threshold} >= {self.validation_pass_threshold})"
            )
            raise ValueError(message)
        return self

    @property
    def is_production(self) -> bool:
        """Return whether the app runs in a production environment."""
        return self.app_env.lower() in {"prod", "production"}

    @property
    def should_verify_webhooks(self) -> bool:
        """Return whether signing webhooks must carry a valid HMAC."""
        if self.verify_webhook_signatures is not None:
            return self.verify_webhook_signatures
        return self.is_production

    def http_client(self) -> object | None:
        """Return the shared sync HTTPX client, creating it on first use."""
        if httpx is None:
            return None
        if self._http_client is None:
            self._http_client = httpx.Client(
                **build_httpx_client_kwargs(self),
                limits=httpx.Limits(max_connections=self.max_connections),
            )
        return self._http_client

    def close_http_client(self) -> None:
        """Close the shared HTTPX client (best effort)."""
        client = self._http_client
        self._http_client = None
        close = getattr(client, "close", None)
        if not close:
            return
        try:
            close()
        except Exception:
            logger.warning("Failed to close HTTPX client")


def build_ssl_context(settings: Settings) -> ssl.SSLContext:
    """Build a strict SSL context from settings.

    Args:
        settings (Settings): Runtime settings.

    Returns:
        ssl.SSLContext: Configured TLS context.
    """
    cafile = settings.cert_path
    if cafile is None and certifi is not None:
        cafile = certifi.where()
    ssl_context = ssl.create_default_context(cafile=cafile)
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.minimum_version = ssl.TLSVersion.TLSv1_2
    return ssl_context


def build_httpx_client_kwargs(settings: Settings) -> dict[str, Any]:
    """Build kwargs used for `httpx.Client`.

    Args:
        settings (Settings): Runtime settings.

    Returns:
        dict[str, Any]: Arguments for the client constructor.
    """
    kwargs: dict[str, Any] = {
        "verify": build_ssl_context(settings),
        "timeout": settings.timeout,
    }
    if settings.https_proxy:
        kwargs["proxy"] = settings.https_proxy
    return kwargs


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance.

    Raises:
        SettingsError: If settings cannot be loaded or validated.

    Returns:
        Settings: The loaded settings instance.
    """
    try:
        return Settings()
    except Exception as exc:
        if _is_missing_settings_error(exc):
            ensure_env_file_exists()
            try:
                return Settings()
            except Exception as retry_exc:
                raise SettingsError(exc=retry_exc) from retry_exc
        raise SettingsError(exc=exc) from exc


def ensure_env_file_exists(
    *,
    env_path: Path = Path(".env"),
    template_path: Path = Path(".env.template"),
) -> None:
    """Create `.env` from template when missing.

    Args:
        env_path (Path): Target environment file path.
        template_path (Path): Template file path.
    """
    if env_path.exists() or not template_path.exists():
        return
    env_path.write_text(template_path.read_text(encoding="utf-8"), encoding="utf-8")
    logger.info(
        "Created environment file from template",
        extra={"env_path": str(env_path), "template_path": str(template_path)},
    )


def _is_missing_settings_error(exc: Exception) -> bool:
    if not isinstance(exc, ValidationError):
        return False
    return any(error.get("type") == "missing" for error in exc.errors())
