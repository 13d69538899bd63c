"""OREA offer document intelligence and offer lifecycle."""

from offerintel.async_runner import gather_bounded, run_async
from offerintel.exceptions import (
    AsyncExecutionError,
    ConfigurationError,
    DependencyError,
    ExternalServiceError,
    IllegalTransitionError,
    InvalidModelResponse,
    OfferExpiredError,
    OfferLockedError,
    OfferNotFoundError,
    PackageError,
    RasterEngineUnavailable,
    SettingsError,
    ValidationFailureError,
)
from offerintel.logging import configure_logging, get_logger
from offerintel.settings import Settings, get_settings

__version__ = "0.1.0"

logger = get_logger("offerintel")

__all__ = [
    "AsyncExecutionError",
    "ConfigurationError",
    "DependencyError",
    "ExternalServiceError",
    "IllegalTransitionError",
    "InvalidModelResponse",
    "OfferExpiredError",
    "OfferLockedError",
    "OfferNotFoundError",
    "PackageError",
    "RasterEngineUnavailable",
    "Settings",
    "SettingsError",
    "ValidationFailureError",
    "__version__",
    "configure_logging",
    "gather_bounded",
    "get_logger",
    "get_settings",
    "logger",
    "run_async",
]
