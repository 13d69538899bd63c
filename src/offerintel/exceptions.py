"""Package exceptions."""

from __future__ import annotations

from dataclasses import dataclass


class PackageError(Exception):
    """Root exception for the package."""


@dataclass(frozen=True)
class SettingsError(PackageError):
    """Raised when settings cannot be loaded or validated."""

    message: str = "Failed to load settings"
    exc: BaseException | None = None

    def __str__(self) -> str:
        """Return error message payload."""
        return f"{self.message}: {self.exc}" if self.exc else self.message


@dataclass(frozen=True)
class AsyncExecutionError(PackageError):
    """Raised when an async operation fails in compatibility runner."""

    result: BaseException
    message: str = "Async operation failed"

    def __str__(self) -> str:
        """Return error message payload."""
        return f"{self.message}: {self.result}"


@dataclass(frozen=True)
class ConfigurationError(PackageError):
    """Raised when a required external capability is not configured."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class ExternalServiceError(PackageError):
    """Raised when a model, extraction service or signing provider call fails."""

    message: str
    service: str | None = None

    def __str__(self) -> str:
        """Return error message payload."""
        return f"[{self.service}] {self.message}" if self.service else self.message


@dataclass(frozen=True)
class InvalidModelResponse(PackageError):
    """Raised when a vision model response cannot be parsed into the expected schema."""

    message: str
    raw_response: str | None = None

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class RasterEngineUnavailable(PackageError):
    """Raised when no PDF raster engine can be used."""

    message: str = "PDF raster engine is not available"

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class IllegalTransitionError(PackageError):
    """Raised when an offer transition is not allowed from its current state."""

    offer_id: str
    current: str
    target: str

    def __str__(self) -> str:
        """Return error message payload."""
        return f"Offer {self.offer_id} cannot move from {self.current} to {self.target}"


@dataclass(frozen=True)
class OfferNotFoundError(PackageError):
    """Raised when an offer lookup fails."""

    offer_id: str

    def __str__(self) -> str:
        """Return error message payload."""
        return f"Offer not found: {self.offer_id}"


@dataclass(frozen=True)
class OfferLockedError(PackageError):
    """Raised when a buyer already has an accepted offer on a listing."""

    listing_id: str
    buyer_id: str
    offer_id: str

    def __str__(self) -> str:
        """Return error message payload."""
        return (
            f"Listing {self.listing_id} is locked for buyer {self.buyer_id} "
            f"by accepted offer {self.offer_id}"
        )


@dataclass(frozen=True)
class OfferExpiredError(PackageError):
    """Raised when an action targets an offer past its expiry date."""

    offer_id: str

    def __str__(self) -> str:
        """Return error message payload."""
        return f"Offer {self.offer_id} has expired"


@dataclass(frozen=True)
class ValidationFailureError(PackageError):
    """Raised when document evidence does not support a requested transition."""

    message: str
    discrepancies: tuple[str, ...] = ()

    def __str__(self) -> str:
        """Return error message payload."""
        if not self.discrepancies:
            return self.message
        return f"{self.message}: {'; '.join(self.discrepancies)}"


@dataclass(frozen=True)
class DependencyError(PackageError):
    """Raised when optional runtime dependencies are missing."""

    missing_package: list[str]
    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return f"Missing runtime dependencies for '{self.message}': {', '.join(self.missing_package)}"
