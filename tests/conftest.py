"""Shared fixtures and pytest marker auto-assignment by folder."""

from __future__ import annotations

from copy import deepcopy
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from offerintel import logger
from offerintel.offers import OfferStateMachine
from offerintel.repository import InMemoryOfferRepository
from offerintel.scoring import count_leaves
from offerintel.settings import Settings
from offerintel.typing.enums import ExtractionStrategy, FormType, MessageSubCategory, ValidationStatus
from offerintel.typing.models import (
    ApsContract,
    DocumentAnalysis,
    ExtractionResult,
    FormDetectionResult,
    InboundMessage,
    SigningRequest,
    SignUrl,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from offerintel.typing.enums import NotificationKind
    from offerintel.typing.models import Offer, Signer, VisualValidationResult

NOW = datetime(2025, 3, 10, 15, 0, tzinfo=UTC)

DEFAULT_CONTRACT: dict[str, Any] = {
    "buyer_full_name": "Jane Buyer",
    "seller_full_name": "Sam Seller",
    "property": {"property_address": "12 Maple Ave, Toronto"},
    "price_and_deposit": {
        "purchase_price": {"numeric": "$675,000.00", "currency": "CAD"},
        "deposit": {"numeric": "25,000", "currency": "CAD"},
    },
    "irrevocability": {"by_whom": "Buyer", "time": "11:59 p.m.", "day": "15th", "month": "March", "year": "2025"},
    "completion": {"day": "30", "month": "June", "year": "2025"},
    "schedules": ["A"],
}


def _mark_tests_by_directory(
    config: pytest.Config,
    items: list[pytest.Item],
    marker: str,
) -> None:
    """Mark collected tests located under tests/<marker>/."""
    target_dir = Path(config.rootpath) / "tests" / marker
    target_dir = target_dir.resolve()

    for item in items:
        try:
            path = Path(str(item.fspath)).resolve()
        except Exception:
            logger.warning(
                f"Could not resolve path for test item {item.name!s}; skipping {marker!s} marker assignment",
            )
            continue

        if path == target_dir or target_dir in path.parents:
            item.add_marker(getattr(pytest.mark, marker))


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    """Apply directory-based markers to test items."""
    _mark_tests_by_directory(config, items, "unit")
    _mark_tests_by_directory(config, items, "integration")
    _mark_tests_by_directory(config, items, "end2end")


class FakeClock:
    """Settable timezone-aware clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class FakeSigningProvider:
    """Records signing calls; failures are injected through attributes."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, list[Signer], dict[str, str]]] = []
        self.cancelled: list[str] = []
        self.downloads: list[str] = []
        self.create_error: Exception | None = None
        self.download_error: Exception | None = None
        self.document = b"%PDF-signed"

    def create_embedded_request(self, document_url: str, signers: list[Signer], metadata: dict[str, str]):
        if self.create_error is not None:
            raise self.create_error
        self.requests.append((document_url, signers, metadata))
        number = len(self.requests)
        return SigningRequest(request_id=f"req-{number}", signature_id=f"sig-{number}")

    def get_embedded_sign_url(self, signature_id: str) -> SignUrl:
        return SignUrl(url=f"https://sign.example/{signature_id}", expires_at=NOW + timedelta(hours=1))

    def download_signed_document(self, request_id: str) -> bytes:
        if self.download_error is not None:
            raise self.download_error
        self.downloads.append(request_id)
        return self.document

    def cancel_request(self, request_id: str) -> None:
        self.cancelled.append(request_id)


class FakeObjectStore:
    def __init__(self) -> None:
        self.signed: list[tuple[str, str, int]] = []
        self.uploads: dict[str, bytes] = {}

    def get_signed_url(self, bucket: str, key: str, ttl_seconds: int) -> str:
        self.signed.append((bucket, key, ttl_seconds))
        return f"https://store.example/{bucket}/{key}"

    def upload_file(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        assert content_type == "application/pdf"
        self.uploads[f"{bucket}/{key}"] = data
        return key


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, NotificationKind, str]] = []

    def notify(self, offer: Offer, kind: NotificationKind, message: str) -> None:
        self.sent.append((offer.id, kind, message))


@pytest.fixture
def default_contract() -> dict[str, Any]:
    """Return a fresh copy of the default Form 100 contract payload."""
    return deepcopy(DEFAULT_CONTRACT)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build settings isolated from any local `.env` file."""

    def _make(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryOfferRepository:
    return InMemoryOfferRepository()


@pytest.fixture
def signing_provider() -> FakeSigningProvider:
    return FakeSigningProvider()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_state_machine(
    make_settings: Callable[..., Settings],
    repository: InMemoryOfferRepository,
    signing_provider: FakeSigningProvider,
    object_store: FakeObjectStore,
    notifier: FakeNotifier,
    clock: FakeClock,
) -> Callable[..., OfferStateMachine]:
    def _make(**overrides: Any) -> OfferStateMachine:
        return OfferStateMachine(
            repository,
            make_settings(**overrides),
            signing=signing_provider,
            store=object_store,
            notifier=notifier,
            clock=clock,
        )

    return _make


@pytest.fixture
def make_analysis() -> Callable[..., DocumentAnalysis]:
    """Build a recognized Form 100 analysis with a vision extraction."""

    def _make(
        *,
        contract: dict[str, Any] | None = None,
        status: ValidationStatus = ValidationStatus.PASSED,
        score: float | None = 0.9,
        relevance: int = 80,
        recognized: bool = True,
        storage_key: str | None = "inbox/offer.pdf",
        visual: VisualValidationResult | None = None,
        filename: str = "offer.pdf",
    ) -> DocumentAnalysis:
        parsed = ApsContract.model_validate(DEFAULT_CONTRACT if contract is None else contract)
        filled, total = count_leaves(parsed)
        return DocumentAnalysis(
            filename=filename,
            storage_key=storage_key,
            page_count=6,
            detection=FormDetectionResult(
                is_recognized_form=recognized,
                form_type=FormType.AGREEMENT_OF_PURCHASE_AND_SALE if recognized else None,
                confidence=90 if recognized else 0,
                identifiers=["OREA", "Form 100 APS"] if recognized else [],
            ),
            extraction=ExtractionResult.from_counts(
                parsed,
                strategy=ExtractionStrategy.VISION,
                filled=filled,
                total=total,
            ),
            visual_validation=visual,
            cross_validation_score=score,
            relevance_score=relevance,
            validation_status=status,
        )

    return _make


@pytest.fixture
def make_message(make_analysis: Callable[..., DocumentAnalysis]) -> Callable[..., InboundMessage]:
    def _make(
        message_id: str = "msg-1",
        *,
        sub_category: MessageSubCategory = MessageSubCategory.NEW_OFFER,
        thread_id: str = "thread-1",
        listing_id: str = "listing-1",
        buyer_id: str = "buyer-1",
        analyses: list[DocumentAnalysis] | None = None,
    ) -> InboundMessage:
        return InboundMessage(
            id=message_id,
            thread_id=thread_id,
            listing_id=listing_id,
            buyer_id=buyer_id,
            sub_category=sub_category,
            analyses=[make_analysis()] if analyses is None else analyses,
        )

    return _make
