"""Collaborator interfaces."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from offerintel.typing.enums import NotificationKind, OfferStatus
    from offerintel.typing.models import (
        Document,
        ExtractionResult,
        Offer,
        PromptImage,
        Signer,
        SigningRequest,
        SignUrl,
        Thread,
    )


class VisionModel(Protocol):
    """Generative vision model: prompt parts in, text out."""

    def generate(self, parts: list[str | PromptImage]) -> str:
        """Run one generation.

        Args:
            parts: Ordered text and binary prompt parts.

        Returns:
            str: Raw model text.
        """


class ExtractionTier(Protocol):
    """One strategy of the extraction fallback chain."""

    name: str

    def extract(self, document: Document) -> ExtractionResult | None:
        """Extract contract fields.

        Args:
            document: Source document.

        Returns:
            ExtractionResult | None: Result, or None when the tier does not apply.
        """

    def accepts(self, result: ExtractionResult) -> bool:
        """Return whether the result is good enough to stop the fallback chain."""


class ObjectStore(Protocol):
    """External object storage."""

    def get_signed_url(self, bucket: str, key: str, ttl_seconds: int) -> str:
        """Return a time-limited download URL."""

    def upload_file(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        """Store bytes and return the stored key."""


class SigningProvider(Protocol):
    """External e-signature provider."""

    def create_embedded_request(
        self,
        document_url: str,
        signers: list[Signer],
        metadata: dict[str, str],
    ) -> SigningRequest:
        """Create an embedded signing request for a document."""

    def get_embedded_sign_url(self, signature_id: str) -> SignUrl:
        """Return the embedded sign URL of one signer."""

    def download_signed_document(self, request_id: str) -> bytes:
        """Download the final signed PDF."""

    def cancel_request(self, request_id: str) -> None:
        """Cancel a pending signing request."""


class Notifier(Protocol):
    """Outbound notification sender."""

    def notify(self, offer: Offer, kind: NotificationKind, message: str) -> None:
        """Send one notification about an offer."""


class OfferRepository(Protocol):
    """Persistence of offers and threads."""

    def get(self, offer_id: str) -> Offer | None:
        """Return one offer by id."""

    def find_by_message(self, message_id: str) -> Offer | None:
        """Return the offer created or changed by a message, if any."""

    def find_by_signing_request(self, request_id: str) -> Offer | None:
        """Return the offer bound to a signing request, if any."""

    def list_for_pair(self, listing_id: str, buyer_id: str) -> list[Offer]:
        """Return offers of one buyer on one listing, oldest first."""

    def list_for_thread(self, thread_id: str) -> list[Offer]:
        """Return offers created on one thread, oldest first."""

    def list_by_status(self, statuses: set[OfferStatus]) -> list[Offer]:
        """Return offers in any of the given states."""

    def save(self, offer: Offer) -> Offer:
        """Insert or replace an offer."""

    def get_thread(self, thread_id: str) -> Thread | None:
        """Return one thread by id."""

    def save_thread(self, thread: Thread) -> Thread:
        """Insert or replace a thread."""
