"""Offer lifecycle, inbound message and signing models."""

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from offerintel.typing.enums import ConditionStatus, MessageSubCategory, OfferStatus, SigningEventType
from offerintel.typing.models.condition import OfferCondition
from offerintel.typing.models.validation import DocumentAnalysis


def _new_id() -> str:
    return uuid4().hex


class CounterTerms(BaseModel):
    """Seller's counter-offer terms."""

    model_config = ConfigDict(extra="forbid")

    price: float | None = None
    deposit: float | None = None
    closing_date: datetime | None = None
    conditions: list[str] = Field(default_factory=list)
    message: str | None = None


class Offer(BaseModel):
    """Purchase offer tracked by the state machine.

    Only `OfferStateMachine` writes `status`.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=_new_id)
    listing_id: str
    buyer_id: str
    thread_id: str
    source_message_id: str
    related_message_ids: list[str] = Field(default_factory=list)
    status: OfferStatus = OfferStatus.PENDING_REVIEW
    price: float | None = None
    deposit: float | None = None
    closing_date: datetime | None = None
    expiry_date: datetime | None = None
    conditions: list[str] = Field(default_factory=list)
    condition_records: list[OfferCondition] = Field(default_factory=list)
    original_document_key: str | None = None
    signed_document_key: str | None = None
    signing_request_id: str | None = None
    signature_id: str | None = None
    seller_signed_at: datetime | None = None
    buyer_signed_at: datetime | None = None
    viewed_at: datetime | None = None
    decline_reason: str | None = None
    counter_terms: CounterTerms | None = None
    validation_score: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def pair(self) -> tuple[str, str]:
        """Return the (listing, buyer) key that serializes transitions."""
        return self.listing_id, self.buyer_id

    def handles_message(self, message_id: str) -> bool:
        """Return whether the offer was created or changed by an inbound message."""
        return message_id == self.source_message_id or message_id in self.related_message_ids

    @property
    def pending_conditions(self) -> list[OfferCondition]:
        """Return conditions not yet fulfilled, in creation order."""
        return [record for record in self.condition_records if record.status == ConditionStatus.PENDING]

    @property
    def all_conditions_fulfilled(self) -> bool:
        """Return whether the offer has conditions and every one is fulfilled."""
        return bool(self.condition_records) and not self.pending_conditions


class Thread(BaseModel):
    """Message thread between a buyer and a listing."""

    model_config = ConfigDict(extra="forbid")

    id: str
    listing_id: str
    buyer_id: str
    active_offer_id: str | None = None


class InboundMessage(BaseModel):
    """Classified buyer message with its analyzed attachments."""

    model_config = ConfigDict(extra="forbid")

    id: str
    thread_id: str
    listing_id: str
    buyer_id: str
    sub_category: MessageSubCategory
    analyses: list[DocumentAnalysis] = Field(default_factory=list)


class Signer(BaseModel):
    """Signer of an embedded signing request."""

    model_config = ConfigDict(extra="forbid")

    email: str
    name: str
    order: int = 0


class SigningRequest(BaseModel):
    """Identifiers returned by the signing provider for a new request."""

    model_config = ConfigDict(extra="forbid")

    request_id: str
    signature_id: str


class SignUrl(BaseModel):
    """Embedded sign URL."""

    model_config = ConfigDict(extra="forbid")

    url: str
    expires_at: datetime


class SigningEvent(BaseModel):
    """Parsed signing webhook event."""

    model_config = ConfigDict(extra="forbid")

    event_type: SigningEventType
    event_time: str
    event_hash: str | None = None
    request_id: str


class WebhookOutcome(BaseModel):
    """Result reported back to the signing provider's webhook call."""

    model_config = ConfigDict(extra="forbid")

    acknowledged: bool = True
    processed: bool = False
    offer_id: str | None = None
    status: OfferStatus | None = None
    reason: str | None = None
