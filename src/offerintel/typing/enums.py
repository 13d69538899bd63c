"""Project enums."""

from __future__ import annotations

from enum import StrEnum


class _EnumMixin(StrEnum):
    """Shared conversion helpers for user-facing enums."""

    @classmethod
    def from_str(cls, value: str) -> _EnumMixin:
        """Parse enum from string.

        Args:
            value: Raw string value.

        Raises:
            ValueError: If the value is not supported.

        Returns:
            _EnumMixin: Parsed enum value.
        """
        try:
            return cls(value)
        except ValueError as exc:
            supported = ", ".join(member.value for member in cls)
            message = f"Unsupported {cls.__name__} value '{value}'. Expected one of: {supported}"
            raise ValueError(message) from exc

    def to_str(self) -> str:
        """Return string representation.

        Returns:
            str: Enum string value.
        """
        return self.value


class FormType(_EnumMixin):
    """Recognized OREA standard forms."""

    NOTICE_OF_FULFILLMENT = "Form 124 - Notice of Fulfillment of Conditions"
    AGREEMENT_OF_PURCHASE_AND_SALE = "Form 100 - Agreement of Purchase and Sale"
    AMENDMENT = "Form 120 - Amendment to Agreement"
    WAIVER = "Form 123 - Waiver"
    COUNTER_OFFER = "Form 221 - Counter Offer"
    MUTUAL_RELEASE = "Form 122 - Mutual Release"


class ExtractionStrategy(_EnumMixin):
    """Tier that produced an extraction result."""

    ACROFORM = "acroform"
    VISION = "vision"


class VisionBackendType(_EnumMixin):
    """Implementation backing the vision tier."""

    MODEL = "model"
    STANDARDIZATION = "standardization"


class VisionInputMode(_EnumMixin):
    """What the vision model receives."""

    DOCUMENT = "document"
    PAGES = "pages"


class FormFieldType(_EnumMixin):
    """Native PDF form field kinds read by the AcroForm tier."""

    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DROPDOWN = "dropdown"
    OTHER = "other"


class SignatureType(_EnumMixin):
    """Kind of mark located on a page."""

    BUYER_INITIALS = "buyer_initials"
    SELLER_INITIALS = "seller_initials"
    BUYER_SIGNATURE = "buyer_signature"
    SELLER_SIGNATURE = "seller_signature"


class InitialsClassification(_EnumMixin):
    """Outcome of the buyer-vs-seller initials comparison."""

    NEW_OFFER = "new_offer"
    ACCEPTANCE = "acceptance"
    INCONCLUSIVE = "inconclusive"


class ValidationStatus(_EnumMixin):
    """Trust bucket of a document analysis."""

    PASSED = "passed"
    NEEDS_REVIEW = "needs_review"
    FAILED = "failed"


class OfferStatus(_EnumMixin):
    """Offer lifecycle states."""

    PENDING_REVIEW = "PENDING_REVIEW"
    AWAITING_SELLER_SIGNATURE = "AWAITING_SELLER_SIGNATURE"
    COUNTERED = "COUNTERED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    SUPERSEDED = "SUPERSEDED"

    @property
    def is_terminal(self) -> bool:
        """Return whether the state can never be left."""
        return self in _TERMINAL_OFFER_STATUSES


_TERMINAL_OFFER_STATUSES = frozenset(
    {OfferStatus.ACCEPTED, OfferStatus.DECLINED, OfferStatus.EXPIRED, OfferStatus.SUPERSEDED},
)


class MessageSubCategory(_EnumMixin):
    """Classification of an inbound buyer message."""

    NEW_OFFER = "NEW_OFFER"
    UPDATED_OFFER = "UPDATED_OFFER"
    AMENDMENT = "AMENDMENT"
    QUESTION = "QUESTION"
    OTHER = "OTHER"


class SigningEventType(_EnumMixin):
    """E-signature webhook events consumed by the offer state machine."""

    VIEWED = "signature_request_viewed"
    SIGNED = "signature_request_signed"
    ALL_SIGNED = "signature_request_all_signed"
    DECLINED = "signature_request_declined"


class NotificationKind(_EnumMixin):
    """Outbound notifications emitted on offer transitions."""

    OFFER_DECLINED = "offer_declined"
    OFFER_COUNTERED = "offer_countered"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_AUTO_REJECTED = "offer_auto_rejected"
    CONDITIONS_FULFILLED = "conditions_fulfilled"


class ConditionStatus(_EnumMixin):
    """State of one Schedule A condition."""

    PENDING = "PENDING"
    FULFILLED = "FULFILLED"
