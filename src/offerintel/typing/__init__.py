"""Typing-centric domain modules."""

from offerintel.typing.enums import (
    ExtractionStrategy,
    FormFieldType,
    FormType,
    InitialsClassification,
    MessageSubCategory,
    NotificationKind,
    OfferStatus,
    SignatureType,
    SigningEventType,
    ValidationStatus,
    VisionBackendType,
    VisionInputMode,
)
from offerintel.typing.models import (
    ApsContract,
    Document,
    DocumentAnalysis,
    ExtractionResult,
    FormDetectionResult,
    InboundMessage,
    Offer,
    PageImage,
    VisualValidationResult,
)
from offerintel.typing.protocol import (
    ExtractionTier,
    Notifier,
    ObjectStore,
    OfferRepository,
    SigningProvider,
    VisionModel,
)

__all__ = [
    "ApsContract",
    "Document",
    "DocumentAnalysis",
    "ExtractionResult",
    "ExtractionStrategy",
    "ExtractionTier",
    "FormDetectionResult",
    "FormFieldType",
    "FormType",
    "InboundMessage",
    "InitialsClassification",
    "MessageSubCategory",
    "Notifier",
    "NotificationKind",
    "ObjectStore",
    "Offer",
    "OfferRepository",
    "OfferStatus",
    "PageImage",
    "SignatureType",
    "SigningEventType",
    "SigningProvider",
    "ValidationStatus",
    "VisionBackendType",
    "VisionInputMode",
    "VisionModel",
    "VisualValidationResult",
]
