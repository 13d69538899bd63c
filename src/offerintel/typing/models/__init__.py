"""Core domain model exports."""

from offerintel.typing.models.contract import (
    Acknowledgment,
    ApsContract,
    CommissionTrust,
    DateParts,
    Deposit,
    InclusionsExclusions,
    Irrevocability,
    Lawyer,
    Notices,
    PartyAcknowledgment,
    PriceAndDeposit,
    PropertyDetails,
    PurchasePrice,
    SignatureRecord,
)
from offerintel.typing.models.condition import FulfilledCondition, FulfillmentNotice, OfferCondition
from offerintel.typing.models.document import (
    Document,
    FormDetectionResult,
    FormField,
    PageImage,
    PromptImage,
)
from offerintel.typing.models.extraction import ExtractionResult
from offerintel.typing.models.offer import (
    CounterTerms,
    InboundMessage,
    Offer,
    Signer,
    SigningEvent,
    SigningRequest,
    SignUrl,
    Thread,
    WebhookOutcome,
)
from offerintel.typing.models.validation import (
    CheckboxDetection,
    ConfirmationDetails,
    ConfirmationResult,
    CrossValidation,
    DocumentAnalysis,
    InitialsCheckResult,
    InitialsPageResult,
    PartyInitialsPage,
    PartyInitialsResult,
    SignatureDetection,
    SignatureLocation,
    VisualQuality,
    VisualValidationResult,
)

__all__ = [
    "Acknowledgment",
    "ApsContract",
    "CheckboxDetection",
    "CommissionTrust",
    "ConfirmationDetails",
    "ConfirmationResult",
    "CounterTerms",
    "CrossValidation",
    "DateParts",
    "Deposit",
    "Document",
    "DocumentAnalysis",
    "ExtractionResult",
    "FormDetectionResult",
    "FormField",
    "FulfilledCondition",
    "FulfillmentNotice",
    "InboundMessage",
    "InclusionsExclusions",
    "InitialsCheckResult",
    "InitialsPageResult",
    "Irrevocability",
    "Lawyer",
    "Notices",
    "Offer",
    "OfferCondition",
    "PageImage",
    "PartyAcknowledgment",
    "PartyInitialsPage",
    "PartyInitialsResult",
    "PriceAndDeposit",
    "PromptImage",
    "PropertyDetails",
    "PurchasePrice",
    "SignUrl",
    "SignatureDetection",
    "SignatureLocation",
    "SignatureRecord",
    "Signer",
    "SigningEvent",
    "SigningRequest",
    "Thread",
    "VisualQuality",
    "VisualValidationResult",
    "WebhookOutcome",
]
