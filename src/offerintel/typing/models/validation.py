"""Visual validation and document analysis models."""

from pydantic import BaseModel, ConfigDict, Field

from offerintel.typing.enums import InitialsClassification, SignatureType, ValidationStatus
from offerintel.typing.models.condition import FulfillmentNotice
from offerintel.typing.models.document import FormDetectionResult
from offerintel.typing.models.extraction import ExtractionResult


class InitialsPageResult(BaseModel):
    """Initials check outcome for one anchor page."""

    model_config = ConfigDict(extra="forbid")

    page_number: int
    has_initials: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    location: str | None = None


class InitialsCheckResult(BaseModel):
    """Aggregate buyer initials check over all anchor pages."""

    model_config = ConfigDict(extra="forbid")

    all_initials_present: bool
    page_results: list[InitialsPageResult] = Field(default_factory=list)
    total_pages_checked: int = 0
    total_initials_found: int = 0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class PartyInitialsPage(BaseModel):
    """Buyer and seller initials presence on one anchor page."""

    model_config = ConfigDict(extra="forbid")

    page_number: int
    buyer_initials: bool = False
    seller_initials: bool = False
    location: str | None = None


class PartyInitialsResult(BaseModel):
    """Buyer-vs-seller initials comparison used to tell offers from accepted counters."""

    model_config = ConfigDict(extra="forbid")

    classification: InitialsClassification
    is_likely_new_offer: bool
    is_likely_acceptance: bool
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    buyer_initials_found: int = 0
    seller_initials_found: int = 0
    total_pages_checked: int = 0
    page_results: list[PartyInitialsPage] = Field(default_factory=list)


class ConfirmationDetails(BaseModel):
    """Details read from the confirmation-of-acceptance block."""

    model_config = ConfigDict(extra="forbid")

    seller_signature_present: bool = False
    buyer_acceptance_signature_present: bool = False
    acceptance_date: str | None = None
    location: str | None = None


class ConfirmationResult(BaseModel):
    """Outcome of the confirmation-of-acceptance check."""

    model_config = ConfigDict(extra="forbid")

    has_confirmation_signature: bool
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    details: ConfirmationDetails = Field(default_factory=ConfirmationDetails)


class VisualQuality(BaseModel):
    """Readability of the scanned pages."""

    model_config = ConfigDict(extra="forbid")

    is_readable: bool = False
    has_blurred_sections: bool = False
    overall_quality: float = Field(default=0.0, ge=0.0, le=1.0)
    assessed: bool = False


class SignatureLocation(BaseModel):
    """Located mark on a page."""

    model_config = ConfigDict(extra="forbid")

    page_number: int
    signature_type: SignatureType
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    location: str = "bottom right"


class SignatureDetection(BaseModel):
    """Signature presence summary."""

    model_config = ConfigDict(extra="forbid")

    has_signatures: bool = False
    signature_count: int = 0
    signature_locations: list[SignatureLocation] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class CheckboxDetection(BaseModel):
    """Checkbox state read from the document."""

    model_config = ConfigDict(extra="forbid")

    name: str
    checked: bool
    page_number: int | None = None


class CrossValidation(BaseModel):
    """Agreement between extracted text and visual evidence."""

    model_config = ConfigDict(extra="forbid")

    text_matches_visual: bool
    discrepancies: list[str] = Field(default_factory=list)


class VisualValidationResult(BaseModel):
    """All visual evidence gathered for one document."""

    model_config = ConfigDict(extra="forbid")

    signature_detection: SignatureDetection = Field(default_factory=SignatureDetection)
    checkboxes_detected: list[CheckboxDetection] = Field(default_factory=list)
    visual_quality: VisualQuality = Field(default_factory=VisualQuality)
    cross_validation: CrossValidation
    initials: InitialsCheckResult | None = None
    party_initials: PartyInitialsResult | None = None
    confirmation: ConfirmationResult | None = None


class DocumentAnalysis(BaseModel):
    """Analysis record for one attachment, immutable once built."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    filename: str
    storage_key: str | None = None
    page_count: int = 0
    detection: FormDetectionResult
    extraction: ExtractionResult | None = None
    fulfillment: FulfillmentNotice | None = None
    visual_validation: VisualValidationResult | None = None
    cross_validation_score: float | None = Field(default=None, ge=0.0, le=1.0)
    relevance_score: int = Field(default=0, ge=0, le=100)
    validation_status: ValidationStatus = ValidationStatus.NEEDS_REVIEW
    notes: list[str] = Field(default_factory=list)

    @property
    def is_recognized_form(self) -> bool:
        """Return whether the attachment is a recognized OREA form."""
        return self.detection.is_recognized_form

    @property
    def is_fulfillment_notice(self) -> bool:
        """Return whether the attachment is a parsed Form 124."""
        return self.fulfillment is not None

    @property
    def trust_score(self) -> float:
        """Return the number downstream consumers should trust."""
        if self.cross_validation_score is not None:
            return self.cross_validation_score
        if self.extraction is not None:
            return self.extraction.doc_confidence
        return 0.0
