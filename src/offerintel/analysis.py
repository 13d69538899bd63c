"""Document analysis pipeline: classify, extract, validate, score."""

from __future__ import annotations

from typing import TYPE_CHECKING

from offerintel import logger
from offerintel.classifier import classify, relevance_score
from offerintel.dependencies import raster_engine_available
from offerintel.exceptions import (
    AsyncExecutionError,
    ExternalServiceError,
    InvalidModelResponse,
    RasterEngineUnavailable,
)
from offerintel.pdf_text import extract_text
from offerintel.scoring import cross_validation_score, validation_status
from offerintel.typing.enums import FormType, ValidationStatus
from offerintel.typing.models import DocumentAnalysis

if TYPE_CHECKING:
    from offerintel.conditions import FulfillmentNoticeExtractor
    from offerintel.extractor import ExtractionOrchestrator
    from offerintel.settings import Settings
    from offerintel.typing.models import Document, ExtractionResult, FormDetectionResult, VisualValidationResult
    from offerintel.visual import VisualValidator

VISUAL_UNAVAILABLE = "Visual validation unavailable: raster engine missing"
VISUAL_FAILED = "Visual validation failed"
NOT_A_FORM = "Document is not a recognized OREA form"
NOTICE_UNSUPPORTED = "Fulfillment notice extraction not configured"
NOTICE_EMPTY = "Fulfillment notice lists no conditions"


class DocumentAnalyzer:
    """Build one `DocumentAnalysis` per attachment.

    Extraction errors propagate. Visual validation problems only add a note, and the status
    then falls back to the extraction confidence.
    """

    def __init__(
        self,
        orchestrator: ExtractionOrchestrator,
        settings: Settings,
        *,
        validator: VisualValidator | None = None,
        fulfillment_extractor: FulfillmentNoticeExtractor | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            orchestrator (ExtractionOrchestrator): Extraction tier chain.
            settings (Settings): Runtime settings.
            validator (VisualValidator | None): Visual validator. None disables visual checks.
            fulfillment_extractor (FulfillmentNoticeExtractor | None): Form 124 reader. None leaves
                notices for manual review.
        """
        self._orchestrator = orchestrator
        self._settings = settings
        self._validator = validator
        self._fulfillment_extractor = fulfillment_extractor

    def _status(self, score: float) -> ValidationStatus:
        return validation_status(
            score,
            pass_threshold=self._settings.validation_pass_threshold,
            review_threshold=self._settings.validation_review_threshold,
        )

    def _visual(
        self,
        document: Document,
        extraction: ExtractionResult,
        notes: list[str],
    ) -> VisualValidationResult | None:
        if self._validator is None:
            return None
        if not raster_engine_available():
            notes.append(VISUAL_UNAVAILABLE)
            return None
        try:
            return self._validator.validate(document, extraction)
        except RasterEngineUnavailable:
            notes.append(VISUAL_UNAVAILABLE)
        except (AsyncExecutionError, ExternalServiceError, InvalidModelResponse) as exc:
            logger.warning("Visual validation failed", extra={"filename": document.filename, "error": str(exc)})
            notes.append(f"{VISUAL_FAILED}: {exc}")
        return None

    def _analyze_notice(
        self,
        document: Document,
        detection: FormDetectionResult,
        page_count: int,
        relevance: int,
    ) -> DocumentAnalysis:
        """Read a Form 124 instead of running the purchase agreement extraction."""
        notes: list[str] = []
        notice = None
        status = ValidationStatus.NEEDS_REVIEW
        if self._fulfillment_extractor is None:
            notes.append(NOTICE_UNSUPPORTED)
        else:
            notice = self._fulfillment_extractor.extract(document)
            if notice.fulfilled_conditions:
                status = ValidationStatus.PASSED
            else:
                notes.append(NOTICE_EMPTY)

        logger.info(
            "Fulfillment notice analyzed",
            extra={"filename": document.filename, "status": status, "parsed": notice is not None},
        )
        return DocumentAnalysis(
            filename=document.filename,
            storage_key=document.storage_key,
            page_count=page_count,
            detection=detection,
            fulfillment=notice,
            relevance_score=relevance,
            validation_status=status,
            notes=notes,
        )

    def analyze(self, document: Document) -> DocumentAnalysis:
        """Analyze one document.

        Args:
            document (Document): PDF attachment.

        Raises:
            ExternalServiceError: If the PDF cannot be read or the vision tier fails.
            InvalidModelResponse: If the vision tier answer cannot be parsed.
            ConfigurationError: If no extraction tier can handle the document.

        Returns:
            DocumentAnalysis: Immutable analysis record.
        """
        text, page_count = extract_text(document)
        detection = classify(text)
        relevance = relevance_score(
            filename=document.filename,
            text=text,
            page_count=page_count,
            detection=detection,
        )
        logger.info(
            "Document classified",
            extra={
                "filename": document.filename,
                "recognized": detection.is_recognized_form,
                "form_type": detection.form_type,
                "confidence": detection.confidence,
                "relevance": relevance,
            },
        )

        notes: list[str] = []
        if not detection.is_recognized_form:
            notes.append(NOT_A_FORM)
            return DocumentAnalysis(
                filename=document.filename,
                storage_key=document.storage_key,
                page_count=page_count,
                detection=detection,
                relevance_score=relevance,
                validation_status=ValidationStatus.FAILED,
                notes=notes,
            )

        if detection.form_type == FormType.NOTICE_OF_FULFILLMENT:
            return self._analyze_notice(document, detection, page_count, relevance)

        extraction = self._orchestrator.extract(document)
        visual = self._visual(document, extraction, notes)

        score: float | None = None
        if visual is not None:
            score = cross_validation_score(extraction, visual)
        status = self._status(score if score is not None else extraction.doc_confidence)

        logger.info(
            "Document analyzed",
            extra={
                "filename": document.filename,
                "strategy": extraction.strategy_used,
                "doc_confidence": extraction.doc_confidence,
                "cross_validation_score": score,
                "status": status,
            },
        )
        return DocumentAnalysis(
            filename=document.filename,
            storage_key=document.storage_key,
            page_count=page_count,
            detection=detection,
            extraction=extraction,
            visual_validation=visual,
            cross_validation_score=score,
            relevance_score=relevance,
            validation_status=status,
            notes=notes,
        )
