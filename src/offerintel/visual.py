"""Visual validation of initials, signatures and scan quality."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from offerintel import logger
from offerintel.async_runner import gather_bounded, run_async
from offerintel.exceptions import ExternalServiceError, InvalidModelResponse
from offerintel.pdf_render import rasterize
from offerintel.prompts import (
    build_confirmation_prompt,
    build_initials_prompt,
    build_party_initials_prompt,
    build_quality_prompt,
    build_quick_signature_prompt,
    build_signature_detection_prompt,
    parse_json_response,
)
from offerintel.typing.enums import InitialsClassification, SignatureType
from offerintel.typing.models import (
    ConfirmationDetails,
    ConfirmationResult,
    CrossValidation,
    InitialsCheckResult,
    InitialsPageResult,
    PartyInitialsPage,
    PartyInitialsResult,
    PromptImage,
    SignatureDetection,
    SignatureLocation,
    VisualQuality,
    VisualValidationResult,
)

R = TypeVar("R")

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from offerintel.settings import Settings
    from offerintel.typing.models import Document, ExtractionResult, PageImage
    from offerintel.typing.protocol import VisionModel

PAGE_NOT_FOUND = "Page not found"
PARSE_ERROR = "Parse error"
DEFAULT_INITIALS_LOCATION = "bottom right"
SIGNATURE_SCAN_PAGES = 3

NO_BUYER_NAME = "No buyer name extracted from text"
BUYER_WITHOUT_INITIALS = "Buyer name found in text but no initials detected visually"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "y", "1"}
    return bool(value)


def _as_confidence(value: Any, *, present: bool) -> float:
    if isinstance(value, int | float) and not isinstance(value, bool):
        return min(max(float(value), 0.0), 1.0)
    return 1.0 if present else 0.0


def _fraction(found: int, checked: int) -> float:
    return found / checked if checked else 0.0


class VisualValidator:
    """Ask a vision model about anchor regions of rasterized pages.

    Per-page calls run concurrently, at most `VISUAL_CONCURRENCY` at a time, and results are
    put back in page order before aggregation.
    """

    def __init__(self, model: VisionModel, settings: Settings) -> None:
        """Initialize the validator.

        Args:
            model (VisionModel): Generative model client.
            settings (Settings): Runtime settings (anchor pages, concurrency, rendering).
        """
        self._model = model
        self._settings = settings

    @property
    def anchor_pages(self) -> list[int]:
        """Return the initials anchor pages."""
        return sorted(set(self._settings.initials_anchor_pages))

    def _ask(self, prompt: str, page: PageImage) -> str:
        return self._model.generate([prompt, PromptImage.from_page(page)])

    def _fan_out(self, pages: Sequence[PageImage], func: Callable[[PageImage], R]) -> list[R]:
        return run_async(gather_bounded(pages, func, limit=self._settings.visual_concurrency))

    @staticmethod
    def _index(pages: Sequence[PageImage]) -> dict[int, PageImage]:
        return {page.page_number: page for page in pages}

    def _initials_for_page(self, page: PageImage) -> InitialsPageResult:
        answer = self._ask(build_initials_prompt(page.page_number), page)
        try:
            payload = parse_json_response(answer)
        except InvalidModelResponse:
            logger.warning("Unparseable initials answer", extra={"page": page.page_number})
            return InitialsPageResult(page_number=page.page_number, location=PARSE_ERROR)
        present = _as_bool(payload.get("hasInitials"))
        return InitialsPageResult(
            page_number=page.page_number,
            has_initials=present,
            confidence=_as_confidence(payload.get("confidence"), present=present),
            location=payload.get("location") or (DEFAULT_INITIALS_LOCATION if present else None),
        )

    def check_initials(self, pages: Sequence[PageImage]) -> InitialsCheckResult:
        """Check the buyer initials box on every anchor page.

        The prompt counts any mark as initials. Anchor pages missing from `pages` count as
        checked and not found.

        Args:
            pages: Rasterized pages, any order.

        Returns:
            InitialsCheckResult: Per-page results in page order and the found/checked ratio.
        """
        by_number = self._index(pages)
        present = [by_number[number] for number in self.anchor_pages if number in by_number]
        results = self._fan_out(present, self._initials_for_page)
        results.extend(
            InitialsPageResult(page_number=number, location=PAGE_NOT_FOUND)
            for number in self.anchor_pages
            if number not in by_number
        )
        results.sort(key=lambda result: result.page_number)

        found = sum(result.has_initials for result in results)
        checked = len(results)
        logger.info("Initials checked", extra={"found": found, "checked": checked})
        return InitialsCheckResult(
            all_initials_present=checked > 0 and found == checked,
            page_results=results,
            total_pages_checked=checked,
            total_initials_found=found,
            confidence=_fraction(found, checked),
        )

    def _party_initials_for_page(self, page: PageImage) -> PartyInitialsPage:
        answer = self._ask(build_party_initials_prompt(page.page_number), page)
        try:
            payload = parse_json_response(answer)
        except InvalidModelResponse:
            logger.warning("Unparseable party initials answer", extra={"page": page.page_number})
            return PartyInitialsPage(page_number=page.page_number, location=PARSE_ERROR)
        return PartyInitialsPage(
            page_number=page.page_number,
            buyer_initials=_as_bool(payload.get("buyerInitials")),
            seller_initials=_as_bool(payload.get("sellerInitials")),
            location=payload.get("location"),
        )

    def check_party_initials(self, pages: Sequence[PageImage]) -> PartyInitialsResult:
        """Compare buyer and seller initials boxes to tell a new offer from an accepted counter.

        Both parties' initials mean acceptance. Buyer initials alone mean a new offer. Anything
        else is inconclusive, with confidence 0.

        Args:
            pages: Rasterized pages, any order.

        Returns:
            PartyInitialsResult: Classification and per-page results in page order.
        """
        by_number = self._index(pages)
        present = [by_number[number] for number in self.anchor_pages if number in by_number]
        results = self._fan_out(present, self._party_initials_for_page)
        results.extend(
            PartyInitialsPage(page_number=number, location=PAGE_NOT_FOUND)
            for number in self.anchor_pages
            if number not in by_number
        )
        results.sort(key=lambda result: result.page_number)

        checked = len(results)
        buyer_found = sum(result.buyer_initials for result in results)
        seller_found = sum(result.seller_initials for result in results)

        if buyer_found and seller_found:
            classification = InitialsClassification.ACCEPTANCE
            confidence = _fraction(buyer_found + seller_found, 2 * checked)
        elif buyer_found:
            classification = InitialsClassification.NEW_OFFER
            confidence = _fraction(buyer_found, checked)
        else:
            classification = InitialsClassification.INCONCLUSIVE
            confidence = 0.0

        logger.info(
            "Party initials checked",
            extra={"buyer": buyer_found, "seller": seller_found, "classification": classification.to_str()},
        )
        return PartyInitialsResult(
            classification=classification,
            is_likely_new_offer=classification == InitialsClassification.NEW_OFFER,
            is_likely_acceptance=classification == InitialsClassification.ACCEPTANCE,
            confidence=confidence,
            buyer_initials_found=buyer_found,
            seller_initials_found=seller_found,
            total_pages_checked=checked,
            page_results=results,
        )

    def check_confirmation_of_acceptance(self, pages: Sequence[PageImage]) -> ConfirmationResult:
        """Look for the buyer's signature in the confirmation-of-acceptance block.

        The seller signature and acceptance date are recorded but not required.

        Returns:
            ConfirmationResult: Confidence is the share of the block's three anchors present
            (buyer signature, seller signature, acceptance date).
        """
        page_number = self._settings.confirmation_page
        page = self._index(pages).get(page_number)
        if page is None:
            return ConfirmationResult(
                has_confirmation_signature=False,
                details=ConfirmationDetails(location=PAGE_NOT_FOUND),
            )

        answer = self._ask(build_confirmation_prompt(page_number), page)
        try:
            payload = parse_json_response(answer)
        except InvalidModelResponse:
            logger.warning("Unparseable confirmation answer", extra={"page": page_number})
            return ConfirmationResult(
                has_confirmation_signature=False,
                details=ConfirmationDetails(location=PARSE_ERROR),
            )

        buyer_signed = _as_bool(payload.get("buyerSignature"))
        seller_signed = _as_bool(payload.get("sellerSignature"))
        acceptance_date = payload.get("acceptanceDate") or None
        anchors = (buyer_signed, seller_signed, acceptance_date is not None)
        return ConfirmationResult(
            has_confirmation_signature=buyer_signed,
            confidence=_fraction(sum(anchors), len(anchors)),
            details=ConfirmationDetails(
                seller_signature_present=seller_signed,
                buyer_acceptance_signature_present=buyer_signed,
                acceptance_date=str(acceptance_date) if acceptance_date is not None else None,
                location=payload.get("location"),
            ),
        )

    def assess_quality(self, pages: Sequence[PageImage]) -> VisualQuality:
        """Rate the readability of the first page.

        Returns:
            VisualQuality: `assessed` is False when the page is missing or the model call fails.
        """
        if not pages:
            return VisualQuality()
        first = min(pages, key=lambda page: page.page_number)
        try:
            payload = parse_json_response(self._ask(build_quality_prompt(), first))
        except (ExternalServiceError, InvalidModelResponse) as exc:
            logger.warning("Quality assessment unavailable", extra={"error": str(exc)})
            return VisualQuality()

        overall = payload.get("overallQuality")
        is_readable = _as_bool(payload.get("isReadable"))
        return VisualQuality(
            is_readable=is_readable,
            has_blurred_sections=_as_bool(payload.get("hasBlurredSections")),
            overall_quality=_as_confidence(overall, present=is_readable),
            assessed=True,
        )

    def quick_signature_check(self, pages: Sequence[PageImage]) -> bool:
        """Ask a YES/NO signature question about the last page."""
        if not pages:
            return False
        last = max(pages, key=lambda page: page.page_number)
        answer = self._ask(build_quick_signature_prompt(), last)
        return answer.strip().upper().startswith("YES")

    def _signatures_for_page(self, page: PageImage) -> list[SignatureLocation]:
        answer = self._ask(build_signature_detection_prompt(page.page_number), page)
        try:
            payload = parse_json_response(answer)
        except InvalidModelResponse:
            logger.warning("Unparseable signature answer", extra={"page": page.page_number})
            return []
        locations: list[SignatureLocation] = []
        for entry in payload.get("signatures") or []:
            if not isinstance(entry, dict):
                continue
            party = str(entry.get("party", "buyer")).lower()
            signature_type = SignatureType.SELLER_SIGNATURE if party == "seller" else SignatureType.BUYER_SIGNATURE
            locations.append(
                SignatureLocation(
                    page_number=page.page_number,
                    signature_type=signature_type,
                    confidence=_as_confidence(entry.get("confidence"), present=True),
                    location=entry.get("location") or DEFAULT_INITIALS_LOCATION,
                ),
            )
        return locations

    def detect_signatures(self, pages: Sequence[PageImage]) -> list[SignatureLocation]:
        """Locate signatures on the last pages, in page order."""
        tail = sorted(pages, key=lambda page: page.page_number)[-SIGNATURE_SCAN_PAGES:]
        per_page = self._fan_out(tail, self._signatures_for_page)
        return [location for locations in per_page for location in locations]

    def required_pages(self) -> list[int]:
        """Return every page number the checks of `validate` look at."""
        return sorted({1, self._settings.confirmation_page, *self.anchor_pages})

    def validate(
        self,
        document: Document,
        extraction: ExtractionResult | None,
        *,
        pages: Sequence[PageImage] | None = None,
        include_party_check: bool = True,
        include_confirmation: bool = True,
    ) -> VisualValidationResult:
        """Gather visual evidence for a document and compare it with the extraction.

        Args:
            document: Source document, rasterized when `pages` is not given.
            extraction: Extraction result to cross-check, None when extraction did not run.
            pages: Pre-rendered pages.
            include_party_check: Also run the buyer-vs-seller initials comparison.
            include_confirmation: Also run the confirmation-of-acceptance check.

        Raises:
            RasterEngineUnavailable: If pages must be rendered and no engine is available.
            ExternalServiceError: If a per-page model call fails.

        Returns:
            VisualValidationResult: Evidence and discrepancies, never raised as an error.
        """
        if pages is None:
            pages = rasterize(
                document,
                max_pages=self._settings.raster_max_pages,
                dpi=self._settings.raster_dpi,
                image_format=self._settings.raster_format,
                page_numbers=self.required_pages(),
            )

        initials = self.check_initials(pages)
        party = self.check_party_initials(pages) if include_party_check else None
        confirmation = self.check_confirmation_of_acceptance(pages) if include_confirmation else None
        quality = self.assess_quality(pages)

        found_pages = [result for result in initials.page_results if result.has_initials]
        detection = SignatureDetection(
            has_signatures=initials.all_initials_present,
            signature_count=initials.total_initials_found,
            signature_locations=[
                SignatureLocation(
                    page_number=result.page_number,
                    signature_type=SignatureType.BUYER_INITIALS,
                    confidence=result.confidence,
                    location=result.location or DEFAULT_INITIALS_LOCATION,
                )
                for result in found_pages
            ],
            confidence=initials.confidence,
        )

        discrepancies: list[str] = []
        buyer_name = extraction.contract.buyer_full_name if extraction is not None else None
        if not buyer_name:
            discrepancies.append(NO_BUYER_NAME)
        elif initials.total_initials_found == 0:
            discrepancies.append(BUYER_WITHOUT_INITIALS)

        return VisualValidationResult(
            signature_detection=detection,
            visual_quality=quality,
            cross_validation=CrossValidation(
                text_matches_visual=not discrepancies,
                discrepancies=discrepancies,
            ),
            initials=initials,
            party_initials=party,
            confirmation=confirmation,
        )
