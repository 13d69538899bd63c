"""Extraction orchestration over the tier fallback chain."""

from __future__ import annotations

from typing import TYPE_CHECKING

from offerintel import logger
from offerintel.backends.acroform import AcroFormTier
from offerintel.backends.docupipe import DocuPipeClient, StandardizationTier
from offerintel.backends.multimodal_openai import OpenAIVisionModel
from offerintel.exceptions import ConfigurationError
from offerintel.scoring import count_leaves, merge_contracts
from offerintel.typing.enums import ExtractionStrategy, VisionBackendType
from offerintel.typing.models import ExtractionResult
from offerintel.vision import VisionExtractor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from offerintel.schema_cache import SchemaIdCache
    from offerintel.settings import Settings
    from offerintel.typing.models import Document
    from offerintel.typing.protocol import ExtractionTier, VisionModel


def _fill_from_weak_result(result: ExtractionResult, weak: ExtractionResult | None) -> ExtractionResult:
    """Complete empty fields from a rejected AcroForm result.

    The fill rate is recounted over the merged contract, so the confidence always matches the
    leaves actually returned.
    """
    if weak is None or weak.strategy_used != ExtractionStrategy.ACROFORM:
        return result
    merged = merge_contracts(result.contract, weak.contract)
    filled, total = count_leaves(merged)
    return ExtractionResult.from_counts(
        merged,
        strategy=result.strategy_used,
        filled=filled,
        total=total,
        form_version=result.form_version or weak.form_version,
    )


class ExtractionOrchestrator:
    """Run extraction tiers in a fixed order and keep the first acceptable result."""

    def __init__(self, tiers: Sequence[ExtractionTier]) -> None:
        """Initialize the orchestrator.

        Args:
            tiers (Sequence[ExtractionTier]): Tiers, cheapest first.
        """
        self._tiers = list(tiers)

    @property
    def tiers(self) -> list[ExtractionTier]:
        """Return configured tiers in fallback order."""
        return list(self._tiers)

    def extract(self, document: Document) -> ExtractionResult:
        """Extract contract fields from a document.

        A tier returning None does not apply to the document and is skipped. A result its tier
        does not accept falls through to the next tier. Tier errors propagate.

        Args:
            document (Document): Source document.

        Raises:
            ConfigurationError: If no vision tier is configured and no tier produced an
                acceptable result.

        Returns:
            ExtractionResult: First accepted result.
        """
        weak: ExtractionResult | None = None
        for tier in self._tiers:
            result = tier.extract(document)
            if result is None:
                continue
            if tier.accepts(result):
                logger.info(
                    "Extraction tier accepted",
                    extra={
                        "tier": tier.name,
                        "filename": document.filename,
                        "doc_confidence": result.doc_confidence,
                    },
                )
                return _fill_from_weak_result(result, weak)
            logger.info(
                "Extraction tier result below threshold",
                extra={"tier": tier.name, "filename": document.filename, "doc_confidence": result.doc_confidence},
            )
            weak = weak or result

        configured = ", ".join(tier.name for tier in self._tiers) or "none"
        raise ConfigurationError(
            message=f"No vision extraction tier is configured for {document.filename} (tiers: {configured})",
        )


def build_vision_tier(
    settings: Settings,
    *,
    model: VisionModel | None = None,
    schema_cache: SchemaIdCache | None = None,
) -> ExtractionTier | None:
    """Build the vision tier selected by `VISION_BACKEND`, or None when it has no credentials."""
    if settings.vision_backend == VisionBackendType.STANDARDIZATION:
        if not settings.docupipe_api_key:
            return None
        return StandardizationTier(DocuPipeClient(settings, schema_cache=schema_cache))

    if model is None:
        if not settings.openai_api_key:
            return None
        model = OpenAIVisionModel(settings)
    return VisionExtractor(model, settings)


def build_orchestrator(
    settings: Settings,
    *,
    model: VisionModel | None = None,
    schema_cache: SchemaIdCache | None = None,
) -> ExtractionOrchestrator:
    """Build the default AcroForm-then-vision chain from settings."""
    tiers: list[ExtractionTier] = [AcroFormTier(accept_threshold=settings.acroform_accept_threshold)]
    vision_tier = build_vision_tier(settings, model=model, schema_cache=schema_cache)
    if vision_tier is not None:
        tiers.append(vision_tier)
    else:
        logger.warning("Vision tier not configured", extra={"backend": settings.vision_backend.to_str()})
    return ExtractionOrchestrator(tiers)
