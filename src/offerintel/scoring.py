"""Fill-rate confidence and cross-validation scoring."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from offerintel.typing.enums import ValidationStatus
from offerintel.typing.models import ApsContract

if TYPE_CHECKING:
    from collections.abc import Iterator

    from offerintel.typing.models import ExtractionResult, VisualValidationResult

SIGNATURE_WEIGHT = 0.4
QUALITY_WEIGHT = 0.2
AGREEMENT_WEIGHT = 0.3
EXTRACTION_WEIGHT = 0.1
MAX_TOLERATED_DISCREPANCIES = 2


def iter_leaves(model: BaseModel, prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield `(dotted_path, value)` for every leaf field of a nested model.

    Lists are leaves: an itemized sequence counts once, whatever its length.
    """
    for name in type(model).model_fields:
        value = getattr(model, name)
        path = f"{prefix}{name}"
        if isinstance(value, BaseModel):
            yield from iter_leaves(value, f"{path}.")
        else:
            yield path, value


def is_populated(value: Any) -> bool:
    """Return whether a leaf value counts as filled."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, list | tuple):
        return len(value) > 0
    return True


def count_leaves(contract: ApsContract) -> tuple[int, int]:
    """Return `(filled, total)` leaf counts of a contract."""
    filled = total = 0
    for _, value in iter_leaves(contract):
        total += 1
        filled += is_populated(value)
    return filled, total


CONTRACT_LEAF_COUNT = count_leaves(ApsContract())[1]


def merge_contracts(primary: ApsContract, fallback: ApsContract) -> ApsContract:
    """Fill the empty leaves of `primary` from `fallback`."""

    def _merge(left: dict[str, Any], right: dict[str, Any]) -> dict[str, Any]:
        merged = dict(left)
        for key, value in right.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = _merge(current, value)
            elif not is_populated(current) and is_populated(value):
                merged[key] = value
        return merged

    return ApsContract.model_validate(_merge(primary.model_dump(), fallback.model_dump()))


def agreement_credit(discrepancy_count: int) -> float:
    """Return the text/visual agreement credit for a number of discrepancies."""
    if discrepancy_count == 0:
        return 1.0
    if discrepancy_count <= MAX_TOLERATED_DISCREPANCIES:
        return 0.5
    return 0.0


def cross_validation_score(extraction: ExtractionResult | None, visual: VisualValidationResult) -> float:
    """Combine textual and visual evidence into one trust score.

    Args:
        extraction: Extraction result, None when no tier produced one.
        visual: Visual validation of the same document.

    Returns:
        float: Score in [0, 1]. Signature presence weighs 0.4, readability 0.2, text/visual
        agreement 0.3 and extraction confidence 0.1.
    """
    score = 0.0
    if visual.signature_detection.has_signatures:
        score += SIGNATURE_WEIGHT

    quality = visual.visual_quality
    if quality.assessed and quality.is_readable:
        score += QUALITY_WEIGHT * quality.overall_quality

    score += AGREEMENT_WEIGHT * agreement_credit(len(visual.cross_validation.discrepancies))

    if extraction is not None:
        score += EXTRACTION_WEIGHT * extraction.doc_confidence
    return round(min(max(score, 0.0), 1.0), 6)


def validation_status(score: float, *, pass_threshold: float = 0.7, review_threshold: float = 0.4) -> ValidationStatus:
    """Bucket a trust score.

    Args:
        score: Cross-validation score, or extraction confidence when no visual evidence exists.
        pass_threshold: Scores above it pass.
        review_threshold: Scores above it (and not passing) need review.

    Returns:
        ValidationStatus: Trust bucket.
    """
    if score > pass_threshold:
        return ValidationStatus.PASSED
    if score > review_threshold:
        return ValidationStatus.NEEDS_REVIEW
    return ValidationStatus.FAILED
