"""OREA form recognition and attachment relevance ranking."""

from __future__ import annotations

from typing import Final

from offerintel.typing.enums import FormType
from offerintel.typing.models import FormDetectionResult

ORGANIZATION_IDENTIFIERS: Final[tuple[str, ...]] = (
    "Ontario Real Estate Association",
    "OREA",
    "Toronto Regional Real Estate Board",
    "TRREB",
)

# Priority order: the first matching form type wins. A Form 124 quotes the agreement it
# refers to, so it is checked before Form 100.
FORM_TYPE_PATTERNS: Final[tuple[tuple[FormType, str, tuple[str, ...]], ...]] = (
    (
        FormType.NOTICE_OF_FULFILLMENT,
        "Form 124 Notice of Fulfillment",
        ("notice of fulfillment", "notice of fulfilment", "form 124"),
    ),
    (
        FormType.AGREEMENT_OF_PURCHASE_AND_SALE,
        "Form 100 APS",
        ("agreement of purchase and sale", "form 100"),
    ),
    (FormType.AMENDMENT, "Form 120 Amendment", ("amendment to agreement", "form 120")),
    (FormType.WAIVER, "Form 123 Waiver", ("waiver", "form 123")),
    (FormType.COUNTER_OFFER, "Form 221 Counter Offer", ("counter offer", "form 221")),
    (FormType.MUTUAL_RELEASE, "Form 122 Mutual Release", ("mutual release", "form 122")),
)

REQUIRED_FIELD_KEYWORDS: Final[tuple[str, ...]] = ("purchase price", "deposit", "buyer", "seller", "property")

ORGANIZATION_POINTS = 20
FORM_TYPE_POINTS = 30
REQUIRED_FIELD_POINTS = 2
MIN_CONFIDENCE = 20
MAX_SCORE = 100

FILENAME_KEYWORDS: Final[tuple[str, ...]] = ("offer", "aps", "form", "agreement", "amendment")
CONTENT_KEYWORDS: Final[tuple[str, ...]] = (
    "purchase price",
    "deposit",
    "closing date",
    "buyer",
    "seller",
    "property",
    "agreement",
)


def classify(text: str) -> FormDetectionResult:
    """Detect whether text comes from a recognized OREA form.

    Args:
        text (str): Plain text extracted from the document.

    Returns:
        FormDetectionResult: Recognition outcome. `identifiers` lists the matched organization
        names followed by the matched form label.
    """
    lowered = text.lower()
    identifiers: list[str] = []
    confidence = 0

    for identifier in ORGANIZATION_IDENTIFIERS:
        if identifier.lower() in lowered:
            identifiers.append(identifier)
            confidence += ORGANIZATION_POINTS

    form_type: FormType | None = None
    for candidate, label, phrases in FORM_TYPE_PATTERNS:
        if any(phrase in lowered for phrase in phrases):
            form_type = candidate
            identifiers.append(label)
            confidence += FORM_TYPE_POINTS
            break

    if form_type == FormType.AGREEMENT_OF_PURCHASE_AND_SALE:
        confidence += REQUIRED_FIELD_POINTS * sum(keyword in lowered for keyword in REQUIRED_FIELD_KEYWORDS)

    confidence = min(confidence, MAX_SCORE)
    return FormDetectionResult(
        is_recognized_form=bool(identifiers) and confidence >= MIN_CONFIDENCE,
        form_type=form_type,
        confidence=confidence,
        identifiers=identifiers,
    )


def relevance_score(
    *,
    filename: str,
    text: str,
    page_count: int,
    detection: FormDetectionResult,
) -> int:
    """Score how likely an attachment is the offer document of its message.

    Args:
        filename (str): Attachment file name.
        text (str): Extracted text.
        page_count (int): Number of PDF pages.
        detection (FormDetectionResult): Classifier output for the same text.

    Returns:
        int: Score in 0..100, used to pick one attachment among several.
    """
    score = 50 if detection.is_recognized_form else 0

    lowered_name = filename.lower()
    score += 8 * sum(keyword in lowered_name for keyword in FILENAME_KEYWORDS)

    if len(text) > 5000:  # noqa: PLR2004
        score += 10
    elif len(text) > 2000:  # noqa: PLR2004
        score += 5

    if page_count >= 10:  # noqa: PLR2004
        score += 15
    elif page_count >= 5:  # noqa: PLR2004
        score += 10
    elif page_count >= 3:  # noqa: PLR2004
        score += 5

    lowered_text = text.lower()
    score += 2 * sum(keyword in lowered_text for keyword in CONTENT_KEYWORDS)
    return min(score, MAX_SCORE)
