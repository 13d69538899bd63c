"""AcroForm tier: native fillable field values."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from offerintel import logger
from offerintel.pdf_text import read_form_fields
from offerintel.typing.enums import ExtractionStrategy, FormFieldType
from offerintel.typing.models import ApsContract, ExtractionResult

if TYPE_CHECKING:
    from offerintel.typing.models import Document, FormField

DEFAULT_CURRENCY = "CAD"

# Normalized PDF field name -> dotted path in `ApsContract`.
FIELD_PATHS: dict[str, str] = {
    "buyer_name": "buyer_full_name",
    "buyer": "buyer_full_name",
    "seller_name": "seller_full_name",
    "seller": "seller_full_name",
    "property_address": "property.property_address",
    "property_fronting": "property.property_fronting",
    "property_side": "property.property_side_of_street",
    "property_frontage": "property.property_frontage",
    "property_depth": "property.property_depth",
    "property_legal_desc": "property.property_legal_description",
    "property_legal_description": "property.property_legal_description",
    "purchase_price": "price_and_deposit.purchase_price.numeric",
    "purchase_price_words": "price_and_deposit.purchase_price.written",
    "deposit": "price_and_deposit.deposit.numeric",
    "deposit_words": "price_and_deposit.deposit.written",
    "deposit_timing": "price_and_deposit.deposit.timing",
    "agreement_day": "agreement_date.day",
    "agreement_month": "agreement_date.month",
    "agreement_year": "agreement_date.year",
    "irrevocable_by": "irrevocability.by_whom",
    "irrevocable_time": "irrevocability.time",
    "irrevocable_day": "irrevocability.day",
    "irrevocable_month": "irrevocability.month",
    "irrevocable_year": "irrevocability.year",
    "completion_day": "completion.day",
    "completion_month": "completion.month",
    "completion_year": "completion.year",
    "title_search_day": "title_search.day",
    "title_search_month": "title_search.month",
    "title_search_year": "title_search.year",
    "seller_fax": "notices.seller_fax",
    "seller_email": "notices.seller_email",
    "buyer_fax": "notices.buyer_fax",
    "buyer_email": "notices.buyer_email",
    "chattels_included": "inclusions_exclusions.chattels_included",
    "fixtures_excluded": "inclusions_exclusions.fixtures_excluded",
    "rental_items": "inclusions_exclusions.rental_items",
    "hst": "hst",
}

_NAME_NOISE_RE = re.compile(r"[^a-z0-9]+")


def normalize_field_name(name: str) -> str:
    """Lower-case a PDF field name and collapse separators to underscores."""
    return _NAME_NOISE_RE.sub("_", name.lower()).strip("_")


def _set_path(target: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = target
    for parent in parents:
        node = node.setdefault(parent, {})
    node[leaf] = value


def map_fields(fields: list[FormField]) -> ApsContract:
    """Map native fields onto the canonical contract.

    Unknown field names are ignored. Currency defaults to CAD once an amount is present.
    """
    payload: dict[str, Any] = {}
    for field in fields:
        path = FIELD_PATHS.get(normalize_field_name(field.name))
        if path is None or not field.is_filled:
            continue
        value = field.value
        if field.field_type == FormFieldType.CHECKBOX:
            value = "yes"
        _set_path(payload, path, value)

    prices = payload.get("price_and_deposit", {})
    for section in ("purchase_price", "deposit"):
        if section in prices:
            prices[section].setdefault("currency", DEFAULT_CURRENCY)
    return ApsContract.model_validate(payload)


class AcroFormTier:
    """First extraction tier. Cheapest and exact when the PDF is still fillable."""

    name = ExtractionStrategy.ACROFORM.value

    def __init__(self, *, accept_threshold: float = 0.7) -> None:
        """Initialize the tier.

        Args:
            accept_threshold (float): Fill rate that must be exceeded to stop the fallback chain.
        """
        self._accept_threshold = accept_threshold

    def extract(self, document: Document) -> ExtractionResult | None:
        """Read native fields.

        Returns:
            ExtractionResult | None: None when the PDF has no form fields, so no confidence is
            ever computed for flattened or scanned documents.
        """
        fields = read_form_fields(document)
        if not fields:
            logger.info("No AcroForm fields, skipping tier", extra={"filename": document.filename})
            return None

        filled = sum(field.is_filled for field in fields)
        result = ExtractionResult.from_counts(
            map_fields(fields),
            strategy=ExtractionStrategy.ACROFORM,
            filled=filled,
            total=len(fields),
        )
        logger.info(
            "AcroForm fields read",
            extra={"filename": document.filename, "filled": filled, "total": len(fields)},
        )
        return result

    def accepts(self, result: ExtractionResult) -> bool:
        """Return whether the fill rate is high enough to skip the vision tier."""
        return result.doc_confidence > self._accept_threshold
