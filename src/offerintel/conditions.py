"""Schedule A conditions and Form 124 fulfillment notices."""

from __future__ import annotations

import re
from datetime import date, datetime, tzinfo
from typing import TYPE_CHECKING

from offerintel import logger
from offerintel.exceptions import InvalidModelResponse
from offerintel.processing.normalization import DEFAULT_HOUR
from offerintel.prompts import build_fulfillment_prompt, parse_json_response
from offerintel.typing.enums import ConditionStatus
from offerintel.typing.models import FulfilledCondition, FulfillmentNotice, OfferCondition, PromptImage

if TYPE_CHECKING:
    from offerintel.typing.models import Document
    from offerintel.typing.protocol import VisionModel

_HEADER_RE = re.compile(r"^condition\s*#?\d+\s*:?\s*", re.IGNORECASE)
_NUMBERING_RE = re.compile(r"^\d+[.)]\s*")
_LEADING_NUMBER_RE = re.compile(r"^\d+\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
# Bare schedule references such as "A" or "Schedule B" carry no condition text.
_SCHEDULE_LABEL_RE = re.compile(r"^(schedule\s+)?[a-z]$", re.IGNORECASE)


def clean_condition_text(text: str) -> str:
    """Strip the numbering a form puts in front of a condition.

    ``"Condition #1: Financing..."``, ``"1. Financing..."`` and ``"1) Financing..."`` all
    become ``"Financing..."``.
    """
    cleaned = _HEADER_RE.sub("", text.strip())
    cleaned = _NUMBERING_RE.sub("", cleaned)
    cleaned = _LEADING_NUMBER_RE.sub("", cleaned)
    return cleaned.strip()


def condition_matching_key(text: str) -> str:
    """Return the key that matches a condition across Schedule A and Form 124.

    The cleaned text is lowercased, punctuation is dropped and whitespace collapsed.
    """
    lowered = clean_condition_text(text).lower()
    return " ".join(_PUNCTUATION_RE.sub("", lowered).split())


def build_conditions(texts: list[str]) -> list[OfferCondition]:
    """Create one pending condition per Schedule A entry.

    Entries that are empty or only name a schedule are skipped.
    """
    conditions: list[OfferCondition] = []
    for text in texts:
        description = clean_condition_text(text)
        if not description or _SCHEDULE_LABEL_RE.match(description):
            continue
        conditions.append(OfferCondition(description=description, matching_key=condition_matching_key(text)))
    return conditions


def rebuild_conditions(texts: list[str], existing: list[OfferCondition]) -> list[OfferCondition]:
    """Rebuild conditions for amended terms, keeping fulfilled ones that are still listed."""
    fulfilled = {record.matching_key: record for record in existing if record.status == ConditionStatus.FULFILLED}
    return [fulfilled.get(record.matching_key, record) for record in build_conditions(texts)]


def parse_notice_date(value: str | None, tz: tzinfo) -> datetime | None:
    """Parse the ``YYYY-MM-DD`` date of a notice, or None when it is absent or invalid."""
    if not value:
        return None
    try:
        day = date.fromisoformat(value.strip())
    except ValueError:
        logger.warning("Unparseable fulfillment notice date", extra={"document_date": value})
        return None
    return datetime(day.year, day.month, day.day, DEFAULT_HOUR, tzinfo=tz)


def parse_fulfillment_notice(text: str) -> FulfillmentNotice:
    """Parse a model answer into a fulfillment notice.

    Conditions without a description are dropped. Descriptions and notes are trimmed.

    Raises:
        InvalidModelResponse: If the answer is not a JSON object or the condition list is malformed.
    """
    payload = parse_json_response(text)
    raw_conditions = payload.get("fulfilled_conditions") or []
    if not isinstance(raw_conditions, list):
        raise InvalidModelResponse(message="fulfilled_conditions is not a list", raw_response=text)

    conditions: list[FulfilledCondition] = []
    for item in raw_conditions:
        if not isinstance(item, dict):
            continue
        description = item.get("description")
        if not isinstance(description, str) or not description.strip():
            continue
        note = item.get("note")
        if not isinstance(note, str) or not note.strip():
            note = None
        conditions.append(FulfilledCondition(description=description.strip(), note=note and note.strip()))

    document_date = payload.get("document_date")
    return FulfillmentNotice(
        document_date=document_date if isinstance(document_date, str) and document_date else None,
        fulfilled_conditions=conditions,
    )


class FulfillmentNoticeExtractor:
    """Read a Form 124 through the vision model."""

    def __init__(self, model: VisionModel) -> None:
        self._model = model

    def extract(self, document: Document) -> FulfillmentNotice:
        """Extract the fulfilled conditions of a notice.

        Raises:
            ExternalServiceError: If the model call fails.
            InvalidModelResponse: If the answer cannot be parsed.
        """
        answer = self._model.generate([build_fulfillment_prompt(), PromptImage.from_document(document)])
        notice = parse_fulfillment_notice(answer)
        logger.info(
            "Fulfillment notice parsed",
            extra={
                "filename": document.filename,
                "conditions": len(notice.fulfilled_conditions),
                "document_date": notice.document_date,
            },
        )
        return notice
