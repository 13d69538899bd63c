"""Prompt builders and model response parsing."""

from __future__ import annotations

import json
import re
import types
from inspect import isclass
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel

from offerintel.exceptions import InvalidModelResponse
from offerintel.typing.models import ApsContract

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*|\s*```\s*$")


def _describe(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is list:
        (inner,) = get_args(annotation) or (str,)
        if isclass(inner) and issubclass(inner, BaseModel):
            return [schema_outline(inner)]
        return ["string"]
    if origin in {Union, types.UnionType}:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        return _describe(members[0]) if len(members) == 1 else "string"
    if annotation in {float, int}:
        return "number"
    return "string"


def schema_outline(model_cls: type[BaseModel] = ApsContract) -> dict[str, Any]:
    """Describe a model as the JSON skeleton the vision model must fill.

    Args:
        model_cls: Pydantic model to describe.

    Returns:
        dict[str, Any]: Field names mapped to `"string"`, `"number"`, lists or nested objects.
    """
    outline: dict[str, Any] = {}
    for name, field in model_cls.model_fields.items():
        annotation = field.annotation
        if isclass(annotation) and issubclass(annotation, BaseModel):
            outline[name] = schema_outline(annotation)
        else:
            outline[name] = _describe(annotation)
    return outline


def build_extraction_prompt() -> str:
    """Build the instruction sent with an Agreement of Purchase and Sale."""
    schema = json.dumps(schema_outline(), indent=2)
    return (
        "You are reading an Ontario Real Estate Association (OREA) Form 100, "
        "Agreement of Purchase and Sale. Extract its contents into exactly this JSON structure:\n"
        f"{schema}\n\n"
        "Rules:\n"
        "- Dates are split into separate day, month and year strings as written on the form.\n"
        "- Times keep their AM/PM marker, e.g. \"5:00 PM\".\n"
        "- Numbers are raw values without currency symbols or thousands separators.\n"
        "- Currency is a code such as \"CAD\".\n"
        "- hst is \"included\" or \"excluded\".\n"
        "- Chattels, fixtures, rental items and schedules are arrays with one item per entry.\n"
        "- Copy each Schedule A condition verbatim as its own schedules item.\n"
        "- Use null for any field that is blank, illegible or absent. Never guess.\n"
        "- Return only the JSON object, without commentary."
    )


def build_fulfillment_prompt() -> str:
    """Build the instruction sent with a Form 124, Notice of Fulfillment of Conditions."""
    return (
        "You are reading an Ontario Real Estate Association (OREA) Form 124, Notice of Fulfillment "
        "of Conditions. The buyer uses it to tell the seller which conditions of the Agreement of "
        "Purchase and Sale are fulfilled or waived. Extract it into exactly this JSON structure:\n"
        '{"document_date": "YYYY-MM-DD", "fulfilled_conditions": [{"description": "string", "note": "string"}]}\n\n'
        "Rules:\n"
        "- document_date is the date the notice was signed.\n"
        "- One fulfilled_conditions item per condition, in the order written.\n"
        "- Copy each description verbatim. Never abbreviate, summarize or paraphrase it.\n"
        "- note holds any extra detail written about that condition.\n"
        "- Use null for any field that is blank, illegible or absent.\n"
        "- Return only the JSON object, without commentary."
    )


def build_initials_prompt(page_number: int) -> str:
    """Build the buyer-initials question for one anchor page."""
    return (
        f"This is page {page_number} of an OREA Agreement of Purchase and Sale. "
        "The bottom of the page has an INITIALS OF BUYER(S) box and an INITIALS OF SELLER(S) box. "
        "Is there any handwritten or electronic mark inside the buyer initials box? "
        "Count any mark at all: letters, a scribble, a stamp, a digital initial, even if faint or partial. "
        "Respond with JSON only: "
        '{"hasInitials": true|false, "confidence": 0.0-1.0, "location": "where the mark is"}'
    )


def build_party_initials_prompt(page_number: int) -> str:
    """Build the buyer-vs-seller initials question for one anchor page."""
    return (
        f"This is page {page_number} of an OREA Agreement of Purchase and Sale. "
        "Look at the two initials boxes at the bottom of the page separately: "
        "INITIALS OF BUYER(S) and INITIALS OF SELLER(S). "
        "Report whether each box contains any handwritten or electronic mark. "
        "Respond with JSON only: "
        '{"buyerInitials": true|false, "sellerInitials": true|false, "location": "where the marks are"}'
    )


def build_confirmation_prompt(page_number: int) -> str:
    """Build the confirmation-of-acceptance question."""
    return (
        f"This is page {page_number} of an OREA Agreement of Purchase and Sale. "
        "Find the CONFIRMATION OF ACCEPTANCE section. It is used when the buyer accepts the "
        "seller's counter-offer and has its own signature line, separate from the main signatures. "
        "Report whether the buyer signed that section, whether a seller signature is present on "
        "the page, and the acceptance date if written. "
        "Respond with JSON only: "
        '{"buyerSignature": true|false, "sellerSignature": true|false, '
        '"acceptanceDate": "date or null", "location": "where the block is"}'
    )


def build_quality_prompt() -> str:
    """Build the scan-quality question."""
    return (
        "Assess the scan quality of this document page. "
        "Respond with JSON only: "
        '{"isReadable": true|false, "hasBlurredSections": true|false, "overallQuality": 0.0-1.0}'
    )


def build_quick_signature_prompt() -> str:
    """Build the YES/NO signature question."""
    return "Does this page contain at least one handwritten or electronic signature? Answer YES or NO only."


def build_signature_detection_prompt(page_number: int) -> str:
    """Build the signature location question for one page."""
    return (
        f"This is page {page_number} of a real-estate contract. List every signature on the page. "
        "Respond with JSON only: "
        '{"signatures": [{"party": "buyer"|"seller", "confidence": 0.0-1.0, "location": "where"}]}'
    )


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapped around a model answer."""
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_json_response(text: str) -> dict[str, Any]:
    """Parse a model answer as a JSON object.

    Args:
        text (str): Raw model text, optionally fenced with ```json.

    Raises:
        InvalidModelResponse: If the answer is not a JSON object.

    Returns:
        dict[str, Any]: Parsed object.
    """
    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise InvalidModelResponse(message=f"Model response is not valid JSON: {exc.msg}", raw_response=text) from exc
    if not isinstance(payload, dict):
        raise InvalidModelResponse(message="Model response is not a JSON object", raw_response=text)
    return payload
