"""Plain-text and form-field reading with PyMuPDF."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

try:
    import fitz
except Exception:  # pragma: no cover - optional dependency at runtime
    fitz: Any
    fitz = None

from offerintel.exceptions import ExternalServiceError, RasterEngineUnavailable
from offerintel.typing.enums import FormFieldType
from offerintel.typing.models import FormField

if TYPE_CHECKING:
    from offerintel.typing.models import Document

_FIELD_TYPES = {
    "Text": FormFieldType.TEXT,
    "CheckBox": FormFieldType.CHECKBOX,
    "RadioButton": FormFieldType.RADIO,
    "ComboBox": FormFieldType.DROPDOWN,
    "ListBox": FormFieldType.DROPDOWN,
}
_OFF_STATES = {"", "off", "false", "no"}


def _require_fitz() -> Any:
    if fitz is None:
        raise RasterEngineUnavailable(message="PyMuPDF is required to read PDF content")
    return fitz


def extract_text(document: Document) -> tuple[str, int]:
    """Return the concatenated page text and the page count.

    Raises:
        ExternalServiceError: If the PDF cannot be opened.
    """
    engine = _require_fitz()
    try:
        with engine.open(stream=document.content, filetype="pdf") as doc:
            texts = [page.get_text() for page in doc]
            return "\n".join(texts), len(texts)
    except Exception as exc:  # pragma: no cover - depends on file and fitz internals
        raise ExternalServiceError(message=f"Failed to read PDF text: {document.filename}", service="pdf") from exc


def _read_value(field_type: FormFieldType, raw: Any) -> str | bool | None:
    if field_type == FormFieldType.CHECKBOX:
        if isinstance(raw, bool):
            return raw
        return raw is not None and str(raw).strip().lower() not in _OFF_STATES
    if raw is None or raw is False:
        return None
    if isinstance(raw, list | tuple):
        raw = raw[0] if raw else None
        if raw is None:
            return None
    value = str(raw).strip()
    if field_type == FormFieldType.RADIO and value.lower() in _OFF_STATES:
        return None
    return value


def read_form_fields(document: Document) -> list[FormField]:
    """Enumerate native AcroForm fields, one entry per field name.

    Radio groups are spread over several widgets sharing a name. The group counts once and
    takes the value of its selected button.

    Raises:
        ExternalServiceError: If the PDF cannot be opened.

    Returns:
        list[FormField]: Fields in document order. Empty for flattened or scanned PDFs.
    """
    engine = _require_fitz()
    fields: dict[str, FormField] = {}
    try:
        with engine.open(stream=document.content, filetype="pdf") as doc:
            for page_index, page in enumerate(doc):
                for widget in page.widgets() or []:
                    name = widget.field_name or f"field_{len(fields) + 1}"
                    field_type = _FIELD_TYPES.get(widget.field_type_string, FormFieldType.OTHER)
                    value = _read_value(field_type, widget.field_value)
                    existing = fields.get(name)
                    if existing is not None and existing.is_filled:
                        continue
                    fields[name] = FormField(
                        name=name,
                        field_type=field_type,
                        value=value,
                        page_number=page_index + 1,
                    )
    except Exception as exc:  # pragma: no cover - depends on file and fitz internals
        raise ExternalServiceError(message=f"Failed to read form fields: {document.filename}", service="pdf") from exc
    return list(fields.values())
