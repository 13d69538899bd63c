"""Document, page and form-detection models."""

import base64

from pydantic import BaseModel, ConfigDict, Field

from offerintel.typing.enums import FormFieldType, FormType


class Document(BaseModel):
    """Immutable PDF payload handed to the pipeline."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    content: bytes = Field(repr=False)
    filename: str = "document.pdf"
    content_type: str = "application/pdf"
    storage_key: str | None = None

    @property
    def size(self) -> int:
        """Return the payload size in bytes."""
        return len(self.content)


class PageImage(BaseModel):
    """One rasterized PDF page."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    page_number: int = Field(ge=1)
    data: bytes = Field(repr=False)
    mime_type: str = "image/png"
    width: int = 0
    height: int = 0

    @property
    def data_base64(self) -> str:
        """Return the image bytes encoded as base64 text."""
        return base64.b64encode(self.data).decode("ascii")


class PromptImage(BaseModel):
    """Binary part of a vision prompt (page image or inline PDF)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    data: bytes = Field(repr=False)
    mime_type: str

    @classmethod
    def from_page(cls, page: PageImage) -> "PromptImage":
        """Wrap a rasterized page as a prompt part."""
        return cls(data=page.data, mime_type=page.mime_type)

    @classmethod
    def from_document(cls, document: Document) -> "PromptImage":
        """Wrap a whole document as a prompt part."""
        return cls(data=document.content, mime_type=document.content_type)


class FormField(BaseModel):
    """Native AcroForm field read from a PDF."""

    model_config = ConfigDict(extra="forbid")

    name: str
    field_type: FormFieldType
    value: str | bool | None = None
    page_number: int | None = None

    @property
    def is_filled(self) -> bool:
        """Return whether the field carries a value."""
        if self.field_type == FormFieldType.CHECKBOX:
            return self.value is True
        return self.value is not None and self.value != ""


class FormDetectionResult(BaseModel):
    """Outcome of OREA form recognition on extracted text."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    is_recognized_form: bool
    form_type: FormType | None = None
    confidence: int = Field(default=0, ge=0, le=100)
    identifiers: list[str] = Field(default_factory=list)
