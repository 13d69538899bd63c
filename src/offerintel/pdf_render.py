"""PDF page rasterization."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

try:
    import fitz
except Exception:  # pragma: no cover - optional dependency at runtime
    fitz: Any
    fitz = None

from offerintel.exceptions import ExternalServiceError, RasterEngineUnavailable
from offerintel.logging import get_logger
from offerintel.typing.models import PageImage

if TYPE_CHECKING:
    from collections.abc import Iterable

    from offerintel.typing.models import Document

logger = get_logger(__name__)

_MIME_BY_FORMAT = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
}


def rasterize(
    document: Document,
    *,
    max_pages: int = 20,
    dpi: int = 200,
    image_format: str = "png",
    page_numbers: Iterable[int] | None = None,
) -> list[PageImage]:
    """Render PDF pages into images.

    Args:
        document: PDF to render.
        max_pages: Hard limit on rendered pages.
        dpi: Render resolution.
        image_format: Target format (`png`, `jpeg`, `jpg`).
        page_numbers: Optional 1-based pages to render instead of the leading pages. Pages
            beyond the end of the document are skipped.

    Raises:
        RasterEngineUnavailable: If PyMuPDF cannot be imported.
        ExternalServiceError: If the format is unsupported or the PDF cannot be rendered.

    Returns:
        list[PageImage]: Pages in ascending page order, fewer than `max_pages` for short
        documents.
    """
    if fitz is None:
        raise RasterEngineUnavailable(message="PyMuPDF is required for PDF rasterization")

    normalized_format = image_format.lower()
    if normalized_format not in _MIME_BY_FORMAT:
        raise ExternalServiceError(message=f"Unsupported image format: {image_format}", service="raster")

    try:
        rendered: list[PageImage] = []
        with fitz.open(stream=document.content, filetype="pdf") as doc:
            if page_numbers is None:
                indices = list(range(min(max_pages, len(doc))))
            else:
                wanted = sorted({number - 1 for number in page_numbers if 0 < number <= len(doc)})
                indices = wanted[:max_pages]

            for idx in indices:
                pix = doc.load_page(idx).get_pixmap(dpi=dpi)
                rendered.append(
                    PageImage(
                        page_number=idx + 1,
                        data=pix.tobytes(output=normalized_format),
                        mime_type=_MIME_BY_FORMAT[normalized_format],
                        width=pix.width,
                        height=pix.height,
                    ),
                )
    except Exception as exc:  # pragma: no cover - depends on file and fitz internals
        raise ExternalServiceError(
            message=f"Failed to rasterize PDF: {document.filename}",
            service="raster",
        ) from exc

    logger.info("PDF rasterized", extra={"pages": len(rendered), "filename": document.filename, "dpi": dpi})
    return rendered
