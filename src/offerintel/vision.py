"""Vision extraction tier backed by a generative model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from offerintel import logger
from offerintel.exceptions import InvalidModelResponse
from offerintel.pdf_render import rasterize
from offerintel.prompts import build_extraction_prompt, parse_json_response
from offerintel.scoring import count_leaves
from offerintel.typing.enums import ExtractionStrategy, VisionInputMode
from offerintel.typing.models import ApsContract, ExtractionResult, PromptImage

if TYPE_CHECKING:
    from offerintel.settings import Settings
    from offerintel.typing.models import Document
    from offerintel.typing.protocol import VisionModel


def parse_contract(text: str) -> ApsContract:
    """Parse a model answer into the canonical contract.

    Raises:
        InvalidModelResponse: If the answer is not JSON or does not fit the schema.
    """
    payload = parse_json_response(text)
    try:
        return ApsContract.model_validate(payload)
    except ValidationError as exc:
        raise InvalidModelResponse(
            message=f"Model response does not match the contract schema: {exc.error_count()} errors",
            raw_response=text,
        ) from exc


class VisionExtractor:
    """Vision tier: schema prompt plus document or page images, JSON answer back."""

    name = ExtractionStrategy.VISION.value

    def __init__(self, model: VisionModel, settings: Settings) -> None:
        """Initialize the tier.

        Args:
            model (VisionModel): Generative model client.
            settings (Settings): Runtime settings.
        """
        self._model = model
        self._settings = settings

    def _prompt_parts(self, document: Document) -> list[str | PromptImage]:
        parts: list[str | PromptImage] = [build_extraction_prompt()]
        if self._settings.vision_input == VisionInputMode.PAGES:
            pages = rasterize(
                document,
                max_pages=self._settings.vision_max_pages,
                dpi=self._settings.raster_dpi,
                image_format=self._settings.raster_format,
            )
            parts.extend(PromptImage.from_page(page) for page in pages)
        else:
            parts.append(PromptImage.from_document(document))
        return parts

    def extract(self, document: Document) -> ExtractionResult:
        """Extract the contract through the vision model.

        Raises:
            ExternalServiceError: If the model call fails.
            InvalidModelResponse: If the answer cannot be parsed.

        Returns:
            ExtractionResult: Result whose confidence is the fill rate over the whole schema.
        """
        answer = self._model.generate(self._prompt_parts(document))
        contract = parse_contract(answer)
        filled, total = count_leaves(contract)
        logger.info(
            "Vision extraction parsed",
            extra={"filename": document.filename, "filled": filled, "total": total},
        )
        return ExtractionResult.from_counts(
            contract,
            strategy=ExtractionStrategy.VISION,
            filled=filled,
            total=total,
        )

    def accepts(self, result: ExtractionResult) -> bool:  # noqa: ARG002
        """The vision tier is the last one: its result is always used."""
        return True
