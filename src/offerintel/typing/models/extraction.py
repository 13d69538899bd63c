"""Extraction result model."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from offerintel.typing.enums import ExtractionStrategy
from offerintel.typing.models.contract import ApsContract


class ExtractionResult(BaseModel):
    """Contract fields produced by one extraction tier.

    `doc_confidence` is always `filled_fields / total_fields` of the tier that produced the
    result. The validator rejects any other value.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    contract: ApsContract = Field(default_factory=ApsContract)
    strategy_used: ExtractionStrategy
    filled_fields: int = Field(ge=0)
    total_fields: int = Field(ge=0)
    doc_confidence: float = Field(ge=0.0, le=1.0)
    form_version: str | None = None

    @model_validator(mode="after")
    def _check_confidence(self) -> "ExtractionResult":
        if self.filled_fields > self.total_fields:
            raise ValueError("filled_fields cannot exceed total_fields")
        expected = self.filled_fields / max(self.total_fields, 1)
        if self.doc_confidence != expected:
            raise ValueError(f"doc_confidence must equal the fill rate {expected}")
        return self

    @classmethod
    def from_counts(
        cls,
        contract: ApsContract,
        *,
        strategy: ExtractionStrategy,
        filled: int,
        total: int,
        form_version: str | None = None,
    ) -> "ExtractionResult":
        """Build a result whose confidence is the exact fill rate."""
        return cls(
            contract=contract,
            strategy_used=strategy,
            filled_fields=filled,
            total_fields=total,
            doc_confidence=filled / max(total, 1),
            form_version=form_version,
        )
