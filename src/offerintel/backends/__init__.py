"""Extraction backends."""

from offerintel.backends.acroform import AcroFormTier
from offerintel.backends.docupipe import DocuPipeClient, StandardizationTier
from offerintel.backends.multimodal_openai import OpenAIVisionModel

__all__ = ["AcroFormTier", "DocuPipeClient", "OpenAIVisionModel", "StandardizationTier"]
