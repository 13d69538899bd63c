"""OpenAI-compatible generative vision model client."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

try:
    import openai as openai_sdk
except Exception:  # pragma: no cover - optional dependency at runtime
    openai_sdk: Any
    openai_sdk = None

from offerintel import logger
from offerintel.exceptions import ConfigurationError, ExternalServiceError
from offerintel.typing.models import PromptImage

if TYPE_CHECKING:
    from offerintel.settings import Settings

_SERVICE = "vision-model"


class OpenAIVisionModel:
    """`VisionModel` backed by a chat completions endpoint accepting images and PDFs.

    Gemini, OpenAI and most gateways expose this API shape. The endpoint is chosen with
    `OPENAI_BASE_URL`.
    """

    def __init__(self, settings: Settings, *, temperature: float = 0.0) -> None:
        """Initialize the client.

        Args:
            settings (Settings): Runtime settings.
            temperature (float): Sampling temperature.
        """
        self._settings = settings
        self._temperature = temperature
        self._client: Any = None

    def _get_client(self) -> Any:
        """Create the SDK client lazily.

        Raises:
            ConfigurationError: If credentials or the SDK are missing.

        Returns:
            Any: `openai.OpenAI` instance.
        """
        if not self._settings.openai_api_key:
            raise ConfigurationError(message="OPENAI_API_KEY is required for the vision model")
        if openai_sdk is None:
            raise ConfigurationError(message="openai is required for the vision model")
        if self._client is None:
            self._client = openai_sdk.OpenAI(
                api_key=self._settings.openai_api_key,
                base_url=self._settings.openai_base_url,
                http_client=self._settings.http_client(),
                timeout=self._settings.timeout,
                max_retries=0,
            )
        return self._client

    @staticmethod
    def _content_block(part: str | PromptImage) -> dict[str, Any]:
        """Build one chat content block.

        Args:
            part (str | PromptImage): Text or binary part.

        Returns:
            dict[str, Any]: OpenAI content block.
        """
        if isinstance(part, str):
            return {"type": "text", "text": part}
        encoded = base64.b64encode(part.data).decode("ascii")
        data_url = f"data:{part.mime_type};base64,{encoded}"
        if part.mime_type == "application/pdf":
            return {"type": "file", "file": {"filename": "document.pdf", "file_data": data_url}}
        return {"type": "image_url", "image_url": {"url": data_url}}

    def generate(self, parts: list[str | PromptImage]) -> str:
        """Send prompt parts and return the model text.

        Args:
            parts (list[str | PromptImage]): Ordered prompt parts.

        Raises:
            ExternalServiceError: If the call fails, times out or returns no text.

        Returns:
            str: Raw answer text.
        """
        client = self._get_client()
        payload = {
            "model": self._settings.openai_model,
            "temperature": self._temperature,
            "messages": [{"role": "user", "content": [self._content_block(part) for part in parts]}],
        }

        try:
            completion = client.chat.completions.create(**payload)
        except Exception as exc:
            status_error_type = getattr(openai_sdk, "APIStatusError", None)
            timeout_error_type = getattr(openai_sdk, "APITimeoutError", None)

            if status_error_type and isinstance(exc, status_error_type):
                status_code = getattr(exc, "status_code", None)
                raise ExternalServiceError(
                    message=f"Vision request failed with status {status_code}",
                    service=_SERVICE,
                ) from exc
            if timeout_error_type and isinstance(exc, timeout_error_type):
                raise ExternalServiceError(message="Vision request timed out", service=_SERVICE) from exc
            raise ExternalServiceError(message=f"Vision request failed: {exc}", service=_SERVICE) from exc

        choices = getattr(completion, "choices", None) or []
        text = choices[0].message.content if choices else None
        if not text:
            raise ExternalServiceError(message="Vision model returned an empty answer", service=_SERVICE)

        usage = getattr(completion, "usage", None)
        logger.info(
            "Vision model answered",
            extra={
                "model": self._settings.openai_model,
                "parts": len(parts),
                "input_tokens": getattr(usage, "prompt_tokens", None),
                "output_tokens": getattr(usage, "completion_tokens", None),
            },
        )
        return text
