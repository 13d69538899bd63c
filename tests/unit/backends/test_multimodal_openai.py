from __future__ import annotations

import pytest

from offerintel.backends import multimodal_openai
from offerintel.backends.multimodal_openai import OpenAIVisionModel
from offerintel.exceptions import ConfigurationError, ExternalServiceError
from offerintel.settings import Settings
from offerintel.typing.models import PromptImage


class _FakeHttpClient:
    pass


class _FakeMessage:
    def __init__(self, content: str | None) -> None:
        self.content = content


class _FakeChoice:
    def __init__(self, content: str | None) -> None:
        self.message = _FakeMessage(content)


class _FakeUsage:
    prompt_tokens = 10
    completion_tokens = 3


class _FakeCompletion:
    def __init__(self, content: str | None) -> None:
        self.choices = [_FakeChoice(content)]
        self.usage = _FakeUsage()


class _FakeAPIStatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class _FakeAPITimeoutError(Exception):
    pass


def _fake_sdk(behaviour):
    calls: list[dict] = []

    class _FakeCompletions:
        def create(self, **payload: object) -> _FakeCompletion:
            calls.append(payload)
            return behaviour(payload)

    class _FakeChat:
        completions = _FakeCompletions()

    class _FakeOpenAIClient:
        chat = _FakeChat()

    class _FakeOpenAI:
        def __new__(cls, **kwargs: object) -> _FakeOpenAIClient:
            assert kwargs["api_key"] == "test-api-key"  # pragma: allowlist secret
            assert kwargs["base_url"] == "https://llm.local/v1"
            assert isinstance(kwargs["http_client"], _FakeHttpClient)
            assert kwargs["max_retries"] == 0
            return _FakeOpenAIClient()

    class _FakeModule:
        OpenAI = _FakeOpenAI
        APIStatusError = _FakeAPIStatusError
        APITimeoutError = _FakeAPITimeoutError

    return _FakeModule, calls


@pytest.fixture
def model_settings(make_settings, monkeypatch) -> Settings:
    monkeypatch.setattr(Settings, "http_client", lambda _self: _FakeHttpClient())
    return make_settings(
        openai_api_key="test-api-key",  # pragma: allowlist secret
        openai_base_url="https://llm.local/v1",
        openai_model="gemini-2.0-flash",
    )


def test_generate_requires_api_key(make_settings) -> None:
    model = OpenAIVisionModel(make_settings(openai_api_key=None))

    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        model.generate(["hello"])


def test_generate_sends_text_images_and_pdf(monkeypatch, model_settings: Settings) -> None:
    module, calls = _fake_sdk(lambda payload: _FakeCompletion('{"ok": true}'))
    monkeypatch.setattr(multimodal_openai, "openai_sdk", module)

    answer = OpenAIVisionModel(model_settings).generate(
        [
            "Extract",
            PromptImage(data=b"img", mime_type="image/png"),
            PromptImage(data=b"%PDF", mime_type="application/pdf"),
        ],
    )

    assert answer == '{"ok": true}'
    content = calls[0]["messages"][0]["content"]
    assert calls[0]["model"] == "gemini-2.0-flash"
    assert content[0] == {"type": "text", "text": "Extract"}
    assert content[1] == {"type": "image_url", "image_url": {"url": "data:image/png;base64,aW1n"}}
    assert content[2]["type"] == "file"
    assert content[2]["file"]["file_data"] == "data:application/pdf;base64,JVBERg=="


def test_generate_maps_status_errors(monkeypatch, model_settings: Settings) -> None:
    def _raise(payload: dict) -> _FakeCompletion:
        raise _FakeAPIStatusError(429)

    module, _ = _fake_sdk(_raise)
    monkeypatch.setattr(multimodal_openai, "openai_sdk", module)

    with pytest.raises(ExternalServiceError, match="status 429") as exc_info:
        OpenAIVisionModel(model_settings).generate(["x"])

    assert exc_info.value.service == "vision-model"


def test_generate_maps_timeouts(monkeypatch, model_settings: Settings) -> None:
    def _raise(payload: dict) -> _FakeCompletion:
        raise _FakeAPITimeoutError

    module, _ = _fake_sdk(_raise)
    monkeypatch.setattr(multimodal_openai, "openai_sdk", module)

    with pytest.raises(ExternalServiceError, match="timed out"):
        OpenAIVisionModel(model_settings).generate(["x"])


def test_generate_rejects_empty_answer(monkeypatch, model_settings: Settings) -> None:
    module, _ = _fake_sdk(lambda payload: _FakeCompletion(None))
    monkeypatch.setattr(multimodal_openai, "openai_sdk", module)

    with pytest.raises(ExternalServiceError, match="empty answer"):
        OpenAIVisionModel(model_settings).generate(["x"])
