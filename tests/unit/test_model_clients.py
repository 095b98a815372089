"""Model client tests with the SDK clients swapped for in-memory stand-ins."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from revision.config import PipelineSettings
from revision.models.schemas import ModelParameters
from revision.services.errors import EmptyModelResponse
from revision.services.gemini_service import GeminiService, _pick
from revision.services.gpt_service import GPTService


class FakeModels:
    def __init__(self, response) -> None:
        self.response = response
        self.requests: list[dict] = []

    async def generate_content(self, **kwargs):
        self.requests.append(kwargs)
        return self.response


class FakeCompletions:
    def __init__(self, response) -> None:
        self.response = response
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.response


def _gemini(response) -> tuple[GeminiService, FakeModels]:
    models = FakeModels(response)
    service = GeminiService(PipelineSettings(gemini_api_key="test-key"))
    service._client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return service, models


def _gemini_response(*parts, finish_reason: str = "STOP"):
    content = SimpleNamespace(parts=list(parts)) if parts else None
    return SimpleNamespace(candidates=[SimpleNamespace(content=content, finish_reason=finish_reason)])


def _text_part(text: str):
    return SimpleNamespace(text=text, inline_data=None)


def _image_part(data: bytes):
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data))


def test_gemini_analyze_joins_text_parts(jpeg_image: bytes) -> None:
    service, models = _gemini(_gemini_response(_text_part('{"editingPrompt": '), _text_part('"Remove it."}')))

    text = asyncio.run(service.analyze(jpeg_image, "Analyze this image."))

    assert text == '{"editingPrompt": "Remove it."}'
    request = models.requests[0]
    assert request["model"] == "gemini-2.5-flash"
    assert request["contents"][1] == "Analyze this image."
    assert request["config"].temperature == pytest.approx(0.3)
    assert request["config"].response_modalities == ["TEXT"]


def test_gemini_analyze_applies_parameter_overrides(jpeg_image: bytes) -> None:
    service, models = _gemini(_gemini_response(_text_part("{}")))
    parameters = ModelParameters(model="gemini-2.5-pro", temperature=0.0, max_output_tokens=256)

    asyncio.run(service.analyze(jpeg_image, "Analyze this image.", parameters))

    request = models.requests[0]
    assert request["model"] == "gemini-2.5-pro"
    assert request["config"].temperature == 0.0
    assert request["config"].max_output_tokens == 256


def test_gemini_generate_returns_inline_image(jpeg_image: bytes, generated_image: bytes) -> None:
    service, models = _gemini(_gemini_response(_text_part("Here you go"), _image_part(generated_image)))

    result = asyncio.run(service.generate(jpeg_image, "Remove the bicycle."))

    assert result == generated_image
    assert models.requests[0]["model"] == "gemini-2.5-flash-image"
    assert models.requests[0]["config"].response_modalities == ["IMAGE"]


@pytest.mark.parametrize(
    "response",
    [
        SimpleNamespace(candidates=[]),
        _gemini_response(finish_reason="SAFETY"),
        _gemini_response(_text_part("I can't edit this image.")),
    ],
)
def test_gemini_generate_without_image_raises(response, jpeg_image: bytes) -> None:
    service, _ = _gemini(response)

    with pytest.raises(EmptyModelResponse):
        asyncio.run(service.generate(jpeg_image, "Remove the bicycle."))


def test_gemini_analyze_without_text_raises(jpeg_image: bytes) -> None:
    service, _ = _gemini(_gemini_response(_text_part("   ")))

    with pytest.raises(EmptyModelResponse):
        asyncio.run(service.analyze(jpeg_image, "Analyze this image."))


def _gpt(content) -> tuple[GPTService, FakeCompletions]:
    message = SimpleNamespace(content=content)
    completions = FakeCompletions(SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    service = GPTService(PipelineSettings(openai_api_key="test-key"))
    service._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return service, completions


def test_gpt_analyze_sends_image_as_data_uri(jpeg_image: bytes) -> None:
    service, completions = _gpt(' {"editingPrompt": "Remove it."} ')

    text = asyncio.run(service.analyze(jpeg_image, "Analyze this image."))

    assert text == '{"editingPrompt": "Remove it."}'
    request = completions.requests[0]
    assert request["model"] == "gpt-4.1-mini"
    assert request["response_format"] == {"type": "json_object"}
    content = request["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "Analyze this image."}
    assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_gpt_analyze_without_content_raises(jpeg_image: bytes) -> None:
    service, _ = _gpt(None)

    with pytest.raises(EmptyModelResponse):
        asyncio.run(service.analyze(jpeg_image, "Analyze this image."))


def test_pick_keeps_falsy_overrides() -> None:
    assert _pick(0.0, 0.3) == 0.0
    assert _pick(None, 0.3) == 0.3
    assert _pick(None, None) is None
