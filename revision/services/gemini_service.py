from typing import TypeVar

from google import genai
from google.genai import types

from revision.config import PipelineSettings
from revision.models.schemas import ModelParameters
from revision.services.errors import EmptyModelResponse
from revision.services.image_processor import image_processor

T = TypeVar("T")


class GeminiService:
    """Client for the Gemini analysis (text) and generation (image) calls."""

    def __init__(self, settings: PipelineSettings) -> None:
        self.settings = settings
        self._client: genai.Client | None = None

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.settings.gemini_api_key)
        return self._client

    @property
    def analysis_model(self) -> str:
        return self.settings.analysis_model

    @property
    def generation_model(self) -> str:
        return self.settings.generation_model

    async def analyze(
        self,
        image_data: bytes,
        prompt: str,
        parameters: ModelParameters | None = None,
    ) -> str:
        """Send the image and analysis prompt, return the model's text answer."""
        parameters = parameters or ModelParameters()

        response = await self.client.aio.models.generate_content(
            model=parameters.model or self.settings.analysis_model,
            contents=[self._image_part(image_data), prompt],
            config=types.GenerateContentConfig(
                response_modalities=["TEXT"],
                temperature=_pick(parameters.temperature, self.settings.analysis_temperature),
                max_output_tokens=_pick(parameters.max_output_tokens, self.settings.max_output_tokens),
                top_p=parameters.top_p,
            ),
        )

        candidate = self._first_candidate(response)
        texts = [part.text for part in candidate.content.parts if part.text]
        text = "".join(texts).strip()
        if not text:
            raise EmptyModelResponse("Gemini analysis returned no text")
        return text

    async def generate(
        self,
        image_data: bytes,
        prompt: str,
        parameters: ModelParameters | None = None,
    ) -> bytes:
        """Send the image and editing prompt, return the edited image bytes."""
        parameters = parameters or ModelParameters()

        response = await self.client.aio.models.generate_content(
            model=parameters.model or self.settings.generation_model,
            contents=[prompt, self._image_part(image_data)],
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE"],
                candidate_count=1,
                temperature=_pick(parameters.temperature, self.settings.generation_temperature),
                top_p=parameters.top_p,
            ),
        )

        candidate = self._first_candidate(response)
        for part in candidate.content.parts:
            if part.inline_data is not None and part.inline_data.data:
                return part.inline_data.data

        raise EmptyModelResponse("No image returned from Gemini API")

    def _image_part(self, image_data: bytes) -> types.Part:
        mime_type = image_processor.detect_mime_type(image_data) or "image/jpeg"
        return types.Part.from_bytes(data=image_data, mime_type=mime_type)

    def _first_candidate(self, response: types.GenerateContentResponse) -> types.Candidate:
        # Handle null response cases
        if not response.candidates:
            raise EmptyModelResponse("Gemini API returned no candidates")

        candidate = response.candidates[0]
        if candidate.content is None or not candidate.content.parts:
            finish_reason = getattr(candidate, "finish_reason", "UNKNOWN")
            raise EmptyModelResponse(
                f"Gemini API returned no content. Finish reason: {finish_reason}"
            )
        return candidate


def _pick(override: T | None, default: T) -> T:
    return default if override is None else override
