import base64

from openai import AsyncOpenAI

from revision.config import PipelineSettings
from revision.models.schemas import ModelParameters
from revision.services.errors import EmptyModelResponse
from revision.services.image_processor import image_processor


class GPTService:
    """Analysis client backed by an OpenAI vision model.

    Only Stage A can run here; image generation always goes to Gemini.
    """

    def __init__(self, settings: PipelineSettings) -> None:
        self.settings = settings
        self._client: AsyncOpenAI | None = None
        self.model = settings.openai_analysis_model

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    @property
    def analysis_model(self) -> str:
        return self.model

    async def analyze(
        self,
        image_data: bytes,
        prompt: str,
        parameters: ModelParameters | None = None,
    ) -> str:
        """Analyze the marked image and return the model's JSON answer as text."""
        parameters = parameters or ModelParameters()
        base64_image = base64.b64encode(image_data).decode("utf-8")
        mime_type = image_processor.detect_mime_type(image_data) or "image/png"

        temperature = parameters.temperature
        if temperature is None:
            temperature = self.settings.analysis_temperature

        response = await self.client.chat.completions.create(
            model=parameters.model or self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{mime_type};base64,{base64_image}",
                            },
                        },
                    ],
                }
            ],
            response_format={"type": "json_object"},
            temperature=temperature,
            top_p=parameters.top_p,
            max_completion_tokens=parameters.max_output_tokens or self.settings.max_output_tokens,
        )

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise EmptyModelResponse("OpenAI analysis returned no content")
        return content.strip()
