import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

BYTES_PER_MB = 1024 * 1024


class PipelineSettings(BaseModel):
    """Runtime configuration for the edit pipeline and its model clients."""

    gemini_api_key: str | None = None
    openai_api_key: str | None = None

    analysis_provider: Literal["gemini", "openai"] = "gemini"
    analysis_model: str = "gemini-2.5-flash"
    generation_model: str = "gemini-2.5-flash-image"
    openai_analysis_model: str = "gpt-4.1-mini"

    analysis_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    generation_temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=1024, gt=0)

    analysis_timeout_seconds: float = Field(default=30.0, gt=0)
    generation_timeout_seconds: float = Field(default=60.0, gt=0)
    max_retry_attempts: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=2.0, ge=0)
    retry_max_delay_seconds: float = Field(default=10.0, ge=0)

    max_image_size_mb: float = Field(default=10.0, gt=0)
    max_marked_areas: int = Field(default=10, ge=0)
    min_marked_area_fraction: float = Field(default=0.01, ge=0.0, le=1.0)
    max_marked_area_fraction: float = Field(default=0.9, ge=0.0, le=1.0)

    log_level: str = "INFO"

    @property
    def max_image_size_bytes(self) -> int:
        return int(self.max_image_size_mb * BYTES_PER_MB)

    @property
    def active_analysis_model(self) -> str:
        if self.analysis_provider == "openai":
            return self.openai_analysis_model
        return self.analysis_model

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from the process environment (and a local .env file)."""
        load_dotenv()

        # Environment variable -> field name; unset variables keep the defaults
        env_fields = {
            "GEMINI_API_KEY": "gemini_api_key",
            "OPENAI_API_KEY": "openai_api_key",
            "ANALYSIS_PROVIDER": "analysis_provider",
            "ANALYSIS_MODEL": "analysis_model",
            "GENERATION_MODEL": "generation_model",
            "OPENAI_ANALYSIS_MODEL": "openai_analysis_model",
            "ANALYSIS_TEMPERATURE": "analysis_temperature",
            "GENERATION_TEMPERATURE": "generation_temperature",
            "MAX_OUTPUT_TOKENS": "max_output_tokens",
            "ANALYSIS_TIMEOUT_SECONDS": "analysis_timeout_seconds",
            "GENERATION_TIMEOUT_SECONDS": "generation_timeout_seconds",
            "MAX_RETRY_ATTEMPTS": "max_retry_attempts",
            "RETRY_DELAY_SECONDS": "retry_delay_seconds",
            "RETRY_MAX_DELAY_SECONDS": "retry_max_delay_seconds",
            "MAX_IMAGE_SIZE_MB": "max_image_size_mb",
            "MAX_MARKED_AREAS": "max_marked_areas",
            "LOG_LEVEL": "log_level",
        }
        values = {
            field: os.getenv(env_name)
            for env_name, field in env_fields.items()
            if os.getenv(env_name)
        }
        return cls(**values)
