from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

GEOMETRY_KEYS = ("x", "y", "width", "height")


class FailureKind(str, Enum):
    """Failure taxonomy shared by the error mapper, API and result metadata."""

    VALIDATION = "validation"
    NETWORK = "network"
    QUOTA = "quota"
    AUTH = "auth"
    UNKNOWN = "unknown"


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    FALLBACK = "fallback"
    SUCCEEDED_DEGRADED = "succeeded_degraded"


class MarkedArea(BaseModel):
    """Rectangle marked by the user, in normalized image coordinates."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float
    description: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MarkedArea":
        description = data.get("description")
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
            description=str(description) if description is not None else None,
        )

    @property
    def area_fraction(self) -> float:
        return self.width * self.height

    @property
    def is_within_bounds(self) -> bool:
        return (
            0.0 <= self.x <= 1.0
            and 0.0 <= self.y <= 1.0
            and 0.0 < self.width <= 1.0
            and 0.0 < self.height <= 1.0
            and self.x + self.width <= 1.0
            and self.y + self.height <= 1.0
        )


class AnalysisResult(BaseModel):
    """Stage A output: what the analysis model found and how to edit it."""

    model_config = ConfigDict(frozen=True)

    identified_objects: list[str]
    editing_prompt: str
    confidence: float = Field(ge=0.0, le=1.0)
    processing_time_ms: int = 0
    technical_notes: str | None = None
    safety_assessment: str | None = None

    @property
    def objects_summary(self) -> str:
        objects = self.identified_objects
        if not objects:
            return "No objects identified"
        if len(objects) == 1:
            return objects[0]
        return f"{', '.join(objects[:-1])} and {objects[-1]}"

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.8


class ImageInfo(BaseModel):
    """Descriptive metadata for an input image."""

    width: int | None = None
    height: int | None = None
    format: str | None = None
    size_bytes: int


class ModelParameters(BaseModel):
    """Per-stage overrides for the model call. Unset fields use settings."""

    model_config = ConfigDict(frozen=True)

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_output_tokens: int | None = Field(default=None, gt=0)
    top_p: float | None = Field(default=None, gt=0.0, le=1.0)


class ProcessingContext(BaseModel):
    """Optional request-scoped overrides passed through the pipeline."""

    model_config = ConfigDict(frozen=True)

    system_instructions: str | None = None
    user_instructions: str | None = None
    analysis_parameters: ModelParameters | None = None
    generation_parameters: ModelParameters | None = None


class PipelineMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_fallback: bool = False
    failure_reason: str | None = None
    failure_kind: FailureKind | None = None
    analysis_model: str | None = None
    generation_model: str | None = None
    marked_area_count: int = 0
    analysis_attempts: int = 0
    generation_attempts: int = 0
    states: list[PipelineState] = Field(default_factory=list)
    image_info: ImageInfo | None = None


class PipelineResult(BaseModel):
    """Final aggregate returned to the caller for one request."""

    model_config = ConfigDict(frozen=True)

    original_image: bytes
    analysis_prompt: str
    generated_image: bytes = Field(min_length=1)
    processing_time_ms: int
    analysis: AnalysisResult | None = None
    marked_areas: list[MarkedArea] = Field(default_factory=list)
    metadata: PipelineMetadata = Field(default_factory=PipelineMetadata)


class ProcessResponse(BaseModel):
    """HTTP representation of a PipelineResult."""

    analysis_prompt: str
    generated_image: str  # base64 data URI
    processing_time_ms: int
    analysis: AnalysisResult | None = None
    metadata: PipelineMetadata


class ErrorResponse(BaseModel):
    kind: FailureKind
    message: str
    reason: str | None = None
    index: int | None = None
