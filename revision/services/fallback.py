import logging
from collections.abc import Sequence

from revision.models.schemas import (
    AnalysisResult,
    FailureKind,
    ImageInfo,
    MarkedArea,
    PipelineMetadata,
    PipelineResult,
    PipelineState,
)
from revision.services.prompt_builder import build_fallback_prompt

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.75
FALLBACK_MODEL = "fallback"


def build_fallback_result(
    image_data: bytes,
    marked_areas: Sequence[MarkedArea],
    failure_reason: str,
    failure_kind: FailureKind,
    processing_time_ms: int,
    states: Sequence[PipelineState] = (),
    image_info: ImageInfo | None = None,
    analysis_attempts: int = 0,
    generation_attempts: int = 0,
) -> PipelineResult:
    """
    Synthesize a degraded result when the model calls did not succeed.

    The editing instruction is templated from the number of marked areas and
    the original image is returned unchanged, so the caller always has
    something to show. The metadata marks the result as a fallback and keeps
    the reason for it.
    """
    count = len(marked_areas)
    logger.warning(
        "Creating fallback result for %d marked area(s): %s",
        count,
        failure_reason,
        extra={"operation": "fallback", "error_kind": failure_kind.value},
    )

    prompt = build_fallback_prompt(count)
    analysis = AnalysisResult(
        identified_objects=[f"marked object {number}" for number in range(1, count + 1)],
        editing_prompt=prompt,
        confidence=FALLBACK_CONFIDENCE,
        processing_time_ms=0,
        technical_notes="Fallback analysis - AI service unavailable",
    )

    return PipelineResult(
        original_image=image_data,
        analysis_prompt=prompt,
        generated_image=image_data,
        processing_time_ms=processing_time_ms,
        analysis=analysis,
        marked_areas=list(marked_areas),
        metadata=PipelineMetadata(
            is_fallback=True,
            failure_reason=failure_reason,
            failure_kind=failure_kind,
            analysis_model=FALLBACK_MODEL,
            generation_model=FALLBACK_MODEL,
            marked_area_count=count,
            analysis_attempts=analysis_attempts,
            generation_attempts=generation_attempts,
            states=list(states),
            image_info=image_info,
        ),
    )
