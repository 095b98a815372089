import json
from functools import lru_cache

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from revision.models.schemas import ErrorResponse, FailureKind, ProcessingContext, ProcessResponse
from revision.services.errors import PipelineError, ValidationFailure
from revision.services.image_processor import image_processor
from revision.services.pipeline import RevisionPipeline, build_pipeline

router = APIRouter()


ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
}

STATUS_CODES = {
    FailureKind.VALIDATION: 400,
    FailureKind.QUOTA: 429,
    FailureKind.AUTH: 503,
    FailureKind.NETWORK: 503,
    FailureKind.UNKNOWN: 500,
}


@lru_cache
def get_pipeline() -> RevisionPipeline:
    return build_pipeline()


@router.post("/api/process", response_model=ProcessResponse)
async def process_image(
    file: UploadFile = File(...),
    marked_areas: str = Form("[]"),
    instructions: str | None = Form(None),
    pipeline: RevisionPipeline = Depends(get_pipeline),
) -> ProcessResponse | JSONResponse:
    """
    Edit an uploaded image according to the user's marked areas.

    ``marked_areas`` is a JSON array of ``{x, y, width, height, description?}``
    objects in normalized image coordinates.
    """
    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_CONTENT_TYPES))}",
        )

    try:
        areas = json.loads(marked_areas or "[]")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="marked_areas must be a JSON array") from None
    if not isinstance(areas, list):
        raise HTTPException(status_code=400, detail="marked_areas must be a JSON array")

    image_data = await file.read()

    try:
        result = await pipeline.process(
            image_data,
            areas,
            ProcessingContext(user_instructions=instructions),
        )
    except PipelineError as e:
        return _error_response(e)

    return ProcessResponse(
        analysis_prompt=result.analysis_prompt,
        generated_image=image_processor.to_data_uri(result.generated_image),
        processing_time_ms=result.processing_time_ms,
        analysis=result.analysis,
        metadata=result.metadata,
    )


def _error_response(error: PipelineError) -> JSONResponse:
    body = ErrorResponse(kind=error.kind, message=error.user_message)
    if isinstance(error, ValidationFailure):
        body.reason = error.reason.value
        body.index = error.index

    return JSONResponse(
        status_code=STATUS_CODES[error.kind],
        content=body.model_dump(mode="json"),
    )
