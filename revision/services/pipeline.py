import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol, TypeVar

from revision.config import PipelineSettings
from revision.models.schemas import (
    FailureKind,
    ImageInfo,
    MarkedArea,
    ModelParameters,
    PipelineMetadata,
    PipelineResult,
    PipelineState,
    ProcessingContext,
)
from revision.services.errors import (
    AnalysisException,
    EmptyModelResponse,
    GenerationException,
    StageError,
    ValidationFailure,
    classify_error,
    failure_for,
    is_retryable,
    user_message,
)
from revision.services.fallback import build_fallback_result
from revision.services.gemini_service import GeminiService
from revision.services.gpt_service import GPTService
from revision.services.image_processor import image_processor
from revision.services.prompt_builder import build_analysis_prompt, build_generation_prompt
from revision.services.response_parser import parse_analysis_response
from revision.services.validator import validate_request

logger = logging.getLogger(__name__)

T = TypeVar("T")

StateListener = Callable[[PipelineState], None]

ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.VALIDATING}),
    PipelineState.VALIDATING: frozenset({PipelineState.ANALYZING, PipelineState.FAILED}),
    PipelineState.ANALYZING: frozenset({PipelineState.GENERATING, PipelineState.FAILED}),
    PipelineState.GENERATING: frozenset({PipelineState.SUCCEEDED, PipelineState.FAILED}),
    PipelineState.FAILED: frozenset({PipelineState.FALLBACK}),
    PipelineState.FALLBACK: frozenset({PipelineState.SUCCEEDED_DEGRADED}),
}

# Failures that go back to the caller instead of degrading to a fallback
PROPAGATED_KINDS = frozenset({FailureKind.QUOTA, FailureKind.AUTH})


class AnalysisClient(Protocol):
    analysis_model: str

    async def analyze(
        self, image_data: bytes, prompt: str, parameters: ModelParameters | None = None
    ) -> str: ...


class GenerationClient(Protocol):
    generation_model: str

    async def generate(
        self, image_data: bytes, prompt: str, parameters: ModelParameters | None = None
    ) -> bytes: ...


class PipelineRun:
    """State machine and attempt counters for a single request."""

    def __init__(
        self,
        on_state: StateListener | None = None,
        initial: PipelineState = PipelineState.IDLE,
    ) -> None:
        self.state = initial
        self.history: list[PipelineState] = [initial]
        self.attempts: dict[str, int] = {"analysis": 0, "generation": 0}
        self._on_state = on_state

    def advance(self, state: PipelineState) -> None:
        if state not in ALLOWED_TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {state.value}")
        if state in self.history:
            raise RuntimeError(f"Pipeline state {state.value} cannot be re-entered")

        self.state = state
        self.history.append(state)
        if self._on_state is None:
            return
        # A broken observer must not change the request's outcome
        try:
            self._on_state(state)
        except Exception:
            logger.exception(
                "State listener failed on %s", state.value, extra={"operation": "state"}
            )

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS.get(self.state)


class RevisionPipeline:
    """Two-stage edit pipeline: analyze the marked image, then generate the edit."""

    def __init__(
        self,
        analysis_client: AnalysisClient,
        generation_client: GenerationClient,
        settings: PipelineSettings | None = None,
    ) -> None:
        self.analysis_client = analysis_client
        self.generation_client = generation_client
        self.settings = settings or PipelineSettings()

    async def process(
        self,
        image_data: bytes,
        marked_areas: Sequence[MarkedArea | Mapping[str, Any]],
        context: ProcessingContext | None = None,
        on_state: StateListener | None = None,
    ) -> PipelineResult:
        """
        Run one edit request end to end.

        Process flow:
        1. Validate the image and marked areas (no model call on failure)
        2. Build the analysis prompt from the marked areas and instructions
        3. Stage A: analysis model turns image + prompt into an editing prompt
        4. Stage B: generation model turns image + editing prompt into a new image

        Validation, quota and auth failures are raised to the caller. Any other
        failure after validation returns a fallback result tagged with
        is_fallback.
        """
        started = time.perf_counter()
        context = context or ProcessingContext()
        run = PipelineRun(on_state)

        run.advance(PipelineState.VALIDATING)
        try:
            areas = validate_request(image_data, marked_areas, self.settings)
        except ValidationFailure as e:
            run.advance(PipelineState.FAILED)
            logger.warning(
                "Rejected edit request: %s",
                e,
                extra={
                    "operation": "validation",
                    "error_kind": e.kind.value,
                    "error_type": e.reason.value,
                },
            )
            raise

        image_info: ImageInfo | None = None
        try:
            prompt = build_analysis_prompt(
                areas,
                user_instructions=context.user_instructions,
                system_instructions=context.system_instructions,
            )
            image_info = image_processor.describe_image(image_data)
            return await self.execute(
                image_data, prompt, context, areas, run=run, image_info=image_info
            )
        except StageError as e:
            error = e
            kind, operation = e.kind, e.stage
        except Exception as e:
            # Failures outside a model call (parsing, metadata) degrade as unknown
            error = e
            kind, operation = FailureKind.UNKNOWN, run.state.value
            logger.error(
                "Edit request failed while %s: %s",
                operation,
                _describe(e),
                exc_info=e,
                extra={
                    "operation": operation,
                    "error_kind": kind.value,
                    "error_type": type(e).__name__,
                },
            )

        run.advance(PipelineState.FAILED)
        if kind in PROPAGATED_KINDS:
            logger.error(
                "Edit request failed during %s: %s",
                operation,
                error,
                extra={"operation": operation, "error_kind": kind.value},
            )
            raise failure_for(kind, str(error)) from error

        run.advance(PipelineState.FALLBACK)
        run.advance(PipelineState.SUCCEEDED_DEGRADED)
        return build_fallback_result(
            image_data,
            areas,
            failure_reason=user_message(kind),
            failure_kind=kind,
            processing_time_ms=_elapsed_ms(started),
            states=run.history,
            image_info=image_info,
            analysis_attempts=run.attempts["analysis"],
            generation_attempts=run.attempts["generation"],
        )

    async def execute(
        self,
        image_data: bytes,
        prompt: str,
        context: ProcessingContext | None = None,
        marked_areas: Sequence[MarkedArea] = (),
        *,
        run: PipelineRun | None = None,
        image_info: ImageInfo | None = None,
    ) -> PipelineResult:
        """
        Run Stage A and Stage B on an already validated request.

        Raises AnalysisException or GenerationException, carrying the
        classified FailureKind, when a stage gives up.
        """
        started = time.perf_counter()
        context = context or ProcessingContext()
        # Callers of execute() have validated the input themselves
        run = run or PipelineRun(initial=PipelineState.VALIDATING)

        run.advance(PipelineState.ANALYZING)
        analysis_started = time.perf_counter()
        raw_analysis = await self._run_stage(
            "analysis",
            lambda: self.analysis_client.analyze(
                image_data, prompt, context.analysis_parameters
            ),
            timeout=self.settings.analysis_timeout_seconds,
            stage_error=AnalysisException,
            run=run,
        )
        analysis = parse_analysis_response(raw_analysis, _elapsed_ms(analysis_started))
        logger.info(
            "Analysis identified %s (confidence %.2f)",
            analysis.objects_summary,
            analysis.confidence,
            extra={"operation": "analysis"},
        )

        run.advance(PipelineState.GENERATING)
        generation_prompt = build_generation_prompt(analysis.editing_prompt)
        generated_image = await self._run_stage(
            "generation",
            lambda: self._generate(image_data, generation_prompt, context.generation_parameters),
            timeout=self.settings.generation_timeout_seconds,
            stage_error=GenerationException,
            run=run,
        )

        run.advance(PipelineState.SUCCEEDED)
        return PipelineResult(
            original_image=image_data,
            analysis_prompt=analysis.editing_prompt,
            generated_image=generated_image,
            processing_time_ms=_elapsed_ms(started),
            analysis=analysis,
            marked_areas=list(marked_areas),
            metadata=PipelineMetadata(
                is_fallback=False,
                analysis_model=_model_name(
                    context.analysis_parameters, self.analysis_client, "analysis_model"
                ),
                generation_model=_model_name(
                    context.generation_parameters, self.generation_client, "generation_model"
                ),
                marked_area_count=len(marked_areas),
                analysis_attempts=run.attempts["analysis"],
                generation_attempts=run.attempts["generation"],
                states=run.history,
                image_info=image_info,
            ),
        )

    async def _generate(
        self, image_data: bytes, prompt: str, parameters: ModelParameters | None
    ) -> bytes:
        generated = await self.generation_client.generate(image_data, prompt, parameters)
        if not generated:
            raise EmptyModelResponse("Generation returned an empty image")
        return generated

    async def _run_stage(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        *,
        timeout: float,
        stage_error: type[StageError],
        run: PipelineRun,
    ) -> T:
        """Call a model with a per-attempt timeout, retrying transient failures."""
        max_attempts = self.settings.max_retry_attempts

        for attempt in range(1, max_attempts + 1):
            run.attempts[operation] = attempt
            attempt_started = time.perf_counter()
            try:
                result = await asyncio.wait_for(call(), timeout=timeout)
            except Exception as e:
                kind = classify_error(e)
                will_retry = is_retryable(kind) and attempt < max_attempts
                logger.warning(
                    "%s attempt %d/%d failed (%s): %s",
                    operation,
                    attempt,
                    max_attempts,
                    kind.value,
                    _describe(e),
                    exc_info=not will_retry,
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "duration_ms": _elapsed_ms(attempt_started),
                        "error_kind": kind.value,
                        "error_type": type(e).__name__,
                    },
                )
                if not will_retry:
                    raise stage_error(
                        f"{operation} failed after {attempt} attempt(s): {_describe(e)}",
                        kind,
                        attempt,
                    ) from e

                await asyncio.sleep(self._retry_delay(attempt))
                continue

            logger.info(
                "%s attempt %d/%d succeeded",
                operation,
                attempt,
                max_attempts,
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "duration_ms": _elapsed_ms(attempt_started),
                },
            )
            return result

        # max_retry_attempts >= 1, so the loop always returns or raises
        raise stage_error(f"{operation} was not attempted", FailureKind.UNKNOWN, 0)

    def _retry_delay(self, attempt: int) -> float:
        # Exponential backoff
        delay = self.settings.retry_delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.settings.retry_max_delay_seconds)


def build_pipeline(settings: PipelineSettings | None = None) -> RevisionPipeline:
    """Wire the configured model clients into a pipeline."""
    settings = settings or PipelineSettings.from_env()
    gemini = GeminiService(settings)
    analysis_client: AnalysisClient = gemini
    if settings.analysis_provider == "openai":
        analysis_client = GPTService(settings)
    return RevisionPipeline(analysis_client, gemini, settings)


def _model_name(parameters: ModelParameters | None, client: object, attribute: str) -> str | None:
    if parameters is not None and parameters.model:
        return parameters.model
    return getattr(client, attribute, None)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__
