import json
import logging
import re

from revision.models.schemas import AnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_OBJECTS = ["marked objects"]
DEFAULT_EDITING_PROMPT = (
    "Remove the marked objects from the image and fill with appropriate background."
)
CANNED_EDITING_PROMPT = (
    "Remove the marked objects from the image using content-aware fill. "
    "Reconstruct the background naturally to maintain visual consistency. "
    "Apply appropriate lighting and shadow adjustments for seamless integration."
)

JSON_CONFIDENCE_DEFAULT = 0.8
TEXT_CONFIDENCE = 0.7
MAX_TEXT_PROMPT_LENGTH = 300
EDIT_KEYWORDS = ("remove", "edit")

# ```json ... ``` wrappers that models put around JSON answers
CODE_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def parse_analysis_response(raw_text: str, processing_time_ms: int = 0) -> AnalysisResult:
    """
    Turn the analysis model's answer into an AnalysisResult.

    JSON answers matching the requested schema are read field by field, with
    defaults for anything missing. Anything else goes through a keyword
    heuristic that yields a lower-confidence result instead of an error.
    """
    text = _strip_code_fence(raw_text or "")

    try:
        data = json.loads(text)
    except ValueError as e:
        # JSONDecodeError, or an integer literal past the int conversion digit limit
        logger.warning("Analysis response is not JSON, using text heuristics: %s", e)
        return _parse_text(text, processing_time_ms)

    if not isinstance(data, dict):
        logger.warning("Analysis response JSON is %s, expected an object", type(data).__name__)
        return _parse_text(text, processing_time_ms)

    return AnalysisResult(
        identified_objects=_read_objects(data.get("identifiedObjects")),
        editing_prompt=_read_string(data.get("editingPrompt")) or DEFAULT_EDITING_PROMPT,
        confidence=_read_confidence(data.get("confidence")),
        processing_time_ms=processing_time_ms,
        technical_notes=_read_string(data.get("technicalNotes")),
        safety_assessment=_read_string(data.get("safetyAssessment")),
    )


def _strip_code_fence(text: str) -> str:
    match = CODE_FENCE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _parse_text(text: str, processing_time_ms: int) -> AnalysisResult:
    return AnalysisResult(
        identified_objects=list(DEFAULT_OBJECTS),
        editing_prompt=_extract_editing_prompt(text),
        confidence=TEXT_CONFIDENCE,
        processing_time_ms=processing_time_ms,
        technical_notes="Response parsed from non-JSON format",
    )


def _extract_editing_prompt(text: str) -> str:
    lowered = text.lower()
    if any(keyword in lowered for keyword in EDIT_KEYWORDS):
        if len(text) > MAX_TEXT_PROMPT_LENGTH:
            return f"{text[:MAX_TEXT_PROMPT_LENGTH]}..."
        return text
    return CANNED_EDITING_PROMPT


def _read_objects(value: object) -> list[str]:
    if not isinstance(value, list):
        return list(DEFAULT_OBJECTS)
    objects = [str(item).strip() for item in value if str(item).strip()]
    return objects or list(DEFAULT_OBJECTS)


def _read_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _read_confidence(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return JSON_CONFIDENCE_DEFAULT
    if value != value:  # NaN
        return JSON_CONFIDENCE_DEFAULT
    # Clamp before converting; huge JSON integers do not fit in a float
    return float(min(max(value, 0), 1))
