from collections.abc import Sequence

from revision.models.schemas import MarkedArea

DEFAULT_SYSTEM_INSTRUCTIONS = """You are an expert AI image analysis system specialized in object removal for photo editing.

Analyze the uploaded image and the user's requested changes, then create a clear, specific prompt for an image editing AI.

Guidelines:
- Be specific about colors, styles, objects, and spatial relationships
- Include technical details like lighting, composition, and style
- Maintain the original image's essence while incorporating requested changes"""

RESPONSE_FORMAT = """RESPONSE FORMAT (JSON only):
{
  "identifiedObjects": ["object1", "object2"],
  "editingPrompt": "Remove [specific objects] from this [scene description]. Fill the area with [appropriate background description]. Ensure seamless blending by [specific technical instructions for lighting, shadows, perspective].",
  "confidence": 0.95,
  "technicalNotes": "Any specific challenges or recommendations",
  "safetyAssessment": "Content is safe for processing"
}

Requirements:
- Be specific about objects (e.g., "red bicycle" not "object")
- Confidence score between 0.0 and 1.0
- Keep the editing prompt under 200 words but detailed enough for the image editor"""

MARKED_AREAS_TASK = """TASK: Analyze this image with user markings and create a precise editing prompt for an AI image editor.

CONTEXT:
- The user marked {count} area{plural} for removal (coordinates are fractions of the image width and height)
{areas}
- User instructions: "{instructions}"

ANALYSIS REQUIREMENTS:
1. Identify the specific objects inside the marked areas
2. Understand the surrounding context and background
3. Determine what should fill the space after object removal
4. Consider lighting, shadows, and visual consistency
5. Generate a technical prompt for seamless object removal"""

ENHANCEMENT_TASK = """TASK: The user did not mark any areas. Analyze this image and create a precise editing prompt that enhances it as a whole.

CONTEXT:
- User instructions: "{instructions}"

ANALYSIS REQUIREMENTS:
1. Identify the main subjects and the overall scene
2. Find issues with exposure, color balance, sharpness and composition
3. Generate a technical prompt that improves the image without adding or removing content"""

GENERATION_PROMPT = """{editing_prompt}

Please edit this image accordingly:
- Remove the specified objects completely
- Fill in the background naturally where objects were removed
- Maintain consistent lighting and shadows
- Preserve the original image quality and composition
- Ensure seamless blending with no visible artifacts

Return only the edited image."""

FALLBACK_PROMPT = (
    "Remove {count} marked object{plural} from this image using advanced inpainting techniques. "
    "Fill the removed areas with contextually appropriate background content. "
    "Ensure seamless blending with proper lighting, shadows, and perspective. "
    "Maintain the original image quality and resolution."
)

FALLBACK_ENHANCEMENT_PROMPT = (
    "Enhance this image while keeping its content unchanged. "
    "Balance exposure and contrast, correct the color balance, and apply subtle sharpening. "
    "Maintain the original image quality and resolution."
)

DEFAULT_USER_INSTRUCTIONS = "Remove the marked objects"


def build_analysis_prompt(
    marked_areas: Sequence[MarkedArea],
    user_instructions: str | None = None,
    system_instructions: str | None = None,
) -> str:
    """
    Render the Stage A instruction for the analysis model.

    The output depends only on the arguments, so identical requests always
    produce identical prompts.
    """
    system = (system_instructions or "").strip() or DEFAULT_SYSTEM_INSTRUCTIONS
    instructions = (user_instructions or "").strip()

    if not marked_areas:
        task = ENHANCEMENT_TASK.format(instructions=instructions or "Enhance the image")
    else:
        task = MARKED_AREAS_TASK.format(
            count=len(marked_areas),
            plural="" if len(marked_areas) == 1 else "s",
            areas="\n".join(
                _describe_area(number, area)
                for number, area in enumerate(marked_areas, start=1)
            ),
            instructions=instructions or DEFAULT_USER_INSTRUCTIONS,
        )

    return f"{system}\n\n{task}\n\n{RESPONSE_FORMAT}\n\nAnalyze the image now and provide the JSON response."


def _describe_area(number: int, area: MarkedArea) -> str:
    description = (area.description or "").strip() or "Object to remove"
    return (
        f"  - Area {number} at ({area.x:.3f}, {area.y:.3f}) "
        f"size {area.width:.3f}x{area.height:.3f}: {description}"
    )


def build_generation_prompt(editing_prompt: str) -> str:
    """Wrap the Stage A instruction with the fixed guidance for the image model."""
    return GENERATION_PROMPT.format(editing_prompt=editing_prompt.strip())


def build_fallback_prompt(marked_area_count: int) -> str:
    if marked_area_count <= 0:
        return FALLBACK_ENHANCEMENT_PROMPT
    return FALLBACK_PROMPT.format(
        count=marked_area_count,
        plural="" if marked_area_count == 1 else "s",
    )
