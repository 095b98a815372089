from collections.abc import Mapping, Sequence
from typing import Any

from revision.config import BYTES_PER_MB, PipelineSettings
from revision.models.schemas import GEOMETRY_KEYS, MarkedArea
from revision.services.errors import ValidationFailure, ValidationReason
from revision.services.image_processor import image_processor


def validate_request(
    image_data: bytes,
    marked_areas: Sequence[MarkedArea | Mapping[str, Any]],
    settings: PipelineSettings,
) -> list[MarkedArea]:
    """
    Check an edit request before anything is sent to a model.

    Image checks run first so an empty or oversized image is always reported
    as such, whatever the marked areas contain. Returns the marked areas as
    MarkedArea instances; raises ValidationFailure on the first problem.
    """
    validate_image(image_data, settings)
    return validate_marked_areas(marked_areas, settings)


def validate_image(image_data: bytes, settings: PipelineSettings) -> None:
    if not image_data:
        raise ValidationFailure(
            ValidationReason.EMPTY_IMAGE, "Image data cannot be empty."
        )

    if len(image_data) > settings.max_image_size_bytes:
        size_mb = len(image_data) / BYTES_PER_MB
        raise ValidationFailure(
            ValidationReason.IMAGE_TOO_LARGE,
            f"Image too large: {size_mb:.1f}MB (max {settings.max_image_size_mb:g}MB).",
        )

    if image_processor.detect_mime_type(image_data) is None:
        raise ValidationFailure(
            ValidationReason.UNSUPPORTED_FORMAT,
            "Unsupported image format. Allowed: JPEG, PNG, WebP, GIF.",
        )


def validate_marked_areas(
    marked_areas: Sequence[MarkedArea | Mapping[str, Any]],
    settings: PipelineSettings,
) -> list[MarkedArea]:
    if isinstance(marked_areas, (str, bytes)) or not isinstance(marked_areas, Sequence):
        raise ValidationFailure(
            ValidationReason.MARKED_AREA_INVALID, "Marked areas must be a list."
        )

    if len(marked_areas) > settings.max_marked_areas:
        raise ValidationFailure(
            ValidationReason.TOO_MANY_AREAS,
            f"Too many marked areas: {len(marked_areas)} (max {settings.max_marked_areas}).",
        )

    validated: list[MarkedArea] = []
    for index, entry in enumerate(marked_areas):
        area = _to_marked_area(entry, index)

        if not area.is_within_bounds:
            raise ValidationFailure(
                ValidationReason.MARKED_AREA_INVALID,
                f"Invalid marked area at index {index}: coordinates out of bounds.",
                index=index,
            )

        if area.area_fraction < settings.min_marked_area_fraction:
            raise ValidationFailure(
                ValidationReason.MARKED_AREA_INVALID,
                f"Marked area at index {index} is too small ({area.area_fraction * 100:.1f}%).",
                index=index,
            )
        if area.area_fraction > settings.max_marked_area_fraction:
            raise ValidationFailure(
                ValidationReason.MARKED_AREA_INVALID,
                f"Marked area at index {index} is too large ({area.area_fraction * 100:.1f}%).",
                index=index,
            )

        validated.append(area)

    return validated


def _to_marked_area(entry: MarkedArea | Mapping[str, Any], index: int) -> MarkedArea:
    if isinstance(entry, MarkedArea):
        return entry

    if not isinstance(entry, Mapping):
        raise ValidationFailure(
            ValidationReason.MARKED_AREA_INVALID,
            f"Invalid marked area at index {index}: expected an object.",
            index=index,
        )

    missing = [key for key in GEOMETRY_KEYS if entry.get(key) is None]
    if missing:
        raise ValidationFailure(
            ValidationReason.MARKED_AREA_INVALID,
            f"Invalid marked area at index {index}: missing {', '.join(missing)}.",
            index=index,
        )

    try:
        return MarkedArea.from_mapping(entry)
    except (TypeError, ValueError, OverflowError):
        raise ValidationFailure(
            ValidationReason.MARKED_AREA_INVALID,
            f"Invalid marked area at index {index}: geometry must be numeric.",
            index=index,
        ) from None
