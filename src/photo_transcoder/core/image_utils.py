"""Pure helpers for dimension fitting, quality search and output naming."""

import math
import re
from typing import Dict, List, Tuple

# Float slack when comparing a stepped quality against its floor
QUALITY_EPSILON = 1e-9

DEFAULT_STEM = "image"
THUMBNAIL_SUFFIX = "_thumb"

# Lossy formats with a steppable quality parameter: extension and MIME type
OUTPUT_FORMATS: Dict[str, Tuple[str, str]] = {
    "WEBP": (".webp", "image/webp"),
    "JPEG": (".jpg", "image/jpeg"),
}


def fit_dimensions(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Scale (width, height) down so the longer side equals max_dimension.

    Images already within max_dimension on both axes are returned unchanged;
    images are never enlarged. The shorter side is rounded to the nearest
    pixel and is at least 1.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        max_dimension: Largest allowed side in pixels

    Returns:
        Target (width, height)

    Raises:
        ValueError: If any argument is not positive
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if max_dimension <= 0:
        raise ValueError(f"max_dimension must be positive, got {max_dimension}")

    if width <= max_dimension and height <= max_dimension:
        return width, height

    if width >= height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


def quality_schedule(initial: float, step: float, minimum: float) -> List[float]:
    """
    Qualities to try, in order: initial, initial - step, ... down to minimum.

    Values below minimum are never included, so the list is strictly
    decreasing and never longer than max_quality_attempts().
    """
    if step <= 0:
        raise ValueError(f"Quality step must be positive, got {step}")

    qualities = []
    index = 0
    while True:
        quality = round(initial - index * step, 6)
        if quality < minimum - QUALITY_EPSILON:
            break
        qualities.append(quality)
        index += 1
    return qualities


def max_quality_attempts(initial: float, step: float, minimum: float) -> int:
    """Upper bound on encode attempts: ceil((initial - minimum) / step) + 1."""
    return math.ceil(round((initial - minimum) / step, 6)) + 1


def to_encoder_quality(quality: float) -> int:
    """Map a 0.0-1.0 quality to Pillow's 0-100 integer scale."""
    return max(0, min(100, int(round(quality * 100))))


def output_format_info(image_format: str) -> Tuple[str, str]:
    """Return (extension, mime_type) for a supported output format."""
    try:
        return OUTPUT_FORMATS[image_format.upper()]
    except KeyError:
        raise ValueError(
            f"Unsupported output format: {image_format}. "
            f"Expected one of {', '.join(sorted(OUTPUT_FORMATS))}"
        ) from None


def derive_output_filename(filename_hint: str, extension: str, suffix: str = "") -> str:
    """
    Replace the extension of filename_hint with extension.

    Only the final path component of the hint is kept. Examples:
        "cake.png" -> "cake.webp"
        "photos/cake.final.JPG" -> "cake.final.webp"
        "cake", suffix="_thumb" -> "cake_thumb.webp"
    """
    name = re.split(r"[\\/]", filename_hint or "")[-1]
    stem, dot, _ = name.rpartition(".")
    if not dot:
        stem = name
    stem = stem.strip() or DEFAULT_STEM
    return f"{stem}{suffix}{extension}"
