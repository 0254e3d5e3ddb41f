"""Pillow-backed decoding, resampling and encoding."""

import io
from contextlib import contextmanager
from typing import Iterator, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .exceptions import DecodeError
from .image_utils import to_encoder_quality

# Modes that carry an alpha channel worth keeping in the output
ALPHA_MODES = ("RGBA", "LA", "PA", "RGBa", "La")


@contextmanager
def decode_image(source_bytes: bytes) -> Iterator[Image.Image]:
    """
    Decode source_bytes and yield the loaded image.

    The image and its backing buffer are closed when the block exits,
    whether it exits normally or by an exception.

    Raises:
        DecodeError: If the bytes are empty, not an image, truncated, too
            large to decode safely, or decode to a zero-area image.
    """
    if not source_bytes:
        raise DecodeError("Source image is empty")

    stream = io.BytesIO(source_bytes)
    image = None
    try:
        try:
            image = Image.open(stream)
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as exc:
            raise DecodeError(f"Could not decode image: {exc}") from exc

        if image.width <= 0 or image.height <= 0:
            raise DecodeError(f"Image has zero area: {image.width}x{image.height}")

        yield image
    finally:
        if image is not None:
            image.close()
        stream.close()


def prepare_image(image: Image.Image) -> Image.Image:
    """
    Apply the EXIF orientation and normalise the mode to RGB or RGBA.

    May return image itself when nothing needs to change.
    """
    oriented = ImageOps.exif_transpose(image) or image
    if oriented.mode in ("RGB", "RGBA"):
        return oriented

    has_alpha = oriented.mode in ALPHA_MODES or (
        oriented.mode == "P" and "transparency" in oriented.info
    )
    converted = oriented.convert("RGBA" if has_alpha else "RGB")
    if oriented is not image:
        oriented.close()
    return converted


def resample(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Resize with Lanczos filtering; returns image itself if already at size."""
    if image.size == tuple(size):
        return image
    return image.resize(size, Image.Resampling.LANCZOS)


class PillowImageEncoder:
    """Encodes images with Pillow's writers."""

    def encode(self, image: Image.Image, quality: float, image_format: str) -> bytes:
        if image_format.upper() == "JPEG" and image.mode != "RGB":
            image = image.convert("RGB")

        buffer = io.BytesIO()
        image.save(buffer, format=image_format, quality=to_encoder_quality(quality))
        return buffer.getvalue()
