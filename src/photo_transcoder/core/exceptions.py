"""Custom exceptions for the photo transcoder."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any


class PhotoTranscoderError(Exception):
    """Base exception for all photo transcoder errors."""


class ImageProcessingError(PhotoTranscoderError):
    """Error raised when processing a single image fails."""


class DecodeError(ImageProcessingError):
    """Source bytes are not a decodable image, or decode to a zero-area image."""


class EncodeError(ImageProcessingError):
    """The encoder could not produce output at any attempted quality."""


class StorageError(PhotoTranscoderError):
    """Error raised for object storage failures."""


class ConfigurationError(PhotoTranscoderError):
    """Error raised for invalid configuration options."""


class SelectionError(PhotoTranscoderError):
    """Error raised when a file selection cannot be accepted as a whole."""


@contextmanager
def batch_error_handler() -> Any:
    """Context manager converting unexpected errors in a block to ImageProcessingError."""
    try:
        yield
    except PhotoTranscoderError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise ImageProcessingError(str(exc)) from exc
