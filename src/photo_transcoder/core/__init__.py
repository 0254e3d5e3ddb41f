"""Core components of the photo transcoder."""

from .image_utils import (
    derive_output_filename,
    fit_dimensions,
    max_quality_attempts,
    quality_schedule,
)
from .logging_config import get_logger, setup_logger
from .exceptions import (
    PhotoTranscoderError,
    ImageProcessingError,
    DecodeError,
    EncodeError,
    StorageError,
    ConfigurationError,
    SelectionError,
    batch_error_handler,
)
from .error_handling import with_error_handling
from .models import (
    EncodedImage,
    StoredImage,
    TranscodeConfig,
    TranscodeResult,
    UploadConfig,
    UploadItem,
    UploadResult,
)
from .transcoder import ImageTranscoder, transcode

__all__ = [
    "TranscodeConfig",
    "EncodedImage",
    "TranscodeResult",
    "UploadConfig",
    "UploadItem",
    "StoredImage",
    "UploadResult",
    "ImageTranscoder",
    "transcode",
    "fit_dimensions",
    "quality_schedule",
    "max_quality_attempts",
    "derive_output_filename",
    "setup_logger",
    "get_logger",
    "PhotoTranscoderError",
    "ImageProcessingError",
    "DecodeError",
    "EncodeError",
    "StorageError",
    "ConfigurationError",
    "SelectionError",
    "with_error_handling",
    "batch_error_handler",
]
