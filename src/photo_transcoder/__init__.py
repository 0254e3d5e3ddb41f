"""Size-budgeted photo transcoding and upload."""

from .core import (
    DecodeError,
    EncodeError,
    ImageTranscoder,
    TranscodeConfig,
    TranscodeResult,
    transcode,
)

__version__ = "0.1.0"

__all__ = [
    "DecodeError",
    "EncodeError",
    "ImageTranscoder",
    "TranscodeConfig",
    "TranscodeResult",
    "transcode",
    "__version__",
]
