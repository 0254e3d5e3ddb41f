"""Protocol definitions for dependency injection and testability."""

from typing import Any, Dict, Protocol

from PIL import Image


class StorageClientProtocol(Protocol):
    """Subset of the boto3 S3 client used by the upload workflow."""

    def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str
    ) -> Dict[str, Any]:
        """Store an object."""
        ...

    def delete_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Delete an object."""
        ...


class ImageEncoderProtocol(Protocol):
    """Encodes a decoded image at a quality on the 0.0-1.0 scale."""

    def encode(self, image: Image.Image, quality: float, image_format: str) -> bytes:
        """Return the encoded bytes of image."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...
