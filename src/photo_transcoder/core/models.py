"""Shared data models for the photo transcoder."""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

KILOBYTE = 1024
MEGABYTE = 1024 * KILOBYTE


class TranscodeConfig(BaseModel):
    """Options for a single transcode call. Qualities are on a 0.0-1.0 scale."""

    max_dimension: int = Field(default=2000, gt=0)
    max_primary_bytes: int = Field(default=MEGABYTE, gt=0)
    thumbnail_threshold_bytes: int = Field(default=256 * KILOBYTE, ge=0)
    thumbnail_max_dimension: int = Field(default=300, gt=0)
    initial_quality: float = Field(default=0.85, gt=0.0, le=1.0)
    quality_step: float = Field(default=0.05, gt=0.0, le=1.0)
    min_quality: float = Field(default=0.5, gt=0.0, le=1.0)
    thumbnail_quality: float = Field(default=0.7, gt=0.0, le=1.0)
    output_format: str = "WEBP"

    @model_validator(mode="after")
    def _check_quality_range(self) -> "TranscodeConfig":
        if self.min_quality > self.initial_quality:
            raise ValueError(
                f"min_quality ({self.min_quality}) must not exceed "
                f"initial_quality ({self.initial_quality})"
            )
        return self


class EncodedImage(BaseModel):
    """An encoded output image ready to hand to object storage."""

    data: bytes = Field(repr=False)
    mime_type: str
    filename: str
    width: int
    height: int
    quality: float

    @property
    def byte_length(self) -> int:
        return len(self.data)


class TranscodeResult(BaseModel):
    """Primary image plus the optional thumbnail produced by one transcode call."""

    primary: EncodedImage
    thumbnail: Optional[EncodedImage] = None
    source_width: int
    source_height: int
    attempted_qualities: List[float] = Field(default_factory=list)
    processing_time: float = 0.0


class UploadConfig(BaseModel):
    """Configuration for uploading a user's selected images."""

    bucket: str
    owner_id: str
    key_prefix: str = "cakes"
    max_images: int = Field(default=5, gt=0)
    public_url_base: Optional[str] = None
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)


class UploadItem(BaseModel):
    """A file selected by the user for upload."""

    filename: str
    data: bytes = Field(repr=False)
    content_type: Optional[str] = None


class StoredImage(BaseModel):
    """Locators of an uploaded primary image and its thumbnail."""

    id: str
    url: str
    is_main: bool = False
    thumbnail_url: Optional[str] = None
    thumbnail_path: Optional[str] = None


class UploadResult(BaseModel):
    """Result of uploading a single selected file."""

    filename: str
    success: bool = False
    error: str = ""
    image: Optional[StoredImage] = None
    processing_time: float = 0.0
