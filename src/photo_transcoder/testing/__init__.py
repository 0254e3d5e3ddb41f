"""Testing utilities and fakes for the photo transcoder."""

from .fakes import (
    FakeS3Client,
    FakeLogger,
    RecordingEncoder,
    S3Object,
    S3Bucket,
    create_test_image,
    create_noise_image,
    setup_test_s3_environment,
)

__all__ = [
    "FakeS3Client",
    "FakeLogger",
    "RecordingEncoder",
    "S3Object",
    "S3Bucket",
    "create_test_image",
    "create_noise_image",
    "setup_test_s3_environment",
]
