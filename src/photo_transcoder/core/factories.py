"""Factory classes for creating configured service instances."""

from typing import Any, Optional

import boto3

from .observability import LogLevel, MetricsCollector, ObservabilityConfig, create_logger
from .protocols import ImageEncoderProtocol, LoggerProtocol, StorageClientProtocol
from .services import UploadService
from .transcoder import ImageTranscoder


class StorageClientFactory:
    """Factory for creating S3 client instances."""

    @staticmethod
    def create_storage_client(**kwargs: Any) -> StorageClientProtocol:
        """Create S3 client with optional configuration (region_name, endpoint_url, ...)."""
        session = boto3.Session()
        return session.client("s3", **kwargs)  # type: ignore


class UploadPipelineFactory:
    """Factory for creating the complete upload pipeline."""

    @staticmethod
    def create_pipeline(
        storage_client: Optional[StorageClientProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        encoder: Optional[ImageEncoderProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        debug: bool = False,
    ) -> UploadService:
        """Create a fully configured upload service."""
        if storage_client is None:
            storage_client = StorageClientFactory.create_storage_client()

        if logger is None:
            config = ObservabilityConfig(log_level=LogLevel.DEBUG if debug else LogLevel.INFO)
            logger = create_logger("photo-transcoder.upload", config)

        transcoder = ImageTranscoder(encoder=encoder, metrics_collector=metrics_collector)
        return UploadService(storage_client, transcoder, logger, metrics_collector)
