"""Upload workflow: validate a selection, transcode each file, store the outputs."""

import time
from typing import List, Optional, Sequence

from .error_handling import (
    BatchOperationContextManager,
    retry_storage_operation,
    with_error_handling,
)
from .exceptions import ImageProcessingError, SelectionError, StorageError
from .models import StoredImage, TranscodeResult, UploadConfig, UploadItem, UploadResult
from .observability import LogContext, MetricsCollector, PerformanceMetrics
from .protocols import LoggerProtocol, StorageClientProtocol
from .transcoder import ImageTranscoder


def validate_selection(
    items: Sequence[UploadItem],
    max_images: int,
    logger: LoggerProtocol,
    existing_count: int = 0,
) -> List[UploadItem]:
    """
    Check a file selection before any work is done.

    Raises:
        SelectionError: If the selection would take the total past max_images

    Returns:
        The items whose declared content type is an image (items without a
        declared type are kept and left to the decoder)
    """
    total = existing_count + len(items)
    if total > max_images:
        raise SelectionError(f"You can upload a maximum of {max_images} images ({total} selected)")

    accepted = []
    for item in items:
        if item.content_type and not item.content_type.startswith("image/"):
            logger.warning(f"{item.filename} is not a valid image file ({item.content_type})")
            continue
        accepted.append(item)
    return accepted


def build_storage_key(
    prefix: str,
    owner_id: str,
    index: int,
    filename: str,
    timestamp_ms: int,
    thumbnail: bool = False,
) -> str:
    """Storage key for an uploaded image, e.g. cakes/u1/1700000000000_0_cake.webp."""
    marker = "thumb_" if thumbnail else ""
    key = f"{owner_id}/{timestamp_ms}_{index}_{marker}{filename}"
    if prefix:
        return f"{prefix.strip('/')}/{key}"
    return key


def public_url(config: UploadConfig, key: str) -> str:
    """Retrievable URL of a stored object."""
    if config.public_url_base:
        return f"{config.public_url_base.rstrip('/')}/{key}"
    return f"https://{config.bucket}.s3.amazonaws.com/{key}"


@retry_storage_operation()
@with_error_handling
def _put_image(storage_client: StorageClientProtocol, bucket: str, key: str, data: bytes, content_type: str) -> None:
    storage_client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)


@retry_storage_operation()
@with_error_handling
def _delete_image(storage_client: StorageClientProtocol, bucket: str, key: str) -> None:
    storage_client.delete_object(Bucket=bucket, Key=key)


class UploadService:
    """Sequentially transcodes and stores the images a user selected."""

    def __init__(
        self,
        storage_client: StorageClientProtocol,
        transcoder: ImageTranscoder,
        logger: LoggerProtocol,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._storage_client = storage_client
        self._transcoder = transcoder
        self._logger = logger
        self._metrics_collector = metrics_collector

    def upload_images(
        self,
        items: Sequence[UploadItem],
        config: UploadConfig,
        main_index: int = 0,
        existing_count: int = 0,
    ) -> List[UploadResult]:
        """
        Upload a selection of images, one file at a time.

        A file that cannot be decoded, encoded or stored fails on its own;
        the rest of the batch continues. Exactly one successful image is
        marked as main: the one at main_index if it succeeded, otherwise
        the first successful one. Images added to an existing set
        (existing_count > 0) are never marked as main.

        A file whose thumbnail cannot be stored has its primary removed
        again, so each file is stored whole or not at all.
        """
        accepted = validate_selection(items, config.max_images, self._logger, existing_count)
        log_context = LogContext(
            operation="upload_images", component="upload_service", user_id=config.owner_id
        ).with_metadata(bucket=config.bucket, files=len(accepted))
        self._logger.info("Uploading selection", log_context)

        results = []
        with BatchOperationContextManager("Image upload") as batch:
            for index, item in enumerate(accepted):
                result = self._upload_one(index, item, config, log_context)
                if not result.success:
                    batch.add_error(result.error, item.filename)
                results.append(result)

        if existing_count == 0:
            self._mark_main(results, main_index)
        return results

    def _upload_one(
        self, index: int, item: UploadItem, config: UploadConfig, log_context: LogContext
    ) -> UploadResult:
        start_time = time.time()
        result = UploadResult(filename=item.filename)
        item_context = log_context.with_metadata(filename=item.filename, index=index)

        try:
            self._logger.debug("Transcoding image", item_context.with_operation("transcode"))
            transcoded = self._transcoder.transcode(item.data, item.filename, config.transcode)
            result.image = self._store(index, transcoded, config, item_context)
            result.success = True
        except (ImageProcessingError, StorageError) as e:
            result.error = str(e)
            self._logger.error(
                f"Failed to upload image: {type(e).__name__}", item_context.with_metadata(error=str(e))
            )
        finally:
            result.processing_time = time.time() - start_time
            self._record("upload", start_time, result.success, result.error or None, item.filename)

        if result.success:
            self._logger.info(
                "Uploaded image",
                item_context,
                processing_time_ms=round(result.processing_time * 1000, 1),
            )
        return result

    def _store(
        self, index: int, transcoded: TranscodeResult, config: UploadConfig, log_context: LogContext
    ) -> StoredImage:
        timestamp_ms = int(time.time() * 1000)
        primary = transcoded.primary
        primary_key = build_storage_key(
            config.key_prefix, config.owner_id, index, primary.filename, timestamp_ms
        )
        self._logger.debug("Storing primary image", log_context.with_operation("store"), key=primary_key)
        _put_image(self._storage_client, config.bucket, primary_key, primary.data, primary.mime_type)

        image = StoredImage(id=primary_key, url=public_url(config, primary_key))

        thumbnail = transcoded.thumbnail
        if thumbnail is not None:
            thumbnail_key = build_storage_key(
                config.key_prefix, config.owner_id, index, thumbnail.filename, timestamp_ms, thumbnail=True
            )
            self._logger.debug("Storing thumbnail", log_context.with_operation("store"), key=thumbnail_key)
            try:
                _put_image(self._storage_client, config.bucket, thumbnail_key, thumbnail.data, thumbnail.mime_type)
            except StorageError:
                self._discard(config.bucket, primary_key, log_context)
                raise
            image.thumbnail_path = thumbnail_key
            image.thumbnail_url = public_url(config, thumbnail_key)

        return image

    def _discard(self, bucket: str, key: str, log_context: LogContext) -> None:
        """Remove a stored primary whose thumbnail could not be stored."""
        try:
            _delete_image(self._storage_client, bucket, key)
        except StorageError as e:
            self._logger.error(
                "Could not remove primary after thumbnail failure",
                log_context.with_operation("store").with_metadata(key=key, error=str(e)),
            )

    @staticmethod
    def _mark_main(results: List[UploadResult], main_index: int) -> None:
        stored = [r.image for r in results if r.success and r.image is not None]
        if not stored:
            return
        main_image = None
        if 0 <= main_index < len(results) and results[main_index].success:
            main_image = results[main_index].image
        if main_image is None:
            main_image = stored[0]
        for image in stored:
            image.is_main = image is main_image

    def delete_images(self, images: Sequence[StoredImage], bucket: str) -> int:
        """
        Delete stored images and their thumbnails, best effort.

        A failed deletion is logged and skipped. Returns the number of
        images whose primary and thumbnail were both deleted.
        """
        log_context = LogContext(operation="delete_images", component="upload_service")
        deleted = 0
        for image in images:
            try:
                _delete_image(self._storage_client, bucket, image.id)
                if image.thumbnail_path:
                    _delete_image(self._storage_client, bucket, image.thumbnail_path)
                deleted += 1
            except StorageError as e:
                self._logger.error("Error deleting image", log_context.with_metadata(key=image.id, error=str(e)))
        self._logger.info(f"Deleted {deleted}/{len(images)} image(s)", log_context)
        return deleted

    def _record(self, operation: str, start_time: float, success: bool, error: Optional[str], filename: str) -> None:
        if self._metrics_collector is None:
            return
        self._metrics_collector.record_metric(
            PerformanceMetrics(
                operation=operation,
                start_time=start_time,
                end_time=time.time(),
                success=success,
                error_message=error,
                metadata={"filename": filename},
            )
        )
