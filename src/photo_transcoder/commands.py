"""
Command implementations for the photo-transcoder CLI.

transcode: local files -> primary (+ thumbnail) files in an output directory
upload:    local files -> transcoded images stored in an S3 bucket
"""

import mimetypes
import os
import time
from typing import List, Optional

from .core import (
    ImageTranscoder,
    PhotoTranscoderError,
    TranscodeConfig,
    UploadConfig,
    UploadItem,
    UploadResult,
    batch_error_handler,
    get_logger,
)
from .core.factories import UploadPipelineFactory
from .core.observability import MetricsCollector
from .core.protocols import StorageClientProtocol


def _write_output(output_dir: str, filename: str, data: bytes) -> str:
    path = os.path.join(output_dir, filename)
    with open(path, "wb") as f:
        f.write(data)
    return path


def log_final_statistics(total_time: float, total_items: int, processed_count: int, error_count: int) -> None:
    """Log processing statistics for a command run."""
    logger = get_logger("cli")
    overall_rate = total_items / total_time if total_time > 0 else 0

    logger.info("=" * 80)
    logger.info("PROCESSING COMPLETED")
    logger.info("=" * 80)
    logger.info(f"Total execution time: {total_time:.1f}s")
    logger.info(f"Overall processing rate: {overall_rate:.1f} items/sec")
    logger.info(f"Successfully processed: {processed_count}")
    logger.info(f"Errors encountered: {error_count}")
    logger.info("=" * 80)


def run_transcode(paths: List[str], output_dir: str, config: TranscodeConfig) -> int:
    """
    Transcode local image files into output_dir, one at a time.

    A file that cannot be read or transcoded is logged and skipped.

    Returns:
        Number of files that failed
    """
    logger = get_logger("cli")
    os.makedirs(output_dir, exist_ok=True)
    metrics = MetricsCollector()
    transcoder = ImageTranscoder(metrics_collector=metrics)

    start_time = time.time()
    error_count = 0
    for path in paths:
        try:
            with open(path, "rb") as f:
                source_bytes = f.read()
            with batch_error_handler():
                result = transcoder.transcode(source_bytes, os.path.basename(path), config)
            written = [_write_output(output_dir, result.primary.filename, result.primary.data)]
            if result.thumbnail is not None:
                written.append(_write_output(output_dir, result.thumbnail.filename, result.thumbnail.data))
            logger.info(f"{path} -> {', '.join(written)}")
        except (OSError, PhotoTranscoderError) as e:
            error_count += 1
            logger.error(f"Skipping {path}: {type(e).__name__}: {e}")

    summary = metrics.get_summary("transcode")
    if summary:
        logger.debug(f"Transcode timings: avg {summary['avg_duration'] * 1000:.0f} ms, max {summary['max_duration'] * 1000:.0f} ms")
    log_final_statistics(time.time() - start_time, len(paths), len(paths) - error_count, error_count)
    return error_count


def load_upload_items(paths: List[str]) -> List[UploadItem]:
    """Read local files into upload items, guessing the content type from the name."""
    items = []
    for path in paths:
        with open(path, "rb") as f:
            data = f.read()
        content_type, _ = mimetypes.guess_type(path)
        items.append(UploadItem(filename=os.path.basename(path), data=data, content_type=content_type))
    return items


def run_upload(
    paths: List[str],
    config: UploadConfig,
    main_index: int = 0,
    storage_client: Optional[StorageClientProtocol] = None,
    debug: bool = False,
) -> List[UploadResult]:
    """Transcode and upload local image files; returns one result per accepted file."""
    logger = get_logger("cli")
    service = UploadPipelineFactory.create_pipeline(storage_client=storage_client, debug=debug)

    start_time = time.time()
    results = service.upload_images(load_upload_items(paths), config, main_index=main_index)

    for result in results:
        if result.success and result.image is not None:
            main_marker = " (main)" if result.image.is_main else ""
            logger.info(f"{result.filename}{main_marker} -> {result.image.url}")
            if result.image.thumbnail_url:
                logger.info(f"{result.filename} thumbnail -> {result.image.thumbnail_url}")
        else:
            logger.error(f"{result.filename} failed: {result.error}")

    processed_count = sum(1 for r in results if r.success)
    log_final_statistics(time.time() - start_time, len(results), processed_count, len(results) - processed_count)
    return results
