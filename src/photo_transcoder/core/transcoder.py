"""Size-budgeted transcoding of one uploaded photo into a primary image and thumbnail."""

import time
from contextlib import ExitStack
from typing import List, Optional, Tuple

from PIL import Image

from .codec import PillowImageEncoder, decode_image, prepare_image, resample
from .error_handling import with_error_handling
from .exceptions import ConfigurationError, EncodeError
from .image_utils import (
    THUMBNAIL_SUFFIX,
    derive_output_filename,
    fit_dimensions,
    output_format_info,
    quality_schedule,
)
from .logging_config import get_logger
from .models import EncodedImage, TranscodeConfig, TranscodeResult
from .observability import MetricsCollector, PerformanceMetrics
from .protocols import ImageEncoderProtocol

# Errors Pillow raises from a writer that cannot handle the image
ENCODER_ERRORS = (OSError, ValueError, KeyError)


def _track(image: Image.Image, parent: Image.Image, intermediates: ExitStack) -> Image.Image:
    """Register image for closing unless it is parent itself."""
    if image is not parent:
        intermediates.callback(image.close)
    return image


class ImageTranscoder:
    """
    Stateless converter from raw upload bytes to an encoded primary image
    and an optional thumbnail.

    Each call decodes the source, scales it down to fit max_dimension,
    re-encodes the scaled image at decreasing qualities until it fits the
    byte budget (or the quality floor is reached), and derives a thumbnail
    from the source when the accepted primary is above the threshold.
    """

    def __init__(
        self,
        encoder: Optional[ImageEncoderProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._encoder = encoder or PillowImageEncoder()
        self._metrics_collector = metrics_collector

    @with_error_handling
    def transcode(
        self,
        source_bytes: bytes,
        filename_hint: str,
        config: Optional[TranscodeConfig] = None,
    ) -> TranscodeResult:
        """
        Transcode one image.

        Args:
            source_bytes: Raw bytes of a JPEG, PNG or other Pillow-readable image
            filename_hint: Original filename, used only to name the outputs
            config: Size and quality limits (defaults to TranscodeConfig())

        Returns:
            TranscodeResult with the primary image and, when the primary is
            larger than thumbnail_threshold_bytes, a thumbnail

        Raises:
            DecodeError: The bytes cannot be decoded to a non-empty image
            EncodeError: No encode attempt produced output
            ConfigurationError: The configured output format is unsupported
        """
        config = config or TranscodeConfig()
        logger = get_logger("transcoder")

        try:
            extension, mime_type = output_format_info(config.output_format)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        start_time = time.time()
        success = False
        error_message = None

        try:
            with decode_image(source_bytes) as decoded, ExitStack() as intermediates:
                try:
                    source = _track(prepare_image(decoded), decoded, intermediates)
                except ENCODER_ERRORS as exc:
                    raise EncodeError(
                        f"Unsupported pixel format {decoded.mode} in {filename_hint}: {exc}"
                    ) from exc

                source_width, source_height = source.size
                target_size = fit_dimensions(source_width, source_height, config.max_dimension)
                logger.debug(
                    f"[{filename_hint}] Decoded {source_width}x{source_height} ({decoded.format}), "
                    f"target {target_size[0]}x{target_size[1]}"
                )
                scaled = _track(resample(source, target_size), source, intermediates)

                primary, attempted = self._encode_primary(
                    scaled,
                    config,
                    derive_output_filename(filename_hint, extension),
                    mime_type,
                )

                thumbnail = None
                if primary.byte_length > config.thumbnail_threshold_bytes:
                    thumbnail = self._encode_thumbnail(
                        source,
                        config,
                        derive_output_filename(filename_hint, extension, THUMBNAIL_SUFFIX),
                        mime_type,
                        intermediates,
                    )

            result = TranscodeResult(
                primary=primary,
                thumbnail=thumbnail,
                source_width=source_width,
                source_height=source_height,
                attempted_qualities=attempted,
                processing_time=time.time() - start_time,
            )
            success = True
        except Exception as exc:
            error_message = str(exc)
            raise
        finally:
            if self._metrics_collector is not None:
                self._metrics_collector.record_metric(
                    PerformanceMetrics(
                        operation="transcode",
                        start_time=start_time,
                        end_time=time.time(),
                        success=success,
                        error_message=error_message,
                        metadata={"filename": filename_hint},
                    )
                )

        logger.info(
            f"[{filename_hint}] Transcoded {source_width}x{source_height} -> "
            f"{primary.width}x{primary.height}, {primary.byte_length} bytes at quality "
            f"{primary.quality:.2f} after {len(attempted)} attempt(s); "
            f"thumbnail: {'yes' if thumbnail else 'no'}"
        )
        return result

    def _encode_primary(
        self,
        image: Image.Image,
        config: TranscodeConfig,
        filename: str,
        mime_type: str,
    ) -> Tuple[EncodedImage, List[float]]:
        """Search downward through the quality schedule for an encoding within budget."""
        logger = get_logger("transcoder")
        accepted = None
        attempted: List[float] = []
        last_error: Optional[Exception] = None

        for quality in quality_schedule(
            config.initial_quality, config.quality_step, config.min_quality
        ):
            attempted.append(quality)
            try:
                data = self._encoder.encode(image, quality, config.output_format)
            except ENCODER_ERRORS as exc:
                last_error = exc
                logger.warning(f"[{filename}] Encode at quality {quality:.2f} failed: {exc}")
                continue
            if not data:
                last_error = EncodeError("encoder returned no data")
                logger.warning(f"[{filename}] Encode at quality {quality:.2f} returned no data")
                continue

            accepted = EncodedImage(
                data=data,
                mime_type=mime_type,
                filename=filename,
                width=image.width,
                height=image.height,
                quality=quality,
            )
            logger.debug(f"[{filename}] Quality {quality:.2f} -> {len(data)} bytes")
            if len(data) <= config.max_primary_bytes:
                break

        if accepted is None:
            raise EncodeError(
                f"Could not encode {filename} as {config.output_format} at any quality "
                f"between {config.initial_quality} and {config.min_quality}: {last_error}"
            ) from last_error

        if accepted.byte_length > config.max_primary_bytes:
            logger.warning(
                f"[{filename}] {accepted.byte_length} bytes at quality floor "
                f"{accepted.quality:.2f} exceeds budget of {config.max_primary_bytes} bytes"
            )
        return accepted, attempted

    def _encode_thumbnail(
        self,
        source: Image.Image,
        config: TranscodeConfig,
        filename: str,
        mime_type: str,
        intermediates: ExitStack,
    ) -> EncodedImage:
        """Resample the decoded source and encode it once at thumbnail_quality."""
        size = fit_dimensions(source.width, source.height, config.thumbnail_max_dimension)
        small = _track(resample(source, size), source, intermediates)

        try:
            data = self._encoder.encode(small, config.thumbnail_quality, config.output_format)
        except ENCODER_ERRORS as exc:
            raise EncodeError(f"Could not encode thumbnail {filename}: {exc}") from exc
        if not data:
            raise EncodeError(f"Could not encode thumbnail {filename}: encoder returned no data")

        return EncodedImage(
            data=data,
            mime_type=mime_type,
            filename=filename,
            width=small.width,
            height=small.height,
            quality=config.thumbnail_quality,
        )


def transcode(
    source_bytes: bytes,
    filename_hint: str,
    config: Optional[TranscodeConfig] = None,
) -> TranscodeResult:
    """Transcode one image with the default Pillow encoder."""
    return ImageTranscoder().transcode(source_bytes, filename_hint, config)
