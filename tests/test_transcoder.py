"""Tests for the ImageTranscoder pipeline."""

import io
from unittest.mock import Mock, patch

import pytest
from PIL import Image

from photo_transcoder.core.codec import resample
from photo_transcoder.core.exceptions import ConfigurationError, DecodeError, EncodeError
from photo_transcoder.core.image_utils import max_quality_attempts
from photo_transcoder.core.models import KILOBYTE, MEGABYTE, TranscodeConfig
from photo_transcoder.core.observability import MetricsCollector
from photo_transcoder.core.transcoder import ImageTranscoder, transcode
from photo_transcoder.testing.fakes import (
    RecordingEncoder,
    create_noise_image,
    create_test_image,
)

DEFAULT_QUALITIES = [0.85, 0.8, 0.75, 0.7, 0.65, 0.6, 0.55, 0.5]


def _decode(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def _truncated_jpeg() -> bytes:
    data = create_test_image(400, 300)
    return data[: len(data) // 2]


class TestPrimaryDimensions:
    """Tests for dimension fitting of the primary image."""

    def test_large_landscape_scaled_to_max_dimension(self):
        """Test 4000x2000 source becomes 2000x1000 with a single encode attempt."""
        encoder = RecordingEncoder(size_for=lambda q: 500 * KILOBYTE)

        result = ImageTranscoder(encoder=encoder).transcode(
            create_test_image(4000, 2000), "cake.jpg"
        )

        assert (result.primary.width, result.primary.height) == (2000, 1000)
        assert encoder.qualities[0] == 0.85
        assert result.attempted_qualities == [0.85]
        assert result.source_width == 4000
        assert result.source_height == 2000

    def test_small_image_not_upscaled(self):
        """Test 200x150 source keeps its dimensions."""
        encoder = RecordingEncoder()

        result = ImageTranscoder(encoder=encoder).transcode(
            create_test_image(200, 150), "small.jpg"
        )

        assert (result.primary.width, result.primary.height) == (200, 150)
        assert encoder.sizes == [(200, 150)]

    def test_portrait_scaled_on_height(self):
        """Test tall images are limited on their height."""
        encoder = RecordingEncoder()

        result = ImageTranscoder(encoder=encoder).transcode(
            create_test_image(1500, 3000), "tall.jpg"
        )

        assert (result.primary.width, result.primary.height) == (1000, 2000)

    @pytest.mark.parametrize(
        "width,height",
        [(3001, 1000), (2500, 1234), (1999, 2001), (2400, 2400)],
    )
    def test_aspect_ratio_preserved(self, width, height):
        """Test primary aspect ratio matches the source within one pixel of rounding."""
        result = ImageTranscoder(encoder=RecordingEncoder()).transcode(
            create_test_image(width, height), "ratio.jpg"
        )

        primary = result.primary
        assert max(primary.width, primary.height) == 2000
        # one pixel of rounding on the shorter side
        tolerance = max(primary.width, primary.height) / min(primary.width, primary.height) ** 2
        assert abs(primary.width / primary.height - width / height) <= tolerance

    def test_custom_max_dimension(self):
        """Test max_dimension from the config is honoured."""
        config = TranscodeConfig(max_dimension=500)

        result = ImageTranscoder(encoder=RecordingEncoder()).transcode(
            create_test_image(1000, 800), "cake.jpg", config
        )

        assert (result.primary.width, result.primary.height) == (500, 400)


class TestQualitySearch:
    """Tests for the iterative quality search."""

    def test_stops_at_first_quality_within_budget(self):
        """Test search stops as soon as an encoding fits the budget."""
        encoder = RecordingEncoder(size_for=lambda q: 2 * MEGABYTE if q > 0.7 else 500 * KILOBYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(300, 200), "cake.jpg")

        assert result.attempted_qualities == [0.85, 0.8, 0.75, 0.7]
        assert result.primary.quality == 0.7
        assert result.primary.byte_length == 500 * KILOBYTE

    def test_never_under_budget_returns_floor_encoding(self):
        """Test a source that never fits is attempted 8 times and returned at quality 0.5."""
        encoder = RecordingEncoder(size_for=lambda q: 2 * MEGABYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(300, 200), "noisy.png")

        assert result.attempted_qualities == DEFAULT_QUALITIES
        assert len(result.attempted_qualities) == max_quality_attempts(0.85, 0.05, 0.5) == 8
        assert result.primary.quality == 0.5
        assert result.primary.byte_length == 2 * MEGABYTE

    def test_qualities_strictly_decreasing_and_bounded(self):
        """Test attempted qualities decrease strictly and stay within the attempt bound."""
        config = TranscodeConfig(initial_quality=0.9, quality_step=0.07, min_quality=0.3)
        encoder = RecordingEncoder(size_for=lambda q: 2 * MEGABYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(100, 100), "a.jpg", config)

        qualities = result.attempted_qualities
        assert all(a > b for a, b in zip(qualities, qualities[1:]))
        assert len(qualities) <= max_quality_attempts(0.9, 0.07, 0.3)
        assert min(qualities) >= 0.3
        assert result.primary.quality == qualities[-1]

    def test_each_attempt_encodes_the_same_resampled_image(self):
        """Test every attempt re-encodes the resampled buffer, not the previous output."""
        seen = []

        class ImageCapturingEncoder(RecordingEncoder):
            def encode(self, image, quality, image_format):
                seen.append(image)
                return super().encode(image, quality, image_format)

        encoder = ImageCapturingEncoder(size_for=lambda q: 2 * MEGABYTE)
        config = TranscodeConfig(thumbnail_threshold_bytes=3 * MEGABYTE)

        ImageTranscoder(encoder=encoder).transcode(create_test_image(2400, 1200), "a.jpg", config)

        assert len(seen) == 8
        assert all(image is seen[0] for image in seen)
        assert seen[0].size == (2000, 1000)

    def test_failed_attempt_is_skipped(self):
        """Test an encoder failure at one quality moves on to the next quality."""
        encoder = RecordingEncoder(fail_qualities=(0.85,))

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(100, 100), "a.jpg")

        assert result.attempted_qualities == [0.85, 0.8]
        assert result.primary.quality == 0.8

    def test_failed_attempt_after_oversized_result_keeps_last_success(self):
        """Test the last successful encoding is returned when later attempts fail."""
        encoder = RecordingEncoder(
            size_for=lambda q: 2 * MEGABYTE,
            fail_qualities=(0.55, 0.5),
        )
        config = TranscodeConfig(thumbnail_threshold_bytes=3 * MEGABYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(100, 100), "a.jpg", config)

        assert result.primary.quality == 0.6
        assert len(result.attempted_qualities) == 8

    def test_encoder_failing_everywhere_raises_encode_error(self):
        """Test EncodeError when no attempt produced output."""
        encoder = RecordingEncoder(fail_always=True)

        with pytest.raises(EncodeError, match="at any quality"):
            ImageTranscoder(encoder=encoder).transcode(create_test_image(100, 100), "a.jpg")

        assert encoder.qualities == DEFAULT_QUALITIES

    def test_empty_encoder_output_counts_as_failure(self):
        """Test an encoder returning no bytes is treated as a failed attempt."""
        encoder = RecordingEncoder(size_for=lambda q: 0)

        with pytest.raises(EncodeError):
            ImageTranscoder(encoder=encoder).transcode(create_test_image(100, 100), "a.jpg")


class TestThumbnail:
    """Tests for thumbnail derivation."""

    def test_thumbnail_present_above_threshold(self):
        """Test a 300KB primary gets a thumbnail with longest side 300px."""
        encoder = RecordingEncoder(size_for=lambda q: 300 * KILOBYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(4000, 2000), "cake.jpg")

        thumbnail = result.thumbnail
        assert thumbnail is not None
        assert (thumbnail.width, thumbnail.height) == (300, 150)
        assert thumbnail.quality == 0.7
        assert thumbnail.filename == "cake_thumb.webp"
        assert thumbnail.mime_type == "image/webp"
        # one primary attempt, one thumbnail encode
        assert encoder.qualities == [0.85, 0.7]

    def test_thumbnail_absent_below_threshold(self):
        """Test a 200KB primary gets no thumbnail."""
        encoder = RecordingEncoder(size_for=lambda q: 200 * KILOBYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(4000, 2000), "cake.jpg")

        assert result.thumbnail is None
        assert encoder.qualities == [0.85]

    def test_thumbnail_absent_at_exact_threshold(self):
        """Test a primary exactly at the threshold gets no thumbnail."""
        encoder = RecordingEncoder(size_for=lambda q: 256 * KILOBYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(400, 400), "cake.jpg")

        assert result.thumbnail is None

    def test_thumbnail_follows_final_primary_size(self):
        """Test thumbnail presence depends on the accepted primary, not earlier attempts."""
        encoder = RecordingEncoder(size_for=lambda q: 2 * MEGABYTE if q > 0.8 else 100 * KILOBYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(400, 400), "cake.jpg")

        assert result.primary.byte_length == 100 * KILOBYTE
        assert result.thumbnail is None

    def test_thumbnail_resampled_from_source(self):
        """Test the thumbnail is resampled from the decoded source, not the primary."""
        encoder = RecordingEncoder(size_for=lambda q: 300 * KILOBYTE)

        with patch("photo_transcoder.core.transcoder.resample", wraps=resample) as spy:
            ImageTranscoder(encoder=encoder).transcode(create_test_image(4000, 2000), "cake.jpg")

        assert spy.call_count == 2
        thumbnail_source, thumbnail_size = spy.call_args_list[1][0]
        assert thumbnail_source.size == (4000, 2000)
        assert tuple(thumbnail_size) == (300, 150)

    def test_thumbnail_of_small_source_not_upscaled(self):
        """Test a source smaller than the thumbnail limit keeps its size."""
        encoder = RecordingEncoder(size_for=lambda q: 2 * MEGABYTE)

        result = ImageTranscoder(encoder=encoder).transcode(create_test_image(200, 150), "tiny.jpg")

        assert (result.thumbnail.width, result.thumbnail.height) == (200, 150)

    def test_thumbnail_encode_failure_raises(self):
        """Test a failed thumbnail encode raises instead of returning a partial result."""
        encoder = RecordingEncoder(size_for=lambda q: 2 * MEGABYTE, fail_qualities=(0.7,))

        with pytest.raises(EncodeError, match="thumbnail"):
            ImageTranscoder(encoder=encoder).transcode(create_test_image(500, 500), "cake.jpg")


class TestDecodeErrors:
    """Tests for malformed input."""

    @pytest.mark.parametrize("data", [b"", b"not an image at all", b"\x89PNG\r\n\x1a\n"])
    def test_malformed_bytes_raise_decode_error(self, data):
        """Test malformed or empty input raises DecodeError."""
        encoder = RecordingEncoder()

        with pytest.raises(DecodeError):
            ImageTranscoder(encoder=encoder).transcode(data, "broken.jpg")

        assert encoder.calls == []

    def test_truncated_image_raises_decode_error(self):
        """Test truncated image data raises DecodeError."""
        data = _truncated_jpeg()

        with pytest.raises(DecodeError):
            ImageTranscoder(encoder=RecordingEncoder()).transcode(data, "truncated.jpg")


class TestResourceRelease:
    """Tests that decoded images are closed on every exit path."""

    @pytest.fixture
    def opened_images(self):
        opened = []
        real_open = Image.open

        def tracking_open(fp, *args, **kwargs):
            image = real_open(fp, *args, **kwargs)
            image.close = Mock(wraps=image.close)
            opened.append(image)
            return image

        with patch("photo_transcoder.core.codec.Image.open", side_effect=tracking_open):
            yield opened

    def test_closed_after_success(self, opened_images):
        """Test the decoded image is closed after a successful transcode."""
        ImageTranscoder(encoder=RecordingEncoder()).transcode(create_test_image(100, 100), "a.jpg")

        assert len(opened_images) == 1
        opened_images[0].close.assert_called_once()

    def test_closed_after_encode_error(self, opened_images):
        """Test the decoded image is closed when encoding fails."""
        with pytest.raises(EncodeError):
            ImageTranscoder(encoder=RecordingEncoder(fail_always=True)).transcode(
                create_test_image(100, 100), "a.jpg"
            )

        opened_images[0].close.assert_called_once()

    def test_closed_after_decode_error(self, opened_images):
        """Test a partially decoded image is closed when loading fails."""
        with pytest.raises(DecodeError):
            ImageTranscoder(encoder=RecordingEncoder()).transcode(
                _truncated_jpeg(), "a.jpg"
            )

        assert len(opened_images) == 1
        opened_images[0].close.assert_called_once()

    def test_no_partial_result_on_decode_error(self, opened_images):
        """Test unidentifiable bytes open nothing and return nothing."""
        result = None
        with pytest.raises(DecodeError):
            result = ImageTranscoder(encoder=RecordingEncoder()).transcode(b"garbage", "a.jpg")

        assert result is None
        assert opened_images == []


class TestOutputs:
    """Tests for output naming, formats and the real WebP encoder."""

    def test_output_filename_replaces_extension(self):
        """Test primary filename gets the .webp extension."""
        result = ImageTranscoder(encoder=RecordingEncoder()).transcode(
            create_test_image(50, 50), "My Cake.final.JPG"
        )

        assert result.primary.filename == "My Cake.final.webp"
        assert result.primary.mime_type == "image/webp"

    def test_real_encoder_produces_webp(self):
        """Test the default encoder writes decodable WebP of the target size."""
        result = transcode(create_test_image(4000, 2000), "cake.jpg")

        decoded = _decode(result.primary.data)
        assert decoded.format == "WEBP"
        assert decoded.size == (2000, 1000)
        assert result.primary.byte_length <= MEGABYTE
        assert result.attempted_qualities == [0.85]

    def test_real_encoder_high_entropy_reaches_floor(self):
        """Test noise that cannot fit a tiny budget is returned at the quality floor."""
        config = TranscodeConfig(max_primary_bytes=1000, thumbnail_threshold_bytes=1000)

        result = transcode(create_noise_image(400, 300), "noise.png", config)

        assert result.attempted_qualities == DEFAULT_QUALITIES
        assert result.primary.quality == 0.5
        assert result.primary.byte_length > 1000
        assert result.thumbnail is not None
        thumbnail = _decode(result.thumbnail.data)
        assert thumbnail.format == "WEBP"
        assert thumbnail.size == (300, 225)

    def test_jpeg_output_format(self):
        """Test JPEG can be selected as output format."""
        config = TranscodeConfig(output_format="JPEG")

        result = transcode(create_test_image(120, 80, mode="RGBA", image_format="PNG"), "a.png", config)

        assert result.primary.filename == "a.jpg"
        assert result.primary.mime_type == "image/jpeg"
        assert _decode(result.primary.data).format == "JPEG"

    def test_unsupported_output_format(self):
        """Test an unsupported output format raises ConfigurationError."""
        config = TranscodeConfig(output_format="PNG")

        with pytest.raises(ConfigurationError, match="Unsupported output format"):
            transcode(create_test_image(50, 50), "a.jpg", config)

    def test_alpha_channel_kept(self):
        """Test transparent PNG input keeps its alpha channel in WebP."""
        result = transcode(create_test_image(120, 80, mode="RGBA", image_format="PNG"), "a.png")

        assert _decode(result.primary.data).mode == "RGBA"

    def test_grayscale_converted_to_rgb(self):
        """Test grayscale input is encoded as RGB."""
        result = transcode(create_test_image(120, 80, mode="L", image_format="PNG"), "a.png")

        assert _decode(result.primary.data).mode == "RGB"

    def test_exif_orientation_applied(self):
        """Test a photo stored sideways with an orientation tag comes out upright."""
        image = Image.new("RGB", (400, 200), "red")
        exif = Image.Exif()
        exif[0x0112] = 6
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", exif=exif)

        result = ImageTranscoder(encoder=RecordingEncoder()).transcode(buffer.getvalue(), "sideways.jpg")

        assert (result.primary.width, result.primary.height) == (200, 400)
        assert (result.source_width, result.source_height) == (200, 400)

    def test_metrics_recorded(self):
        """Test a transcode metric is recorded for success and failure."""
        metrics = MetricsCollector()
        transcoder = ImageTranscoder(encoder=RecordingEncoder(), metrics_collector=metrics)

        transcoder.transcode(create_test_image(50, 50), "ok.jpg")
        with pytest.raises(DecodeError):
            transcoder.transcode(b"bad", "bad.jpg")

        summary = metrics.get_summary("transcode")
        assert summary["total_operations"] == 2
        assert summary["successful_operations"] == 1
        assert metrics.get_metrics("transcode")[1].metadata == {"filename": "bad.jpg"}

    def test_repeated_calls_are_independent(self):
        """Test the transcoder keeps no state between calls."""
        transcoder = ImageTranscoder(encoder=RecordingEncoder())
        data = create_test_image(2500, 1000)

        first = transcoder.transcode(data, "a.jpg")
        second = transcoder.transcode(data, "a.jpg")

        assert (first.primary.width, first.primary.height) == (second.primary.width, second.primary.height)
        assert first.attempted_qualities == second.attempted_qualities
