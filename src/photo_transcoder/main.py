"""Main module for the photo-transcoder CLI."""

import sys
import argparse
from typing import List, Optional

from pydantic import ValidationError

from . import __version__
from .commands import run_transcode, run_upload
from .core import ConfigurationError, TranscodeConfig, UploadConfig, get_logger
from .core.logging_config import set_debug_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with the transcode, upload and version subcommands."""
    parser = argparse.ArgumentParser(
        prog="photo-transcoder",
        description="Photo Transcoder - resize, compress and thumbnail photos before upload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Transcode photos into ./out with default limits (2000px, 1MB)
  photo-transcoder transcode cake1.jpg cake2.png --output-dir out

  # Transcode and upload to S3, second photo as the main image
  photo-transcoder upload cake1.jpg cake2.png --bucket my-bucket \\
                          --owner-id user-123 --main-index 1

  # Show version
  photo-transcoder version
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    limits = argparse.ArgumentParser(add_help=False)
    limits.add_argument("--max-dimension", type=int, default=2000, help="Longest side of the primary image in pixels")
    limits.add_argument("--max-bytes", type=int, default=1024 * 1024, help="Byte budget of the primary image")
    limits.add_argument(
        "--thumbnail-threshold", type=int, default=256 * 1024, help="Primary size above which a thumbnail is made"
    )
    limits.add_argument(
        "--thumbnail-max-dimension", type=int, default=300, help="Longest side of the thumbnail in pixels"
    )
    limits.add_argument("--debug", action="store_true", help="Enable debug logging")

    transcode_parser = subparsers.add_parser(
        "transcode", parents=[limits], help="Transcode local photos into an output directory"
    )
    transcode_parser.add_argument("files", nargs="+", help="Image files to transcode")
    transcode_parser.add_argument("--output-dir", required=True, help="Directory for the transcoded files")

    upload_parser = subparsers.add_parser(
        "upload", parents=[limits], help="Transcode local photos and upload them to S3"
    )
    upload_parser.add_argument("files", nargs="+", help="Image files to upload")
    upload_parser.add_argument("--bucket", required=True, help="Destination S3 bucket")
    upload_parser.add_argument("--owner-id", required=True, help="Owner of the uploaded images")
    upload_parser.add_argument("--prefix", default="cakes", help="Key prefix (default: cakes)")
    upload_parser.add_argument("--main-index", type=int, default=0, help="Index of the main image")
    upload_parser.add_argument("--max-images", type=int, default=5, help="Maximum number of images per upload")
    upload_parser.add_argument("--public-url-base", default=None, help="Base URL for stored objects")

    subparsers.add_parser("version", help="Show version information")
    return parser


def transcode_config_from_args(args: argparse.Namespace) -> TranscodeConfig:
    """Build a TranscodeConfig from the shared limit flags."""
    try:
        return TranscodeConfig(
            max_dimension=args.max_dimension,
            max_primary_bytes=args.max_bytes,
            thumbnail_threshold_bytes=args.thumbnail_threshold,
            thumbnail_max_dimension=args.thumbnail_max_dimension,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid transcode options: {e}") from e


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the photo-transcoder command-line interface.

    Exits with status 1 when any file fails or the options are invalid.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = get_logger("cli")

    if args.command == "version":
        print("Photo Transcoder CLI")
        print(f"Version {__version__}")
        print("Size-budgeted photo transcoding and upload")
        sys.exit(0)
        return

    if args.command not in ("transcode", "upload"):
        parser.print_help()
        sys.exit(1)
        return

    if args.debug:
        set_debug_logging()

    try:
        config = transcode_config_from_args(args)

        if args.command == "transcode":
            failed = run_transcode(args.files, args.output_dir, config)
        else:
            try:
                upload_config = UploadConfig(
                    bucket=args.bucket,
                    owner_id=args.owner_id,
                    key_prefix=args.prefix,
                    max_images=args.max_images,
                    public_url_base=args.public_url_base,
                    transcode=config,
                )
            except ValidationError as e:
                raise ConfigurationError(f"Invalid upload options: {e}") from e
            results = run_upload(args.files, upload_config, main_index=args.main_index, debug=args.debug)
            failed = sum(1 for r in results if not r.success)

    except KeyboardInterrupt:
        logger.warning("Processing interrupted by user.")
        sys.exit(130)
        return
    except Exception as e:
        logger.error(f"Processing failed: {e}", exc_info=True)
        sys.exit(1)
        return

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
