#!/usr/bin/env python3
"""
Import a directory of local images into the image service.

Files are stored under their own (sanitised) names so that existing product
references such as ``/images/shoe.jpg`` resolve. Names already present in the
catalog or the blob store are skipped.

Run:
    IMAGE_S3_BUCKET_NAME=... IMAGE_METADATA_TABLE_NAME=... \
      python seed/import_local_images.py --source ./uploads
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path

from aws_lambda_powertools import Logger

from core.config import ImageServiceSettings
from core.models.errors import ImageServiceError
from core.services.factory import build_image_service
from core.services.image_service import ImageService
from core.utils.constants import ALLOWED_EXTENSIONS, NAMING_POLICY_ORIGINAL
from core.utils.mime import detect_mime_type
from core.utils.naming import canonical_name

logger = Logger(service="seed")


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    failed: int = 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import local images into the image service")

    parser.add_argument(
        "--source",
        type=Path,
        required=True,
        help="Directory containing the images to import",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Import at most this many files",
    )
    parser.add_argument(
        "--wait-seconds",
        type=float,
        default=60.0,
        help="How long to wait for mirror uploads before exiting",
    )

    return parser.parse_args(argv)


def iter_image_files(source: Path) -> list[Path]:
    return sorted(
        path
        for path in source.iterdir()
        if path.is_file() and path.suffix.lower().lstrip(".") in ALLOWED_EXTENSIONS
    )


def import_images(service: ImageService, files: list[Path]) -> ImportSummary:
    summary = ImportSummary()

    for path in files:
        content = path.read_bytes()

        try:
            name = canonical_name(
                policy=NAMING_POLICY_ORIGINAL,
                original_filename=path.name,
                mime_type=detect_mime_type(content),
            )
        except (ValueError, ImageServiceError):
            logger.warning("Skipping unsupported file", extra={"path": str(path)})
            summary.skipped += 1
            continue

        try:
            if service.image_exists(name):
                logger.info("Image already present, skipping", extra={"image_name": name})
                summary.skipped += 1
                continue

            uploaded = service.upload(content=content, original_filename=path.name)
        except ImageServiceError as exc:
            logger.error(
                "Import failed",
                extra={"path": str(path), "error": exc.message, "error_code": exc.error_code},
            )
            summary.failed += 1
            continue

        logger.info("Image imported", extra={"image_name": name, "url": uploaded.url})
        summary.imported += 1

    return summary


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if not args.source.is_dir():
        logger.error("Source directory not found", extra={"source": str(args.source)})
        return 1

    settings = ImageServiceSettings.from_env().model_copy(
        update={"naming_policy": NAMING_POLICY_ORIGINAL}
    )
    service = build_image_service(settings)

    files = iter_image_files(args.source)
    if args.limit is not None:
        files = files[: args.limit]

    summary = import_images(service, files)

    finished = service.wait_for_mirror_tasks(timeout=args.wait_seconds)
    if not finished:
        logger.warning("Some mirror uploads were still running at exit")
    service.shutdown(wait_for_tasks=finished)

    logger.info(
        "Import finished",
        extra={
            "imported": summary.imported,
            "skipped": summary.skipped,
            "failed": summary.failed,
        },
    )
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
