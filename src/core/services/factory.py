"""Builds the ImageService once per Lambda container."""

from functools import lru_cache

from aws_lambda_powertools import Logger

from core.config import ImageServiceSettings
from core.infrastructure.aws.dynamodb_catalog import DynamoDBImageCatalog
from core.infrastructure.aws.s3_blob_store import S3BlobStore
from core.infrastructure.cloudinary.cloudinary_mirror import CloudinaryMirror
from core.services.image_service import ImageService

logger = Logger(UTC=True)


def build_image_service(settings: ImageServiceSettings) -> ImageService:
    """Wire the concrete backends selected by ``settings``."""
    mirror = CloudinaryMirror(settings) if settings.mirror_enabled else None

    logger.info(
        "Image service configured",
        extra={
            "bucket": settings.bucket_name,
            "table": settings.table_name,
            "mirror_enabled": mirror is not None,
            "naming_policy": settings.naming_policy,
            "duplicate_name_policy": settings.duplicate_name_policy,
            "missing_image_policy": settings.missing_image_policy,
        },
    )

    return ImageService(
        settings,
        blob_store=S3BlobStore(settings),
        catalog=DynamoDBImageCatalog(settings),
        mirror=mirror,
    )


@lru_cache(maxsize=1)
def get_image_service() -> ImageService:
    """Container-wide service built from the environment."""
    return build_image_service(ImageServiceSettings.from_env())
