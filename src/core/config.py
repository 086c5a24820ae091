"""Runtime configuration for the image service.

All settings are read from the environment once per Lambda container and
passed explicitly into the infrastructure classes and ``ImageService``.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.utils.constants import (
    DEFAULT_BLOB_RETRY_ATTEMPTS,
    DEFAULT_BLOB_RETRY_BACKOFF_SECONDS,
    DEFAULT_CLOUDINARY_FOLDER,
    DEFAULT_MIRROR_COOLDOWN_SECONDS,
    DEFAULT_MIRROR_FAILURE_THRESHOLD,
    DEFAULT_MIRROR_TIMEOUT_SECONDS,
    DEFAULT_MIRROR_UPLOAD_TIMEOUT_SECONDS,
    DUPLICATE_POLICY_REJECT,
    ENV_AWS_ENDPOINT_URL,
    ENV_AWS_REGION,
    ENV_BLOB_RETRY_ATTEMPTS,
    ENV_BLOB_RETRY_BACKOFF_SECONDS,
    ENV_CLOUDINARY_API_KEY,
    ENV_CLOUDINARY_API_SECRET,
    ENV_CLOUDINARY_CLOUD_NAME,
    ENV_CLOUDINARY_FOLDER,
    ENV_DUPLICATE_NAME_POLICY,
    ENV_FALLBACK_IMAGE_PATH,
    ENV_IMAGE_METADATA_TABLE_NAME,
    ENV_IMAGE_NAMING_POLICY,
    ENV_IMAGE_S3_BUCKET_NAME,
    ENV_MAX_FILE_SIZE,
    ENV_MIRROR_COOLDOWN_SECONDS,
    ENV_MIRROR_ENABLED,
    ENV_MIRROR_FAILURE_THRESHOLD,
    ENV_MIRROR_TIMEOUT_SECONDS,
    ENV_MIRROR_UPLOAD_TIMEOUT_SECONDS,
    ENV_MISSING_IMAGE_POLICY,
    ENV_PUBLIC_IMAGE_PATH_PREFIX,
    MAX_FILE_SIZE,
    MISSING_IMAGE_POLICY_FALLBACK,
    NAMING_POLICY_RANDOM,
    PUBLIC_IMAGE_PATH_PREFIX,
)

DEFAULT_FALLBACK_IMAGE_PATH = Path(__file__).resolve().parent / "assets" / "fallback.png"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


class ImageServiceSettings(BaseModel):
    """Explicit configuration for the storage backends and service policies."""

    model_config = ConfigDict(frozen=True)

    # Blob store (S3)
    bucket_name: str = Field(..., min_length=1)
    aws_region: str | None = None
    aws_endpoint_url: str | None = None
    blob_retry_attempts: int = Field(DEFAULT_BLOB_RETRY_ATTEMPTS, ge=0, le=5)
    blob_retry_backoff_seconds: float = Field(DEFAULT_BLOB_RETRY_BACKOFF_SECONDS, ge=0)

    # Catalog (DynamoDB)
    table_name: str = Field(..., min_length=1)

    # External mirror (Cloudinary)
    mirror_enabled: bool = False
    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None
    cloudinary_folder: str = DEFAULT_CLOUDINARY_FOLDER
    mirror_timeout_seconds: float = Field(DEFAULT_MIRROR_TIMEOUT_SECONDS, gt=0)
    mirror_upload_timeout_seconds: float = Field(DEFAULT_MIRROR_UPLOAD_TIMEOUT_SECONDS, gt=0)
    mirror_failure_threshold: int = Field(DEFAULT_MIRROR_FAILURE_THRESHOLD, ge=1)
    mirror_cooldown_seconds: float = Field(DEFAULT_MIRROR_COOLDOWN_SECONDS, ge=0)

    # Policies
    naming_policy: Literal["random", "original"] = NAMING_POLICY_RANDOM
    duplicate_name_policy: Literal["reject", "overwrite"] = DUPLICATE_POLICY_REJECT
    missing_image_policy: Literal["fallback", "not_found"] = MISSING_IMAGE_POLICY_FALLBACK
    max_file_size: int = Field(MAX_FILE_SIZE, gt=0)

    fallback_image_path: Path = DEFAULT_FALLBACK_IMAGE_PATH
    public_path_prefix: str = PUBLIC_IMAGE_PATH_PREFIX

    @model_validator(mode="after")
    def _mirror_needs_cloud_name(self) -> "ImageServiceSettings":
        if self.mirror_enabled and not self.cloudinary_cloud_name:
            raise ValueError(f"{ENV_CLOUDINARY_CLOUD_NAME} is required when the mirror is enabled")
        return self

    @classmethod
    def from_env(cls) -> "ImageServiceSettings":
        """Build settings from environment variables.

        Raises:
            RuntimeError: If a required variable is missing
        """
        bucket_name = os.getenv(ENV_IMAGE_S3_BUCKET_NAME)
        if not bucket_name:
            raise RuntimeError(f"{ENV_IMAGE_S3_BUCKET_NAME} environment variable is not set")

        table_name = os.getenv(ENV_IMAGE_METADATA_TABLE_NAME)
        if not table_name:
            raise RuntimeError(f"{ENV_IMAGE_METADATA_TABLE_NAME} environment variable is not set")

        cloud_name = os.getenv(ENV_CLOUDINARY_CLOUD_NAME) or None

        return cls(
            bucket_name=bucket_name,
            table_name=table_name,
            aws_region=os.getenv(ENV_AWS_REGION),
            aws_endpoint_url=os.getenv(ENV_AWS_ENDPOINT_URL),
            blob_retry_attempts=int(
                os.getenv(ENV_BLOB_RETRY_ATTEMPTS, str(DEFAULT_BLOB_RETRY_ATTEMPTS))
            ),
            blob_retry_backoff_seconds=float(
                os.getenv(ENV_BLOB_RETRY_BACKOFF_SECONDS, str(DEFAULT_BLOB_RETRY_BACKOFF_SECONDS))
            ),
            mirror_enabled=_env_bool(ENV_MIRROR_ENABLED, default=bool(cloud_name)),
            cloudinary_cloud_name=cloud_name,
            cloudinary_api_key=os.getenv(ENV_CLOUDINARY_API_KEY) or None,
            cloudinary_api_secret=os.getenv(ENV_CLOUDINARY_API_SECRET) or None,
            cloudinary_folder=os.getenv(ENV_CLOUDINARY_FOLDER) or DEFAULT_CLOUDINARY_FOLDER,
            mirror_timeout_seconds=float(
                os.getenv(ENV_MIRROR_TIMEOUT_SECONDS, str(DEFAULT_MIRROR_TIMEOUT_SECONDS))
            ),
            mirror_upload_timeout_seconds=float(
                os.getenv(
                    ENV_MIRROR_UPLOAD_TIMEOUT_SECONDS,
                    str(DEFAULT_MIRROR_UPLOAD_TIMEOUT_SECONDS),
                )
            ),
            mirror_failure_threshold=int(
                os.getenv(ENV_MIRROR_FAILURE_THRESHOLD, str(DEFAULT_MIRROR_FAILURE_THRESHOLD))
            ),
            mirror_cooldown_seconds=float(
                os.getenv(ENV_MIRROR_COOLDOWN_SECONDS, str(DEFAULT_MIRROR_COOLDOWN_SECONDS))
            ),
            naming_policy=os.getenv(ENV_IMAGE_NAMING_POLICY) or NAMING_POLICY_RANDOM,
            duplicate_name_policy=os.getenv(ENV_DUPLICATE_NAME_POLICY) or DUPLICATE_POLICY_REJECT,
            missing_image_policy=os.getenv(ENV_MISSING_IMAGE_POLICY) or MISSING_IMAGE_POLICY_FALLBACK,
            max_file_size=int(os.getenv(ENV_MAX_FILE_SIZE, str(MAX_FILE_SIZE))),
            fallback_image_path=Path(
                os.getenv(ENV_FALLBACK_IMAGE_PATH) or DEFAULT_FALLBACK_IMAGE_PATH
            ),
            public_path_prefix=os.getenv(ENV_PUBLIC_IMAGE_PATH_PREFIX) or PUBLIC_IMAGE_PATH_PREFIX,
        )
