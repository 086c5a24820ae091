"""Global constants used throughout the application.

This module centralizes all magic numbers, string literals, and configuration
values that are used across multiple modules. Using constants prevents hardcoding
values and makes it easy to change them globally.
"""

from typing import Final

# ============================================================================
# Error Codes
# ============================================================================


# Validation Errors
ERROR_CODE_VALIDATION_FAILED = "VALIDATION_FAILED"
ERROR_CODE_UNSUPPORTED_MIME_TYPE = "UNSUPPORTED_MIME_TYPE"
ERROR_CODE_FILE_SIZE_EXCEEDED = "FILE_SIZE_EXCEEDED"
ERROR_CODE_MISSING_FILE = "MISSING_FILE"
ERROR_CODE_INVALID_NAME = "INVALID_NAME"

# Auth Errors
ERROR_CODE_UNAUTHENTICATED = "UNAUTHENTICATED"

# Not Found Errors
ERROR_CODE_RESOURCE_NOT_FOUND = "NOT_FOUND"
ERROR_CODE_IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"

# Blob Store Errors
ERROR_CODE_STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
ERROR_CODE_DUPLICATE_NAME = "DUPLICATE_NAME"
ERROR_CODE_IMAGE_UPLOAD_FAILED = "IMAGE_UPLOAD_FAILED"
ERROR_CODE_IMAGE_DELETE_FAILED = "IMAGE_DELETE_FAILED"

# Mirror Errors
ERROR_CODE_MIRROR_FAILED = "MIRROR_FAILED"

# Catalog / DynamoDB Errors
ERROR_CODE_CATALOG = "CATALOG_ERROR"
ERROR_CODE_METADATA_OPERATION_FAILED = "METADATA_OPERATION_FAILED"
ERROR_CODE_METADATA_CREATE_FAILED = "METADATA_CREATE_FAILED"
ERROR_CODE_METADATA_FETCH_FAILED = "METADATA_FETCH_FAILED"
ERROR_CODE_METADATA_UPDATE_FAILED = "METADATA_UPDATE_FAILED"
ERROR_CODE_METADATA_DELETE_FAILED = "METADATA_DELETE_FAILED"
ERROR_CODE_METADATA_LIST_FAILED = "METADATA_LIST_FAILED"
ERROR_CODE_METADATA_INVALID_FORMAT = "METADATA_INVALID_FORMAT"


# ============================================================================
# File Upload Constraints
# ============================================================================

MAX_FILE_SIZE = 4 * 1024 * 1024  # 4MB in bytes
UPLOAD_FIELD_NAME = "image"
CAPTION_FIELD_NAME = "caption"
MAX_CAPTION_LENGTH = 500
MAX_FILENAME_LENGTH = 255
STREAM_CHUNK_SIZE = 64 * 1024


MIME_TYPE_EXTENSION_MAP: Final[dict[str, tuple[str, ...]]] = {
    "image/jpeg": ("jpg", "jpeg"),
    "image/png": ("png",),
    "image/gif": ("gif",),
    "image/webp": ("webp",),
}

ALLOWED_EXTENSIONS: Final[frozenset[str]] = frozenset(
    ext for extensions in MIME_TYPE_EXTENSION_MAP.values() for ext in extensions
)

EXTENSION_MIME_TYPE_MAP: Final[dict[str, str]] = {
    ext: mime for mime, extensions in MIME_TYPE_EXTENSION_MAP.items() for ext in extensions
}

DEFAULT_BINARY_CONTENT_TYPE = "application/octet-stream"


# ============================================================================
# Storage Layout
# ============================================================================

BLOB_KEY_PREFIX = "images/"
IMAGE_ID_PREFIX = "img_"
CATALOG_NAME_INDEX = "name-index"
PUBLIC_IMAGE_PATH_PREFIX = "/images"

MIRROR_STATUS_PENDING = "pending"
MIRROR_STATUS_SYNCED = "synced"
MIRROR_STATUS_FAILED = "failed"
MIRROR_STATUS_DISABLED = "disabled"

IMAGE_SOURCE_MIRROR = "mirror"
IMAGE_SOURCE_BLOB = "blob"
IMAGE_SOURCE_FALLBACK = "fallback"

NOT_FOUND_ERROR_CODES: Final[frozenset[str]] = frozenset({"NoSuchKey", "404", "NotFound"})

# Conditional put (If-None-Match: *) refused because the key exists or is being written
KEY_EXISTS_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {"PreconditionFailed", "412", "ConditionalRequestConflict"}
)


# ============================================================================
# Mirror (Cloudinary) Defaults
# ============================================================================

CLOUDINARY_DELIVERY_URL = "https://res.cloudinary.com/{cloud_name}/image/upload/{public_id}"
DEFAULT_CLOUDINARY_FOLDER = "website_uploads"
DEFAULT_MIRROR_TIMEOUT_SECONDS = 5.0
DEFAULT_MIRROR_UPLOAD_TIMEOUT_SECONDS = 10.0
DEFAULT_MIRROR_FAILURE_THRESHOLD = 3
DEFAULT_MIRROR_COOLDOWN_SECONDS = 60.0
MIRROR_WORKER_THREADS = 4

# ============================================================================
# Blob Store Retry
# ============================================================================

DEFAULT_BLOB_RETRY_ATTEMPTS = 1
DEFAULT_BLOB_RETRY_BACKOFF_SECONDS = 0.2

# ============================================================================
# Policies
# ============================================================================

NAMING_POLICY_RANDOM = "random"
NAMING_POLICY_ORIGINAL = "original"
DUPLICATE_POLICY_REJECT = "reject"
DUPLICATE_POLICY_OVERWRITE = "overwrite"
MISSING_IMAGE_POLICY_FALLBACK = "fallback"
MISSING_IMAGE_POLICY_NOT_FOUND = "not_found"

# ============================================================================
# Pagination Constraints
# ============================================================================

DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_OFFSET = 0

# ============================================================================
# Auth
# ============================================================================

ADMIN_ROLE = "admin"

# ============================================================================
# API Gateway Configuration
# ============================================================================

CORS_ORIGIN = "*"
CORS_METHODS = "GET,POST,PATCH,DELETE,OPTIONS"
CORS_HEADERS = "Content-Type,Authorization,X-Api-Key"
EXPOSE_HEADERS = "Content-Type,Content-Length,X-Image-Source"
DEFAULT_CONTENT_TYPE = "application/json"
IMAGE_SOURCE_HEADER = "X-Image-Source"
IMAGE_CACHE_CONTROL = "public, max-age=86400"

# ============================================================================
# Environment Variable Names
# ============================================================================

ENV_AWS_ENDPOINT_URL = "AWS_ENDPOINT_URL"
ENV_AWS_REGION = "AWS_REGION"
ENV_IMAGE_S3_BUCKET_NAME = "IMAGE_S3_BUCKET_NAME"
ENV_IMAGE_METADATA_TABLE_NAME = "IMAGE_METADATA_TABLE_NAME"
ENV_MIRROR_ENABLED = "MIRROR_ENABLED"
ENV_CLOUDINARY_CLOUD_NAME = "CLOUDINARY_CLOUD_NAME"
ENV_CLOUDINARY_API_KEY = "CLOUDINARY_API_KEY"
ENV_CLOUDINARY_API_SECRET = "CLOUDINARY_API_SECRET"
ENV_CLOUDINARY_FOLDER = "CLOUDINARY_FOLDER"
ENV_MIRROR_TIMEOUT_SECONDS = "MIRROR_TIMEOUT_SECONDS"
ENV_MIRROR_UPLOAD_TIMEOUT_SECONDS = "MIRROR_UPLOAD_TIMEOUT_SECONDS"
ENV_MIRROR_FAILURE_THRESHOLD = "MIRROR_FAILURE_THRESHOLD"
ENV_MIRROR_COOLDOWN_SECONDS = "MIRROR_COOLDOWN_SECONDS"
ENV_BLOB_RETRY_ATTEMPTS = "BLOB_RETRY_ATTEMPTS"
ENV_BLOB_RETRY_BACKOFF_SECONDS = "BLOB_RETRY_BACKOFF_SECONDS"
ENV_IMAGE_NAMING_POLICY = "IMAGE_NAMING_POLICY"
ENV_DUPLICATE_NAME_POLICY = "DUPLICATE_NAME_POLICY"
ENV_MISSING_IMAGE_POLICY = "MISSING_IMAGE_POLICY"
ENV_FALLBACK_IMAGE_PATH = "FALLBACK_IMAGE_PATH"
ENV_PUBLIC_IMAGE_PATH_PREFIX = "PUBLIC_IMAGE_PATH_PREFIX"
ENV_MAX_FILE_SIZE = "MAX_FILE_SIZE"

# ============================================================================
# Helper Functions
# ============================================================================


def get_max_file_size_mb(max_file_size: int = MAX_FILE_SIZE) -> int:
    """Get maximum file size in megabytes."""
    return max_file_size // (1024 * 1024)
