"""Canonical image naming."""

import re
import secrets
from pathlib import PurePosixPath

from core.models.errors import ValidationError
from core.utils.constants import (
    ERROR_CODE_INVALID_NAME,
    MAX_FILENAME_LENGTH,
    MIME_TYPE_EXTENSION_MAP,
    NAMING_POLICY_ORIGINAL,
)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str) -> str:
    """Reduce a client filename to a safe single path segment.

    Raises:
        ValidationError: If nothing usable remains
    """
    # Drop any client-side directory components (both separators)
    base = PurePosixPath(filename.replace("\\", "/")).name.strip()
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")

    if not cleaned:
        raise ValidationError(
            message="Invalid file name",
            error_code=ERROR_CODE_INVALID_NAME,
            details={"filename": filename},
        )

    if len(cleaned) > MAX_FILENAME_LENGTH:
        raise ValidationError(
            message=f"File name must be at most {MAX_FILENAME_LENGTH} characters",
            error_code=ERROR_CODE_INVALID_NAME,
            details={"filename": filename},
        )

    return cleaned


def extension_for(mime_type: str) -> str:
    """Preferred file extension for a supported MIME type."""
    return MIME_TYPE_EXTENSION_MAP[mime_type][0]


def generate_name(mime_type: str) -> str:
    """Random collision-resistant name with the detected extension."""
    return f"{secrets.token_hex(16)}.{extension_for(mime_type)}"


def canonical_name(
    *,
    policy: str,
    original_filename: str | None,
    mime_type: str,
) -> str:
    """Derive the stored name for an upload under the given naming policy.

    ``original`` keeps the sanitised client filename, replacing its extension
    with one that matches the detected content. ``random`` ignores the client
    filename entirely.
    """
    if policy != NAMING_POLICY_ORIGINAL:
        return generate_name(mime_type)

    if not original_filename:
        raise ValidationError(
            message="Missing file name",
            error_code=ERROR_CODE_INVALID_NAME,
        )

    cleaned = sanitize_filename(original_filename)
    stem = PurePosixPath(cleaned).stem or cleaned
    suffix = PurePosixPath(cleaned).suffix.lower().lstrip(".")

    if suffix in MIME_TYPE_EXTENSION_MAP[mime_type]:
        return cleaned

    return f"{stem}.{extension_for(mime_type)}"


def validate_lookup_name(name: str) -> str:
    """Check a name taken from a request path before it reaches a backend.

    Raises:
        ValidationError: If the name is empty or not a single path segment
    """
    if not name or name in {".", ".."} or "/" in name or "\\" in name:
        raise ValidationError(
            message="Invalid image name",
            error_code=ERROR_CODE_INVALID_NAME,
            details={"name": name},
        )

    if len(name) > MAX_FILENAME_LENGTH:
        raise ValidationError(
            message="Invalid image name",
            error_code=ERROR_CODE_INVALID_NAME,
            details={"name": name[:MAX_FILENAME_LENGTH]},
        )

    return name
