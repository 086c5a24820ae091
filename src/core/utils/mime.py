from collections.abc import Mapping
from pathlib import PurePosixPath

from core.utils.constants import DEFAULT_BINARY_CONTENT_TYPE, EXTENSION_MIME_TYPE_MAP

MAGIC_BYTES: Mapping[bytes, str] = {
    b"\xff\xd8\xff": "image/jpeg",
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"GIF87a": "image/gif",
    b"GIF89a": "image/gif",
}


def detect_mime_type(file_data: bytes) -> str:
    for signature, mime in MAGIC_BYTES.items():
        if file_data.startswith(signature):
            return mime

    # RIFF containers are only images when the form type is WEBP
    if file_data[:4] == b"RIFF" and file_data[8:12] == b"WEBP":
        return "image/webp"

    raise ValueError("Unsupported or unknown file type")


def mime_type_for_name(name: str) -> str:
    """Content type implied by a file name's extension."""
    suffix = PurePosixPath(name).suffix.lower().lstrip(".")
    return EXTENSION_MIME_TYPE_MAP.get(suffix, DEFAULT_BINARY_CONTENT_TYPE)
