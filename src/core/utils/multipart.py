"""Multipart/form-data parsing for API Gateway proxy events."""

import base64
from dataclasses import dataclass
from typing import Any

from requests_toolbelt.multipart.decoder import (
    ImproperBodyPartContentException,
    MultipartDecoder,
    NonMultipartContentTypeException,
)

from core.models.errors import ValidationError
from core.utils.constants import (
    CAPTION_FIELD_NAME,
    ERROR_CODE_MISSING_FILE,
    ERROR_CODE_VALIDATION_FAILED,
    UPLOAD_FIELD_NAME,
)

_DISPOSITION_HEADER = b"Content-Disposition"


@dataclass(frozen=True)
class UploadedFile:
    filename: str | None
    content: bytes
    content_type: str | None


@dataclass(frozen=True)
class UploadForm:
    file: UploadedFile | None
    fields: dict[str, str]

    @property
    def caption(self) -> str | None:
        return self.fields.get(CAPTION_FIELD_NAME)


def _header(headers: dict[str, Any] | None, name: str) -> str | None:
    # API Gateway preserves client header casing
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return None


def _parse_disposition(raw: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for part in raw.split(";")[1:]:
        key, sep, value = part.strip().partition("=")
        if sep:
            params[key.strip().lower()] = value.strip().strip('"')
    return params


def event_body_bytes(event: dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (ValueError, TypeError) as exc:
            raise ValidationError(message="Request body is not valid Base64") from exc
    return body.encode("utf-8") if isinstance(body, str) else body


def parse_upload_form(
    event: dict[str, Any],
    *,
    file_field: str = UPLOAD_FIELD_NAME,
) -> UploadForm:
    """Split a multipart request into the uploaded file and plain text fields.

    Raises:
        ValidationError: If the request is not multipart or cannot be parsed
    """
    content_type = _header(event.get("headers"), "Content-Type")
    if (
        not content_type
        or "multipart/form-data" not in content_type.lower()
        or "boundary=" not in content_type.lower()
    ):
        raise ValidationError(
            message="Request must be multipart/form-data",
            error_code=ERROR_CODE_MISSING_FILE,
        )

    body = event_body_bytes(event)
    if not body:
        raise ValidationError(
            message="Missing file payload",
            error_code=ERROR_CODE_MISSING_FILE,
        )

    try:
        decoder = MultipartDecoder(body, content_type)
    except (ImproperBodyPartContentException, NonMultipartContentTypeException) as exc:
        raise ValidationError(
            message="Malformed multipart body",
            error_code=ERROR_CODE_VALIDATION_FAILED,
        ) from exc

    uploaded: UploadedFile | None = None
    fields: dict[str, str] = {}

    for part in decoder.parts:
        disposition = part.headers.get(_DISPOSITION_HEADER, b"").decode("utf-8", "replace")
        params = _parse_disposition(disposition)
        field_name = params.get("name")

        if field_name == file_field:
            part_type = part.headers.get(b"Content-Type")
            uploaded = UploadedFile(
                filename=params.get("filename") or None,
                content=part.content,
                content_type=part_type.decode("latin-1") if part_type else None,
            )
        elif field_name:
            fields[field_name] = part.text

    return UploadForm(file=uploaded, fields=fields)
