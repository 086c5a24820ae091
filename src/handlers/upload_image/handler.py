"""
Lambda handler responsible for image upload (POST /images).
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.models.errors import ValidationError
from core.services.factory import get_image_service
from core.utils.auth import require_admin
from core.utils.constants import ERROR_CODE_MISSING_FILE
from core.utils.decorators import api_gateway_handler
from core.utils.multipart import parse_upload_form
from core.utils.response import ResponseBuilder
from core.utils.validators import validate_request

from .models import ImageUploadRequest, ImageUploadResponse

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics()


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Handle image upload requests.

    Expects a multipart/form-data body with the image in the ``image`` field
    and an optional ``caption`` field. Only administrators may upload.

    Returns:
        201 with the canonical reference of the stored image
    """
    request_id = getattr(context, "aws_request_id", None)
    logger.info(
        "Received image upload request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "request_id": request_id,
            "function_name": getattr(context, "function_name", None),
        },
    )

    require_admin(event)

    form = parse_upload_form(event)
    if form.file is None:
        raise ValidationError(
            message="Missing file payload",
            error_code=ERROR_CODE_MISSING_FILE,
        )

    is_valid, result = validate_request(
        ImageUploadRequest,
        {"filename": form.file.filename, "caption": form.caption},
        request_id=request_id,
    )
    if not is_valid:
        logger.warning("Upload form validation failed")
        return result
    request: ImageUploadRequest = result

    uploaded = get_image_service().upload(
        content=form.file.content,
        original_filename=request.filename,
        caption=request.caption,
    )
    metrics.add_metric(name="ImageUploaded", unit=MetricUnit.Count, value=1)

    record = uploaded.record
    response = ImageUploadResponse(
        image_id=record.image_id,
        filename=record.name,
        url=uploaded.url,
        content_type=record.content_type,
        size_bytes=record.size_bytes,
        caption=record.caption,
        mirror_status=record.mirror_status,
        created_at=record.created_at,
        message="Image uploaded successfully",
    )

    return ResponseBuilder.created(response.model_dump(), request_id=request_id)
