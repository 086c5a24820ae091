"""
Lambda handler updating image metadata (PATCH /images/{image_id}).
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.services.factory import get_image_service
from core.utils.auth import require_admin
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder
from core.utils.validators import parse_json_body, validate_request

from .models import UpdateImageRequest

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics()


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Replace the caption of an image record. Administrators only."""
    request_id = getattr(context, "aws_request_id", None)
    logger.info(
        "Received image update request",
        extra={"path": event.get("path"), "request_id": request_id},
    )

    require_admin(event)

    body = parse_json_body(event)
    path_params = event.get("pathParameters") or {}

    is_valid, result = validate_request(
        UpdateImageRequest,
        {**body, "image_id": path_params.get("image_id")},
        request_id=request_id,
    )
    if not is_valid:
        return result
    request: UpdateImageRequest = result

    service = get_image_service()
    record = service.update_caption(request.image_id, request.caption or None)

    return ResponseBuilder.ok(
        {**record.model_dump(), "url": service.reference_for(record.name)},
        request_id=request_id,
    )
