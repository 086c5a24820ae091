"""
Lambda handler listing catalog records with name filtering and pagination.
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.services.factory import get_image_service
from core.utils.auth import require_admin
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder
from core.utils.validators import validate_request

from .models import ListImagesRequest

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics()


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Handle requests to list images. Administrators only.

    Supports:
    - Filtering by name substring (in-memory)
    - Offset-based pagination, newest first
    """
    request_id = getattr(context, "aws_request_id", None)
    logger.info(
        "Received image list request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "query_params": event.get("queryStringParameters"),
            "request_id": request_id,
        },
    )

    require_admin(event)

    params = event.get("queryStringParameters") or {}
    is_valid, result = validate_request(ListImagesRequest, params, request_id=request_id)
    if not is_valid:
        return result
    request: ListImagesRequest = result

    response = get_image_service().list_images(
        name_contains=request.name_contains,
        limit=request.limit,
        offset=request.offset,
    )

    logger.info(
        "Images listed",
        extra={"returned_count": response.returned_count, "total_count": response.total_count},
    )
    return ResponseBuilder.ok(response.model_dump(), request_id=request_id)
