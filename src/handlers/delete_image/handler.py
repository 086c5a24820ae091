"""
Lambda handler responsible for deleting an image (DELETE /images/{image_id}).
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.services.factory import get_image_service
from core.utils.auth import require_admin
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder
from core.utils.time import utc_now_iso
from core.utils.validators import validate_request

from .models import DeleteImageRequest, DeleteImageResponse

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics()


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Handle image deletion requests.

    This function:
    - Requires an administrator principal
    - Validates the image identifier from the path
    - Deletes the image from every backend holding it, then its record
    """
    request_id = getattr(context, "aws_request_id", None)
    logger.info(
        "Received image delete request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "request_id": request_id,
        },
    )

    require_admin(event)

    path_params = event.get("pathParameters") or {}
    is_valid, result = validate_request(
        DeleteImageRequest,
        {"image_id": path_params.get("image_id")},
        request_id=request_id,
    )
    if not is_valid:
        return result
    request: DeleteImageRequest = result

    deleted = get_image_service().delete(request.image_id)
    metrics.add_metric(name="ImageDeleted", unit=MetricUnit.Count, value=1)
    if deleted.stale_references:
        metrics.add_metric(
            name="StaleBackendReference",
            unit=MetricUnit.Count,
            value=len(deleted.stale_references),
        )

    response = DeleteImageResponse(
        image_id=deleted.image_id,
        filename=deleted.name,
        message="Image deleted successfully",
        deleted_at=utc_now_iso(),
        deleted_from=deleted.deleted_from,
        stale_references=deleted.stale_references,
    )

    return ResponseBuilder.ok(response.model_dump(), request_id=request_id)
