"""
Lambda handler serving image bytes (GET /images/{name}).
"""

from typing import Any
from urllib.parse import unquote

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.services.factory import get_image_service
from core.utils.constants import (
    IMAGE_CACHE_CONTROL,
    IMAGE_SOURCE_FALLBACK,
    IMAGE_SOURCE_HEADER,
)
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder
from core.utils.validators import validate_request

from .models import GetImageRequest

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics()

SOURCE_METRICS = {
    "mirror": "ImageServedFromMirror",
    "blob": "ImageServedFromBlobStore",
    "fallback": "ImageServedFromFallback",
}


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Serve an image by its canonical name.

    Tries the mirror, then the blob store, then the bundled fallback image,
    which is returned with 200. The ``X-Image-Source`` header tells which
    path answered.
    """
    request_id = getattr(context, "aws_request_id", None)
    logger.info(
        "Received image retrieval request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "request_id": request_id,
        },
    )

    path_params = event.get("pathParameters") or {}
    raw_name = path_params.get("name")

    is_valid, result = validate_request(
        GetImageRequest,
        {"name": unquote(raw_name) if isinstance(raw_name, str) else raw_name},
        request_id=request_id,
    )
    if not is_valid:
        return result
    request: GetImageRequest = result

    payload = get_image_service().retrieve(request.name)
    metrics.add_metric(name=SOURCE_METRICS[payload.source], unit=MetricUnit.Count, value=1)

    cache_control = "no-store" if payload.source == IMAGE_SOURCE_FALLBACK else IMAGE_CACHE_CONTROL
    return ResponseBuilder.binary_response(
        payload.content,
        content_type=payload.content_type,
        headers={
            IMAGE_SOURCE_HEADER: payload.source,
            "Cache-Control": cache_control,
        },
    )
