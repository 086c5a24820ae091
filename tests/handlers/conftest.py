import base64
from collections.abc import Callable, Generator
from types import SimpleNamespace
from typing import Any

import pytest
from requests_toolbelt.multipart.encoder import MultipartEncoder

from core.config import ImageServiceSettings
from core.services.image_service import ImageService

HANDLER_MODULES = (
    "handlers.upload_image.handler",
    "handlers.get_image.handler",
    "handlers.delete_image.handler",
    "handlers.update_image.handler",
    "handlers.list_images.handler",
)

ADMIN_AUTHORIZER = {"principalId": "admin-1", "role": "admin"}
CUSTOMER_AUTHORIZER = {"principalId": "customer-1", "role": "customer"}


@pytest.fixture
def lambda_context() -> SimpleNamespace:
    """Minimal Lambda context for handler tests."""
    return SimpleNamespace(
        function_name="test-function",
        memory_limit_in_mb=128,
        invoked_function_arn="arn:aws:lambda:us-east-1:123456789012:function:test-function",
        aws_request_id="test-request-id",
    )


@pytest.fixture
def use_service(monkeypatch: pytest.MonkeyPatch) -> Callable[[ImageService], ImageService]:
    """Route every handler's ``get_image_service`` to the given service."""

    def _use(service: ImageService) -> ImageService:
        for module in HANDLER_MODULES:
            monkeypatch.setattr(f"{module}.get_image_service", lambda: service)
        return service

    return _use


@pytest.fixture
def make_handler_service(
    settings: ImageServiceSettings,
    blob_store,
    catalog,
    use_service,
) -> Generator[Callable[..., ImageService], None, None]:
    services: list[ImageService] = []

    def _make(**settings_update: Any) -> ImageService:
        service = ImageService(
            settings.model_copy(update=settings_update),
            blob_store=blob_store,
            catalog=catalog,
        )
        services.append(service)
        return use_service(service)

    yield _make

    for service in services:
        service.shutdown()


@pytest.fixture
def image_service(make_handler_service: Callable[..., ImageService]) -> ImageService:
    return make_handler_service()


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    def _event(
        method: str = "GET",
        *,
        path_parameters: dict[str, str] | None = None,
        query: dict[str, str] | None = None,
        body: str | None = None,
        authorizer: dict[str, Any] | None = ADMIN_AUTHORIZER,
    ) -> dict[str, Any]:
        return {
            "httpMethod": method,
            "path": "/images",
            "headers": {},
            "pathParameters": path_parameters,
            "queryStringParameters": query,
            "body": body,
            "isBase64Encoded": False,
            "requestContext": {"authorizer": authorizer} if authorizer else {},
        }

    return _event


@pytest.fixture
def upload_event() -> Callable[..., dict[str, Any]]:
    def _event(
        fields: dict[str, Any],
        *,
        authorizer: dict[str, Any] | None = ADMIN_AUTHORIZER,
    ) -> dict[str, Any]:
        encoder = MultipartEncoder(fields=fields)
        return {
            "httpMethod": "POST",
            "path": "/images",
            "headers": {"Content-Type": encoder.content_type},
            "body": base64.b64encode(encoder.to_string()).decode(),
            "isBase64Encoded": True,
            "requestContext": {"authorizer": authorizer} if authorizer else {},
        }

    return _event
