"""Thin adapter for the Cloudinary upload API and public delivery URLs."""

import io
from typing import Any, Protocol

import cloudinary
import cloudinary.uploader
import requests

from core.config import ImageServiceSettings


class CloudinaryAdapterProtocol(Protocol):
    """Minimal Cloudinary adapter protocol (mirror-facing)."""

    @property
    def cloud_name(self) -> str: ...

    @property
    def folder(self) -> str: ...

    def upload(self, *, data: bytes, public_id: str, timeout: float) -> dict[str, Any]: ...

    def destroy(self, *, public_id: str, timeout: float) -> dict[str, Any]: ...

    def get(self, *, url: str, timeout: float) -> requests.Response: ...


class CloudinaryAdapter:
    """Low-level Cloudinary operations (mechanical, no error handling).

    Errors from the SDK and from ``requests`` bubble up to the mirror
    implementation, which translates them.
    """

    def __init__(self, settings: ImageServiceSettings) -> None:
        if not settings.cloudinary_cloud_name:
            raise RuntimeError("Cloudinary cloud name is not configured")

        self._cloud_name = settings.cloudinary_cloud_name
        self._folder = settings.cloudinary_folder
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )
        self._session = requests.Session()

    @property
    def cloud_name(self) -> str:
        return self._cloud_name

    @property
    def folder(self) -> str:
        return self._folder

    def upload(self, *, data: bytes, public_id: str, timeout: float) -> dict[str, Any]:
        return cloudinary.uploader.upload(
            io.BytesIO(data),
            folder=self._folder,
            public_id=public_id,
            resource_type="image",
            overwrite=True,
            unique_filename=False,
            timeout=timeout,
        )

    def destroy(self, *, public_id: str, timeout: float) -> dict[str, Any]:
        return cloudinary.uploader.destroy(
            public_id,
            resource_type="image",
            invalidate=True,
            timeout=timeout,
        )

    def get(self, *, url: str, timeout: float) -> requests.Response:
        return self._session.get(url, stream=True, timeout=timeout)
