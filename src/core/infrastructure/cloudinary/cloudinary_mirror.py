"""Cloudinary-backed implementation of ImageMirror."""

from collections.abc import Iterator
from pathlib import PurePosixPath
from urllib.parse import quote

import requests
from aws_lambda_powertools import Logger
from cloudinary.exceptions import Error as CloudinaryError

from core.config import ImageServiceSettings
from core.infrastructure.adapters.cloudinary_adapter import (
    CloudinaryAdapter,
    CloudinaryAdapterProtocol,
)
from core.models.errors import MirrorError, NotFoundError
from core.models.image import BlobStream, MirrorHandle
from core.repositories.mirror_repository import ImageMirror
from core.utils.constants import CLOUDINARY_DELIVERY_URL, STREAM_CHUNK_SIZE

logger = Logger(UTC=True)


class CloudinaryMirror(ImageMirror):
    """Secondary image copies on Cloudinary.

    Each stored name maps to its own public id, ``{folder}/{stem}_{ext}``,
    so names that differ only by extension never share an asset.
    """

    def __init__(
        self,
        settings: ImageServiceSettings,
        adapter: CloudinaryAdapterProtocol | None = None,
    ) -> None:
        self._adapter: CloudinaryAdapterProtocol = adapter or CloudinaryAdapter(settings)
        self._fetch_timeout = settings.mirror_timeout_seconds
        self._upload_timeout = settings.mirror_upload_timeout_seconds

    @staticmethod
    def asset_name(name: str) -> str:
        """Folder-relative public id for a stored image name."""
        path = PurePosixPath(name)
        extension = path.suffix.lstrip(".")
        if not extension or not path.stem:
            return name
        # Stored names end in an image extension without "_", so this stays one-to-one
        return f"{path.stem}_{extension}"

    def public_url(self, *, public_id: str) -> str:
        return CLOUDINARY_DELIVERY_URL.format(
            cloud_name=self._adapter.cloud_name,
            public_id=quote(public_id, safe="/"),
        )

    def upload(self, *, data: bytes, suggested_name: str) -> MirrorHandle:
        logger.debug(
            "Uploading image to mirror",
            extra={"image_name": suggested_name, "size": len(data)},
        )

        try:
            result = self._adapter.upload(
                data=data,
                public_id=self.asset_name(suggested_name),
                timeout=self._upload_timeout,
            )
        except (CloudinaryError, requests.RequestException, OSError) as exc:
            raise MirrorError(
                message="Unable to upload image to mirror",
                details={"name": suggested_name, "reason": str(exc)},
            ) from exc

        external_id = result.get("public_id")
        if not external_id:
            raise MirrorError(
                message="Mirror upload returned no public id",
                details={"name": suggested_name},
            )

        logger.info(
            "Image uploaded to mirror",
            extra={"image_name": suggested_name, "public_id": external_id},
        )
        return MirrorHandle(
            public_url=result.get("secure_url") or self.public_url(public_id=external_id),
            external_id=external_id,
        )

    def fetch(self, *, public_id: str, url: str | None = None) -> BlobStream:
        url = url or self.public_url(public_id=public_id)

        try:
            response = self._adapter.get(url=url, timeout=self._fetch_timeout)
        except requests.RequestException as exc:
            raise MirrorError(
                message="Unable to reach mirror",
                details={"public_id": public_id, "reason": type(exc).__name__},
            ) from exc

        if response.status_code == 404:
            response.close()
            raise NotFoundError(
                message="Image not found on mirror",
                details={"public_id": public_id},
            )

        if response.status_code != 200:
            response.close()
            raise MirrorError(
                message="Mirror returned an unexpected status",
                details={"public_id": public_id, "status_code": response.status_code},
            )

        length = response.headers.get("Content-Length")
        return BlobStream(
            chunks=self._iter_content(response, public_id),
            content_type=response.headers.get("Content-Type"),
            content_length=int(length) if length and length.isdigit() else None,
            close=response.close,
        )

    @staticmethod
    def _iter_content(response: requests.Response, public_id: str) -> Iterator[bytes]:
        try:
            yield from response.iter_content(chunk_size=STREAM_CHUNK_SIZE)
        except requests.RequestException as exc:
            raise MirrorError(
                message="Mirror stream interrupted",
                details={"public_id": public_id, "reason": type(exc).__name__},
            ) from exc

    def delete(self, *, public_id: str) -> None:
        try:
            result = self._adapter.destroy(
                public_id=public_id,
                timeout=self._upload_timeout,
            )
        except (CloudinaryError, requests.RequestException, OSError) as exc:
            raise MirrorError(
                message="Unable to delete image from mirror",
                details={"public_id": public_id, "reason": str(exc)},
            ) from exc

        outcome = result.get("result")
        if outcome == "not found":
            raise NotFoundError(
                message="Image not found on mirror",
                details={"public_id": public_id},
            )

        if outcome != "ok":
            raise MirrorError(
                message="Mirror refused deletion",
                details={"public_id": public_id, "result": outcome},
            )

        logger.info("Image deleted from mirror", extra={"public_id": public_id})
