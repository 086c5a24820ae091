"""S3-backed implementation of BlobStore."""

from collections.abc import Iterable, Iterator
from typing import Any

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from core.config import ImageServiceSettings
from core.infrastructure.adapters.s3_adapter import S3Adapter, S3AdapterProtocol
from core.models.errors import (
    DuplicateNameError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from core.models.image import BlobHandle, BlobStream
from core.repositories.blob_store import BlobStore
from core.utils.constants import (
    BLOB_KEY_PREFIX,
    ERROR_CODE_FILE_SIZE_EXCEEDED,
    KEY_EXISTS_ERROR_CODES,
    NOT_FOUND_ERROR_CODES,
    STREAM_CHUNK_SIZE,
)
from core.utils.locks import NamedLocks

logger = Logger(UTC=True)


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3BlobStore(BlobStore):
    """Image bytes stored as ``images/{name}`` objects in one bucket.

    ``put_object`` replaces objects atomically, so readers never observe a
    partially written image. Without ``overwrite`` the write is conditional
    (``If-None-Match: *``), so S3 itself admits one creator per key across
    processes. Same-name writers inside this process also queue on a lock.
    """

    def __init__(
        self,
        settings: ImageServiceSettings,
        adapter: S3AdapterProtocol | None = None,
        locks: NamedLocks | None = None,
    ) -> None:
        self._s3: S3AdapterProtocol = adapter or S3Adapter(settings)
        self._locks = locks or NamedLocks()
        self._max_size = settings.max_file_size

    @staticmethod
    def key_for(name: str) -> str:
        return f"{BLOB_KEY_PREFIX}{name}"

    def _read_all(self, data: bytes | Iterable[bytes]) -> bytes:
        if isinstance(data, (bytes, bytearray)):
            body = bytes(data)
        else:
            body = BlobStream(chunks=iter(data)).read(max_bytes=self._max_size)

        if len(body) > self._max_size:
            raise ValidationError(
                message="File exceeds the maximum allowed size",
                error_code=ERROR_CODE_FILE_SIZE_EXCEEDED,
                details={"max_bytes": self._max_size},
            )
        return body

    def _unavailable(self, action: str, key: str, exc: Exception) -> StorageUnavailableError:
        logger.error(
            f"S3 {action} failed",
            extra={"key": key, "error_type": type(exc).__name__},
        )
        return StorageUnavailableError(
            message="Image storage is unavailable",
            details={"key": key, "action": action},
        )

    def put(
        self,
        *,
        name: str,
        data: bytes | Iterable[bytes],
        content_type: str,
        overwrite: bool = False,
    ) -> BlobHandle:
        key = self.key_for(name)
        # Buffer first: a failed read never reaches S3
        body = self._read_all(data)

        logger.debug(
            "Writing blob",
            extra={"key": key, "size": len(body), "overwrite": overwrite},
        )

        with self._locks.hold(name):
            try:
                self._s3.put_object(
                    key=key,
                    body=body,
                    content_type=content_type,
                    metadata={"name": name},
                    if_none_match=not overwrite,
                )
            except ClientError as exc:
                if not overwrite and _error_code(exc) in KEY_EXISTS_ERROR_CODES:
                    raise DuplicateNameError(
                        message="An image with this name already exists",
                        details={"name": name},
                    ) from exc
                raise self._unavailable("put_object", key, exc) from exc
            except BotoCoreError as exc:
                raise self._unavailable("put_object", key, exc) from exc

        logger.info("Blob written", extra={"key": key, "size": len(body)})
        return BlobHandle(key=key)

    def get(self, *, name: str) -> BlobStream:
        key = self.key_for(name)

        try:
            response = self._s3.get_object(key=key)
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_ERROR_CODES:
                raise NotFoundError(
                    message="Image not found",
                    details={"key": key},
                ) from exc
            raise self._unavailable("get_object", key, exc) from exc
        except BotoCoreError as exc:
            raise self._unavailable("get_object", key, exc) from exc

        body = response["Body"]
        return BlobStream(
            chunks=self._iter_body(body, key),
            content_type=response.get("ContentType"),
            content_length=response.get("ContentLength"),
            close=body.close,
        )

    def _iter_body(self, body: Any, key: str) -> Iterator[bytes]:
        try:
            yield from body.iter_chunks(chunk_size=STREAM_CHUNK_SIZE)
        except (BotoCoreError, OSError) as exc:
            raise self._unavailable("read", key, exc) from exc

    def delete(self, *, handle: BlobHandle) -> None:
        key = handle.key
        # S3 deletes are idempotent, so probe first to report NotFound
        try:
            self._s3.head_object(key=key)
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_ERROR_CODES:
                raise NotFoundError(
                    message="Image not found",
                    details={"key": key},
                ) from exc
            raise self._unavailable("head_object", key, exc) from exc
        except BotoCoreError as exc:
            raise self._unavailable("head_object", key, exc) from exc

        try:
            self._s3.delete_object(key=key)
        except (ClientError, BotoCoreError) as exc:
            raise self._unavailable("delete_object", key, exc) from exc

        logger.info("Blob deleted", extra={"key": key})

    def exists(self, *, name: str) -> bool:
        key = self.key_for(name)
        try:
            self._s3.head_object(key=key)
            return True
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_ERROR_CODES:
                return False
            raise self._unavailable("head_object", key, exc) from exc
        except BotoCoreError as exc:
            raise self._unavailable("head_object", key, exc) from exc
