"""Image upload, retrieval and deletion across the blob store and the mirror.

The blob store is authoritative: an upload fails when the blob write fails.
The mirror is a best-effort secondary copy written by a detached task and
preferred for serving once it is confirmed.
"""

import hashlib
import threading
import time
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path

from aws_lambda_powertools import Logger

from core.config import ImageServiceSettings
from core.filters.in_memory_image_filter import InMemoryImageFilter
from core.models.errors import (
    CatalogError,
    DuplicateNameError,
    ImageDeletionFailedError,
    ImageServiceError,
    MetadataOperationFailedError,
    MirrorError,
    NotFoundError,
    StorageUnavailableError,
    UploadFailedError,
    ValidationError,
)
from core.models.image import (
    BackendRefs,
    BlobHandle,
    ImagePayload,
    ImageRecord,
    ImageSource,
    ListImagesResponse,
)
from core.models.pagination import PaginationInfo
from core.repositories.blob_store import BlobStore
from core.repositories.catalog_repository import ImageCatalog
from core.repositories.mirror_repository import ImageMirror
from core.services.mirror_health import MirrorHealth
from core.utils.constants import (
    DUPLICATE_POLICY_OVERWRITE,
    ERROR_CODE_FILE_SIZE_EXCEEDED,
    ERROR_CODE_IMAGE_NOT_FOUND,
    ERROR_CODE_MISSING_FILE,
    ERROR_CODE_UNSUPPORTED_MIME_TYPE,
    IMAGE_ID_PREFIX,
    IMAGE_SOURCE_BLOB,
    IMAGE_SOURCE_FALLBACK,
    IMAGE_SOURCE_MIRROR,
    MAX_CAPTION_LENGTH,
    MIRROR_STATUS_DISABLED,
    MIRROR_STATUS_FAILED,
    MIRROR_STATUS_PENDING,
    MIRROR_STATUS_SYNCED,
    MIRROR_WORKER_THREADS,
    MISSING_IMAGE_POLICY_NOT_FOUND,
    get_max_file_size_mb,
)
from core.utils.mime import detect_mime_type, mime_type_for_name
from core.utils.naming import canonical_name, validate_lookup_name
from core.utils.time import utc_now_iso

logger = Logger(UTC=True)

BACKEND_BLOB = "blob"
BACKEND_MIRROR = "mirror"


@dataclass(frozen=True)
class UploadResult:
    record: ImageRecord
    url: str


@dataclass(frozen=True)
class DeleteResult:
    image_id: str
    name: str
    deleted_from: list[str] = field(default_factory=list)
    stale_references: dict[str, str] = field(default_factory=dict)


class ImageService:
    """Coordinates the blob store, the external mirror and the catalog."""

    def __init__(
        self,
        settings: ImageServiceSettings,
        *,
        blob_store: BlobStore,
        catalog: ImageCatalog,
        mirror: ImageMirror | None = None,
        health: MirrorHealth | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._settings = settings
        self._blobs = blob_store
        self._catalog = catalog
        self._mirror = mirror if settings.mirror_enabled else None
        self._health = health or MirrorHealth(
            failure_threshold=settings.mirror_failure_threshold,
            cooldown_seconds=settings.mirror_cooldown_seconds,
        )
        self._executor = executor or ThreadPoolExecutor(
            max_workers=MIRROR_WORKER_THREADS,
            thread_name_prefix="image-mirror",
        )
        self._filters = InMemoryImageFilter()
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self._fallback_content: bytes | None = None

    @property
    def settings(self) -> ImageServiceSettings:
        return self._settings

    @property
    def mirror_health(self) -> MirrorHealth:
        return self._health

    def reference_for(self, name: str) -> str:
        """Canonical backend-agnostic reference stored by other entities."""
        return f"{self._settings.public_path_prefix.rstrip('/')}/{name}"

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def _validate_upload(self, content: bytes, caption: str | None) -> str:
        if len(content) > self._settings.max_file_size:
            raise ValidationError(
                message=(
                    "File size exceeds "
                    f"{get_max_file_size_mb(self._settings.max_file_size)}MB limit"
                ),
                error_code=ERROR_CODE_FILE_SIZE_EXCEEDED,
                details={"size_bytes": len(content)},
            )

        if caption is not None and len(caption) > MAX_CAPTION_LENGTH:
            raise ValidationError(
                message=f"Caption must be at most {MAX_CAPTION_LENGTH} characters",
            )

        try:
            return detect_mime_type(content)
        except ValueError as exc:
            raise ValidationError(
                message="Invalid image type. Allowed types: JPEG, PNG, GIF, WEBP",
                error_code=ERROR_CODE_UNSUPPORTED_MIME_TYPE,
            ) from exc

    def _put_blob(
        self,
        *,
        name: str,
        content: bytes,
        content_type: str,
        overwrite: bool,
    ) -> BlobHandle:
        attempts = 1 + self._settings.blob_retry_attempts
        backoff = self._settings.blob_retry_backoff_seconds

        for attempt in range(1, attempts + 1):
            try:
                return self._blobs.put(
                    name=name,
                    data=content,
                    content_type=content_type,
                    overwrite=overwrite,
                )
            except StorageUnavailableError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Blob write failed, giving up",
                        extra={"image_name": name, "attempts": attempt},
                    )
                    raise UploadFailedError(
                        message="Unable to upload image at this time",
                        details={"name": name},
                    ) from exc

                logger.warning(
                    "Blob store unavailable, retrying write",
                    extra={"image_name": name, "attempt": attempt},
                )
                time.sleep(backoff * attempt)

        raise UploadFailedError(message="Unable to upload image at this time")

    def _initial_mirror_status(self) -> str:
        if self._mirror is None:
            return MIRROR_STATUS_DISABLED
        if self._health.is_degraded:
            logger.info("Mirror degraded, skipping mirror upload")
            return MIRROR_STATUS_DISABLED
        return MIRROR_STATUS_PENDING

    def _find_by_name(self, name: str) -> ImageRecord | None:
        """Catalog lookup on a read path; failures count as "no record"."""
        try:
            return self._catalog.fetch_record_by_name(name=name)
        except CatalogError:
            logger.warning("Catalog lookup failed", extra={"image_name": name})
            return None

    def upload(
        self,
        *,
        content: bytes | None,
        original_filename: str | None = None,
        caption: str | None = None,
    ) -> UploadResult:
        """Store an image and return its canonical reference.

        Raises:
            ValidationError: Missing, oversized or unsupported content
            DuplicateNameError: The name exists and duplicates are rejected
            UploadFailedError: The blob write failed after retries
            MetadataOperationFailedError: The catalog insert failed
        """
        if not content:
            raise ValidationError(
                message="Missing file payload",
                error_code=ERROR_CODE_MISSING_FILE,
            )

        content_type = self._validate_upload(content, caption)

        name = canonical_name(
            policy=self._settings.naming_policy,
            original_filename=original_filename,
            mime_type=content_type,
        )
        overwrite = self._settings.duplicate_name_policy == DUPLICATE_POLICY_OVERWRITE
        previous = self._find_by_name(name) if overwrite else None

        logger.info(
            "Uploading image",
            extra={"image_name": name, "size": len(content), "content_type": content_type},
        )

        handle = self._put_blob(
            name=name,
            content=content,
            content_type=content_type,
            overwrite=overwrite,
        )

        record = ImageRecord(
            image_id=f"{IMAGE_ID_PREFIX}{uuid.uuid4().hex}",
            name=name,
            original_filename=original_filename,
            content_type=content_type,
            size_bytes=len(content),
            file_hash=hashlib.sha256(content).hexdigest(),
            caption=caption,
            created_at=utc_now_iso(),
            backend_refs=BackendRefs(blob_key=handle.key),
            mirror_status=self._initial_mirror_status(),
        )

        try:
            self._catalog.create_record(record=record)
        except (CatalogError, DuplicateNameError) as exc:
            logger.error("Catalog insert failed", extra={"image_name": name})
            if previous is None:
                self._discard_blob(handle)
            raise MetadataOperationFailedError(
                message="Unable to save image metadata",
                details={"name": name},
            ) from exc

        if previous is not None and previous.image_id != record.image_id:
            self._retire_replaced_record(previous)

        # Record is in place before the task starts, so its update finds it
        if record.mirror_status == MIRROR_STATUS_PENDING:
            self._submit_mirror_upload(record, content)

        logger.info(
            "Image uploaded",
            extra={"image_id": record.image_id, "image_name": name},
        )
        return UploadResult(record=record, url=self.reference_for(name))

    def _discard_blob(self, handle: BlobHandle) -> None:
        try:
            self._blobs.delete(handle=handle)
        except ImageServiceError:
            logger.warning(
                "Orphaned blob left after failed upload",
                extra={"blob_key": handle.key},
            )

    def _retire_replaced_record(self, previous: ImageRecord) -> None:
        """Drop the record superseded by an overwrite."""
        try:
            self._catalog.remove_record(image_id=previous.image_id)
        except CatalogError:
            logger.warning(
                "Superseded record could not be removed",
                extra={"image_id": previous.image_id, "image_name": previous.name},
            )

        if previous.backend_refs.mirror_public_id:
            logger.warning(
                "Mirror copy orphaned by overwrite",
                extra={
                    "image_id": previous.image_id,
                    "mirror_public_id": previous.backend_refs.mirror_public_id,
                },
            )

    # ------------------------------------------------------------------
    # Detached mirror upload
    # ------------------------------------------------------------------

    def _submit_mirror_upload(self, record: ImageRecord, content: bytes) -> None:
        future = self._executor.submit(self._mirror_upload_task, record, content)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._mirror_task_done)

    def _mirror_task_done(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

        if future.cancelled():
            logger.warning("Mirror task cancelled before it started")
            return

        exc = future.exception()
        if exc is not None:
            logger.error(
                "Mirror task crashed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

    def _mirror_upload_task(self, record: ImageRecord, content: bytes) -> None:
        mirror = self._mirror
        if mirror is None:
            return

        try:
            mirror_handle = mirror.upload(data=content, suggested_name=record.name)
        except MirrorError as exc:
            self._health.record_failure()
            logger.warning(
                "Mirror upload failed",
                extra={"image_id": record.image_id, "image_name": record.name, "error": exc.message},
            )
            self._record_mirror_state(record, MIRROR_STATUS_FAILED)
            return

        self._health.record_success()
        recorded = self._record_mirror_state(
            record,
            MIRROR_STATUS_SYNCED,
            mirror_public_id=mirror_handle.external_id,
            mirror_url=mirror_handle.public_url,
        )
        if not recorded:
            self._discard_unreferenced_mirror_copy(record, mirror_handle.external_id)

    def _record_mirror_state(
        self,
        record: ImageRecord,
        status: str,
        *,
        mirror_public_id: str | None = None,
        mirror_url: str | None = None,
    ) -> bool:
        """Write the mirror outcome; False when the record is gone."""
        try:
            self._catalog.update_mirror_state(
                image_id=record.image_id,
                mirror_status=status,
                mirror_public_id=mirror_public_id,
                mirror_url=mirror_url,
            )
        except NotFoundError:
            return False
        except CatalogError:
            logger.warning(
                "Mirror state not recorded",
                extra={"image_id": record.image_id, "mirror_status": status},
            )
            return True

        logger.info(
            "Mirror state recorded",
            extra={"image_id": record.image_id, "mirror_status": status},
        )
        return True

    def _discard_unreferenced_mirror_copy(self, record: ImageRecord, public_id: str) -> None:
        mirror = self._mirror
        if mirror is None:
            return

        # A newer record under the same name shares the public id
        current = self._find_by_name(record.name)
        if current is not None and current.image_id != record.image_id:
            return

        logger.info(
            "Record deleted during mirror upload, removing mirror copy",
            extra={"image_id": record.image_id, "mirror_public_id": public_id},
        )
        try:
            mirror.delete(public_id=public_id)
        except (MirrorError, NotFoundError):
            logger.warning(
                "Stale mirror copy left after delete",
                extra={"image_id": record.image_id, "mirror_public_id": public_id},
            )

    def wait_for_mirror_tasks(self, timeout: float | None = None) -> bool:
        """Block until detached mirror uploads finish. True if all finished."""
        with self._pending_lock:
            pending = set(self._pending)

        if not pending:
            return True

        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, *, wait_for_tasks: bool = True) -> None:
        """Stop the mirror executor.

        Without ``wait_for_tasks`` queued mirror uploads are cancelled and
        their records stay ``pending``; uploads already running finish on
        their own timeout.
        """
        if isinstance(self._executor, ThreadPoolExecutor):
            self._executor.shutdown(wait=wait_for_tasks, cancel_futures=not wait_for_tasks)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve(self, name: str) -> ImagePayload:
        """Serve an image: mirror, then blob store, then the fallback asset.

        Raises:
            ValidationError: If the name is malformed
            NotFoundError: Only when the fallback is unavailable or disabled
        """
        validate_lookup_name(name)

        record = self._find_by_name(name)
        content_type = record.content_type if record else mime_type_for_name(name)

        if record is not None and self._mirror_usable(record):
            content = self._fetch_from_mirror(self._mirror, record)
            if content is not None:
                return self._payload(name, content, content_type, IMAGE_SOURCE_MIRROR)

        content = self._fetch_from_blob_store(name)
        if content is not None:
            return self._payload(name, content, content_type, IMAGE_SOURCE_BLOB)

        return self._fallback(name)

    def _mirror_usable(self, record: ImageRecord) -> bool:
        if self._mirror is None or not record.mirror_available:
            return False
        if self._health.is_degraded:
            logger.debug("Mirror degraded, skipping", extra={"image_name": record.name})
            return False
        return True

    def _fetch_from_mirror(self, mirror: ImageMirror, record: ImageRecord) -> bytes | None:
        name = record.name
        refs = record.backend_refs
        try:
            stream = mirror.fetch(public_id=refs.mirror_public_id, url=refs.mirror_url)
            content = stream.read(max_bytes=self._settings.max_file_size)
        except NotFoundError:
            logger.info("Image missing on mirror", extra={"image_name": name})
            return None
        except (MirrorError, ValidationError) as exc:
            self._health.record_failure()
            logger.warning(
                "Mirror fetch failed, falling back to blob store",
                extra={"image_name": name, "error": exc.message},
            )
            return None

        self._health.record_success()
        return content

    def _fetch_from_blob_store(self, name: str) -> bytes | None:
        try:
            return self._blobs.get(name=name).read(max_bytes=self._settings.max_file_size)
        except NotFoundError:
            logger.info("Image missing in blob store", extra={"image_name": name})
        except (StorageUnavailableError, ValidationError) as exc:
            logger.warning(
                "Blob store read failed",
                extra={"image_name": name, "error": exc.message},
            )
        return None

    @staticmethod
    def _payload(name: str, content: bytes, content_type: str, source: ImageSource) -> ImagePayload:
        logger.info(
            "Image served",
            extra={"image_name": name, "source": source, "size": len(content)},
        )
        return ImagePayload(content=content, content_type=content_type, source=source, name=name)

    def _fallback(self, name: str) -> ImagePayload:
        if self._settings.missing_image_policy == MISSING_IMAGE_POLICY_NOT_FOUND:
            raise NotFoundError(
                message="Image not found",
                error_code=ERROR_CODE_IMAGE_NOT_FOUND,
                details={"name": name},
            )

        path = self._settings.fallback_image_path
        if self._fallback_content is None:
            try:
                self._fallback_content = Path(path).read_bytes()
            except OSError as exc:
                logger.error("Fallback image unavailable", extra={"path": str(path)})
                raise NotFoundError(
                    message="Image not found",
                    error_code=ERROR_CODE_IMAGE_NOT_FOUND,
                    details={"name": name},
                ) from exc

        logger.warning("Serving fallback image", extra={"image_name": name})
        return ImagePayload(
            content=self._fallback_content,
            content_type=mime_type_for_name(Path(path).name),
            source=IMAGE_SOURCE_FALLBACK,
            name=name,
        )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, image_id: str) -> DeleteResult:
        """Delete an image from every backend it references.

        The record is removed once at least one backend deletion succeeds;
        failed paths are logged as stale references.

        Raises:
            NotFoundError: If no record has this id
            ImageDeletionFailedError: If no backend deletion succeeded
            MetadataOperationFailedError: If the record cannot be read or removed
        """
        try:
            record = self._catalog.fetch_record(image_id=image_id)
        except CatalogError as exc:
            raise MetadataOperationFailedError(
                message="Unable to retrieve image metadata",
                details={"image_id": image_id},
            ) from exc

        if record is None:
            raise NotFoundError(
                message="Image not found",
                error_code=ERROR_CODE_IMAGE_NOT_FOUND,
                details={"image_id": image_id},
            )

        refs = record.backend_refs
        deleted_from: list[str] = []
        stale: dict[str, str] = {}

        if refs.blob_key:
            try:
                self._blobs.delete(handle=BlobHandle(key=refs.blob_key))
                deleted_from.append(BACKEND_BLOB)
            except NotFoundError:
                deleted_from.append(BACKEND_BLOB)
            except StorageUnavailableError:
                stale[BACKEND_BLOB] = refs.blob_key

        if refs.mirror_public_id:
            if self._mirror is None:
                stale[BACKEND_MIRROR] = refs.mirror_public_id
            else:
                try:
                    self._mirror.delete(public_id=refs.mirror_public_id)
                    deleted_from.append(BACKEND_MIRROR)
                except NotFoundError:
                    deleted_from.append(BACKEND_MIRROR)
                except MirrorError:
                    stale[BACKEND_MIRROR] = refs.mirror_public_id

        if not deleted_from:
            logger.error(
                "Image deletion failed on every backend",
                extra={"image_id": image_id, "references": stale},
            )
            raise ImageDeletionFailedError(
                message="Unable to delete image at this time",
                details={"image_id": image_id},
            )

        for backend, reference in stale.items():
            logger.warning(
                "Stale backend reference left after delete",
                extra={"image_id": image_id, "backend": backend, "reference": reference},
            )

        try:
            self._catalog.remove_record(image_id=image_id)
        except CatalogError as exc:
            raise MetadataOperationFailedError(
                message="Unable to delete image metadata",
                details={"image_id": image_id},
            ) from exc

        logger.info(
            "Image deleted",
            extra={"image_id": image_id, "image_name": record.name, "deleted_from": deleted_from},
        )
        return DeleteResult(
            image_id=image_id,
            name=record.name,
            deleted_from=deleted_from,
            stale_references=stale,
        )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def image_exists(self, name: str) -> bool:
        """True if the catalog or the blob store knows ``name``.

        Raises:
            StorageUnavailableError: If the blob store cannot be reached
        """
        if self._find_by_name(name) is not None:
            return True
        return self._blobs.exists(name=name)

    def update_caption(self, image_id: str, caption: str | None) -> ImageRecord:
        """
        Raises:
            ValidationError: If the caption is too long
            NotFoundError: If no record has this id
            MetadataOperationFailedError: If the catalog update fails
        """
        if caption is not None and len(caption) > MAX_CAPTION_LENGTH:
            raise ValidationError(
                message=f"Caption must be at most {MAX_CAPTION_LENGTH} characters",
            )

        try:
            return self._catalog.update_caption(image_id=image_id, caption=caption)
        except CatalogError as exc:
            raise MetadataOperationFailedError(
                message="Unable to update image metadata",
                details={"image_id": image_id},
            ) from exc

    def list_images(
        self,
        *,
        name_contains: str | None,
        limit: int,
        offset: int,
    ) -> ListImagesResponse:
        try:
            records = self._catalog.list_records()
        except CatalogError as exc:
            raise MetadataOperationFailedError(
                message="Unable to retrieve images",
            ) from exc

        records = self._filters.filter_by_name_contains(records, name_contains=name_contains)
        page, total, has_more = self._filters.paginate(records, offset=offset, limit=limit)

        return ListImagesResponse(
            images=page,
            total_count=total,
            returned_count=len(page),
            pagination=PaginationInfo.for_page(
                limit=limit,
                offset=offset,
                returned=len(page),
                has_more=has_more,
            ),
        )
