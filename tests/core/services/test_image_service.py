import threading
import time
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from core.config import ImageServiceSettings
from core.models.errors import (
    DuplicateNameError,
    ImageDeletionFailedError,
    MetadataOperationFailedError,
    NotFoundError,
    UploadFailedError,
    ValidationError,
)
from core.services.image_service import ImageService
from core.utils.constants import (
    ERROR_CODE_FILE_SIZE_EXCEEDED,
    ERROR_CODE_MISSING_FILE,
    ERROR_CODE_UNSUPPORTED_MIME_TYPE,
)

MakeService = Callable[..., ImageService]


@pytest.fixture
def make_service(
    mirror_settings: ImageServiceSettings,
    blob_store,
    catalog,
    mirror,
) -> Generator[MakeService, None, None]:
    services: list[ImageService] = []

    def _make(**settings_update) -> ImageService:
        service = ImageService(
            mirror_settings.model_copy(update=settings_update),
            blob_store=blob_store,
            catalog=catalog,
            mirror=mirror,
        )
        services.append(service)
        return service

    yield _make

    for service in services:
        service.shutdown()


def logged(mock_logger, level: str, message: str) -> bool:
    return any(
        call.args and call.args[0] == message
        for call in getattr(mock_logger, level).call_args_list
    )


class TestUpload:
    def test_upload_round_trip_through_mirror(
        self, make_service: MakeService, catalog, mirror, png_bytes: bytes
    ) -> None:
        service = make_service()

        result = service.upload(content=png_bytes, original_filename="shoe.png", caption="Red")

        assert result.url == f"/images/{result.record.name}"
        assert result.record.name.endswith(".png")
        assert result.record.content_type == "image/png"
        assert result.record.size_bytes == len(png_bytes)
        assert result.record.caption == "Red"
        assert result.record.mirror_status == "pending"

        assert service.wait_for_mirror_tasks(timeout=5) is True
        stored = catalog.fetch_record(image_id=result.record.image_id)
        assert stored.mirror_status == "synced"
        assert stored.backend_refs.mirror_public_id

        payload = service.retrieve(result.record.name)
        assert payload.source == "mirror"
        assert payload.content == png_bytes
        assert payload.content_type == "image/png"

    def test_upload_without_mirror(
        self, make_service: MakeService, mirror, png_bytes: bytes
    ) -> None:
        service = make_service(mirror_enabled=False)

        result = service.upload(content=png_bytes, original_filename="shoe.png")

        assert result.record.mirror_status == "disabled"
        assert mirror.upload_calls == 0
        assert service.retrieve(result.record.name).source == "blob"

    def test_mirror_failure_does_not_fail_upload(
        self, make_service: MakeService, catalog, mirror, png_bytes: bytes
    ) -> None:
        mirror.fail_uploads = True
        service = make_service()

        result = service.upload(content=png_bytes, original_filename="shoe.png")
        service.wait_for_mirror_tasks(timeout=5)

        assert catalog.fetch_record(image_id=result.record.image_id).mirror_status == "failed"
        payload = service.retrieve(result.record.name)
        assert payload.source == "blob"
        assert payload.content == png_bytes

    def test_degraded_mirror_is_skipped_for_new_uploads(
        self, make_service: MakeService, mirror, png_bytes: bytes
    ) -> None:
        mirror.fail_uploads = True
        service = make_service(mirror_failure_threshold=2)

        for _ in range(2):
            service.upload(content=png_bytes)
            service.wait_for_mirror_tasks(timeout=5)

        assert service.mirror_health.is_degraded is True

        result = service.upload(content=png_bytes)

        assert result.record.mirror_status == "disabled"
        assert mirror.upload_calls == 2

    def test_random_names_are_unique(self, make_service: MakeService, png_bytes: bytes) -> None:
        service = make_service(mirror_enabled=False)

        first = service.upload(content=png_bytes, original_filename="shoe.png")
        second = service.upload(content=png_bytes, original_filename="shoe.png")

        assert first.record.name != second.record.name

    def test_original_naming_keeps_client_name(
        self, make_service: MakeService, png_bytes: bytes
    ) -> None:
        service = make_service(mirror_enabled=False, naming_policy="original")

        result = service.upload(content=png_bytes, original_filename="Red Shoe.png")

        assert result.record.name == "Red_Shoe.png"
        assert result.url == "/images/Red_Shoe.png"

    def test_missing_payload(self, make_service: MakeService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            make_service().upload(content=b"")
        assert exc_info.value.error_code == ERROR_CODE_MISSING_FILE

    def test_oversized_payload(self, make_service: MakeService, png_bytes: bytes) -> None:
        service = make_service(max_file_size=len(png_bytes) - 1)

        with pytest.raises(ValidationError) as exc_info:
            service.upload(content=png_bytes)
        assert exc_info.value.error_code == ERROR_CODE_FILE_SIZE_EXCEEDED

    def test_unsupported_content(self, make_service: MakeService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            make_service().upload(content=b"%PDF-1.7 not an image")
        assert exc_info.value.error_code == ERROR_CODE_UNSUPPORTED_MIME_TYPE

    def test_caption_too_long(self, make_service: MakeService, png_bytes: bytes) -> None:
        with pytest.raises(ValidationError):
            make_service().upload(content=png_bytes, caption="x" * 501)

    def test_blob_write_retried_once(
        self, make_service: MakeService, blob_store, png_bytes: bytes
    ) -> None:
        blob_store.put_failures = 1
        service = make_service(mirror_enabled=False)

        result = service.upload(content=png_bytes)

        assert blob_store.put_calls == 2
        assert blob_store.exists(name=result.record.name)

    def test_blob_write_gives_up(
        self, make_service: MakeService, blob_store, catalog, png_bytes: bytes
    ) -> None:
        blob_store.put_failures = 2
        service = make_service(mirror_enabled=False)

        with pytest.raises(UploadFailedError):
            service.upload(content=png_bytes)

        assert blob_store.put_calls == 2
        assert catalog.records == {}

    def test_catalog_failure_discards_blob(
        self, make_service: MakeService, blob_store, catalog, png_bytes: bytes
    ) -> None:
        catalog.fail_writes = True
        service = make_service()

        with pytest.raises(MetadataOperationFailedError):
            service.upload(content=png_bytes)

        assert blob_store.objects == {}

    def test_shutdown_without_waiting_cancels_queued_uploads(
        self, mirror_settings: ImageServiceSettings, blob_store, catalog, mirror, png_bytes: bytes
    ) -> None:
        mirror.upload_delay = 0.2
        executor = ThreadPoolExecutor(max_workers=1)
        service = ImageService(
            mirror_settings,
            blob_store=blob_store,
            catalog=catalog,
            mirror=mirror,
            executor=executor,
        )
        first = service.upload(content=png_bytes)
        deadline = time.monotonic() + 5
        while mirror.upload_calls == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        second = service.upload(content=png_bytes)

        service.shutdown(wait_for_tasks=False)
        executor.shutdown(wait=True)

        assert mirror.upload_calls == 1
        assert catalog.records[first.record.image_id].mirror_status == "synced"
        assert catalog.records[second.record.image_id].mirror_status == "pending"


class TestDuplicateNames:
    def test_reject_policy(self, make_service: MakeService, png_bytes: bytes) -> None:
        service = make_service(mirror_enabled=False, naming_policy="original")
        service.upload(content=png_bytes, original_filename="shoe.png")

        with pytest.raises(DuplicateNameError):
            service.upload(content=png_bytes + b"v2", original_filename="shoe.png")

    def test_concurrent_uploads_have_one_winner(
        self, make_service: MakeService, blob_store, catalog, png_bytes: bytes
    ) -> None:
        service = make_service(mirror_enabled=False, naming_policy="original")
        outcomes: list[str] = []
        lock = threading.Lock()
        start = threading.Barrier(5)

        def uploader(index: int) -> None:
            start.wait()
            try:
                service.upload(content=png_bytes + bytes([index]), original_filename="shoe.png")
                outcome = "ok"
            except DuplicateNameError:
                outcome = "duplicate"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=uploader, args=(i,)) for i in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == 4
        assert len(catalog.records) == 1

        record = next(iter(catalog.records.values()))
        stored, _ = blob_store.objects["images/shoe.png"]
        assert len(stored) == record.size_bytes

    def test_overwrite_policy_replaces_image(
        self, make_service: MakeService, catalog, png_bytes: bytes
    ) -> None:
        service = make_service(naming_policy="original", duplicate_name_policy="overwrite")
        first = service.upload(content=png_bytes, original_filename="shoe.png")
        service.wait_for_mirror_tasks(timeout=5)

        with patch("core.services.image_service.logger") as mock_logger:
            second = service.upload(content=png_bytes + b"v2", original_filename="shoe.png")
            service.wait_for_mirror_tasks(timeout=5)

        assert logged(mock_logger, "warning", "Mirror copy orphaned by overwrite")
        assert catalog.fetch_record(image_id=first.record.image_id) is None
        assert list(catalog.records) == [second.record.image_id]

        payload = service.retrieve("shoe.png")
        assert payload.content == png_bytes + b"v2"

    def test_names_sharing_a_stem_keep_separate_mirror_copies(
        self, make_service: MakeService, catalog, mirror, png_bytes: bytes, jpeg_bytes: bytes
    ) -> None:
        service = make_service(naming_policy="original")
        png = service.upload(content=png_bytes, original_filename="logo.png")
        jpeg = service.upload(content=jpeg_bytes, original_filename="logo.jpg")
        assert service.wait_for_mirror_tasks(timeout=5) is True

        png_id = catalog.fetch_record(image_id=png.record.image_id).backend_refs.mirror_public_id
        jpeg_id = catalog.fetch_record(image_id=jpeg.record.image_id).backend_refs.mirror_public_id
        assert png_id != jpeg_id

        payload = service.retrieve("logo.png")
        assert payload.source == "mirror"
        assert payload.content == png_bytes

        service.delete(jpeg.record.image_id)

        payload = service.retrieve("logo.png")
        assert payload.source == "mirror"
        assert payload.content == png_bytes
        assert list(mirror.objects) == [png_id]


class TestRetrieve:
    def test_mirror_fetch_failure_falls_back_to_blob(
        self, make_service: MakeService, mirror, png_bytes: bytes
    ) -> None:
        service = make_service()
        result = service.upload(content=png_bytes)
        service.wait_for_mirror_tasks(timeout=5)
        mirror.fail_fetches = True

        with patch("core.services.image_service.logger") as mock_logger:
            payload = service.retrieve(result.record.name)

        assert payload.source == "blob"
        assert payload.content == png_bytes
        assert logged(mock_logger, "warning", "Mirror fetch failed, falling back to blob store")
        assert service.mirror_health.consecutive_failures == 1

    def test_degraded_mirror_is_not_tried(
        self, make_service: MakeService, mirror, png_bytes: bytes
    ) -> None:
        service = make_service(mirror_failure_threshold=1)
        result = service.upload(content=png_bytes)
        service.wait_for_mirror_tasks(timeout=5)
        mirror.fail_fetches = True

        service.retrieve(result.record.name)
        calls_before = mirror.fetch_calls
        payload = service.retrieve(result.record.name)

        assert payload.source == "blob"
        assert mirror.fetch_calls == calls_before

    def test_both_backends_down_serves_fallback(
        self,
        make_service: MakeService,
        blob_store,
        mirror,
        png_bytes: bytes,
    ) -> None:
        service = make_service()
        result = service.upload(content=png_bytes)
        service.wait_for_mirror_tasks(timeout=5)
        mirror.fail_fetches = True
        blob_store.unavailable = True

        payload = service.retrieve(result.record.name)

        assert payload.source == "fallback"
        assert payload.content == service.settings.fallback_image_path.read_bytes()
        assert payload.content_type == "image/png"

    def test_unknown_name_serves_fallback(self, make_service: MakeService) -> None:
        with patch("core.services.image_service.logger") as mock_logger:
            payload = make_service().retrieve("does-not-exist.jpg")

        assert payload.source == "fallback"
        assert payload.name == "does-not-exist.jpg"
        assert logged(mock_logger, "warning", "Serving fallback image")

    def test_not_found_policy(self, make_service: MakeService) -> None:
        service = make_service(missing_image_policy="not_found")

        with pytest.raises(NotFoundError):
            service.retrieve("does-not-exist.jpg")

    def test_missing_fallback_file(self, make_service: MakeService, tmp_path) -> None:
        service = make_service(fallback_image_path=tmp_path / "missing.png")

        with pytest.raises(NotFoundError):
            service.retrieve("does-not-exist.jpg")

    def test_catalog_outage_still_serves_blob(
        self, make_service: MakeService, catalog, png_bytes: bytes
    ) -> None:
        service = make_service(mirror_enabled=False, naming_policy="original")
        service.upload(content=png_bytes, original_filename="shoe.png")
        catalog.fail_lookups = True

        payload = service.retrieve("shoe.png")

        assert payload.source == "blob"
        assert payload.content_type == "image/png"

    def test_invalid_name(self, make_service: MakeService) -> None:
        with pytest.raises(ValidationError):
            make_service().retrieve("../secret.png")


class TestDelete:
    def test_delete_from_every_backend(
        self, make_service: MakeService, blob_store, catalog, mirror, png_bytes: bytes
    ) -> None:
        service = make_service()
        result = service.upload(content=png_bytes)
        service.wait_for_mirror_tasks(timeout=5)

        deleted = service.delete(result.record.image_id)

        assert deleted.deleted_from == ["blob", "mirror"]
        assert deleted.stale_references == {}
        assert catalog.records == {}
        assert blob_store.objects == {}
        assert mirror.objects == {}

    def test_partial_delete_logs_stale_reference(
        self, make_service: MakeService, catalog, mirror, png_bytes: bytes
    ) -> None:
        service = make_service()
        result = service.upload(content=png_bytes)
        service.wait_for_mirror_tasks(timeout=5)
        mirror.fail_deletes = True

        with patch("core.services.image_service.logger") as mock_logger:
            deleted = service.delete(result.record.image_id)

        assert deleted.deleted_from == ["blob"]
        assert "mirror" in deleted.stale_references
        assert logged(mock_logger, "warning", "Stale backend reference left after delete")
        assert catalog.records == {}

    def test_all_backends_failing_keeps_record(
        self, make_service: MakeService, blob_store, catalog, mirror, png_bytes: bytes
    ) -> None:
        service = make_service()
        result = service.upload(content=png_bytes)
        service.wait_for_mirror_tasks(timeout=5)
        mirror.fail_deletes = True
        blob_store.unavailable = True

        with pytest.raises(ImageDeletionFailedError):
            service.delete(result.record.image_id)

        assert result.record.image_id in catalog.records

    def test_already_missing_blob_counts_as_deleted(
        self, make_service: MakeService, blob_store, catalog, png_bytes: bytes
    ) -> None:
        service = make_service(mirror_enabled=False)
        result = service.upload(content=png_bytes)
        blob_store.objects.clear()

        deleted = service.delete(result.record.image_id)

        assert deleted.deleted_from == ["blob"]
        assert catalog.records == {}

    def test_unknown_image(self, make_service: MakeService) -> None:
        with pytest.raises(NotFoundError):
            make_service().delete("img_missing")

    def test_delete_during_mirror_upload_removes_mirror_copy(
        self, make_service: MakeService, catalog, mirror, png_bytes: bytes
    ) -> None:
        mirror.upload_delay = 0.2
        service = make_service()
        result = service.upload(content=png_bytes)

        deleted = service.delete(result.record.image_id)
        assert service.wait_for_mirror_tasks(timeout=5) is True

        assert deleted.deleted_from == ["blob"]
        assert catalog.records == {}
        assert mirror.objects == {}
        assert len(mirror.deleted) == 1


class TestMetadata:
    def test_image_exists(self, make_service: MakeService, png_bytes: bytes) -> None:
        service = make_service(mirror_enabled=False)
        result = service.upload(content=png_bytes)

        assert service.image_exists(result.record.name) is True
        assert service.image_exists("missing.png") is False

    def test_update_caption(self, make_service: MakeService, png_bytes: bytes) -> None:
        service = make_service(mirror_enabled=False)
        result = service.upload(content=png_bytes, caption="old")

        updated = service.update_caption(result.record.image_id, "new")

        assert updated.caption == "new"
        assert updated.updated_at is not None

    def test_update_caption_too_long(self, make_service: MakeService) -> None:
        with pytest.raises(ValidationError):
            make_service().update_caption("img_1", "x" * 501)

    def test_update_caption_unknown_image(self, make_service: MakeService) -> None:
        with pytest.raises(NotFoundError):
            make_service().update_caption("img_missing", "x")

    def test_list_images(self, make_service: MakeService, png_bytes: bytes) -> None:
        service = make_service(mirror_enabled=False, naming_policy="original")
        for filename in ("shoe-1.png", "shoe-2.png", "hat.png"):
            service.upload(content=png_bytes, original_filename=filename)

        response = service.list_images(name_contains="shoe", limit=1, offset=0)

        assert response.total_count == 2
        assert response.returned_count == 1
        assert response.pagination.has_more is True
        assert response.pagination.next_offset == 1

    def test_reference_for(self, make_service: MakeService) -> None:
        assert make_service().reference_for("shoe.png") == "/images/shoe.png"
