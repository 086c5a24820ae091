import base64
import os
import threading
import time
from collections.abc import Generator, Iterable
from typing import Any

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("IMAGE_S3_BUCKET_NAME", "test-image-bucket")
os.environ.setdefault("IMAGE_METADATA_TABLE_NAME", "test-image-metadata")
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "image-service")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "ImageService")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")

from core.config import ImageServiceSettings  # noqa: E402
from core.infrastructure.cloudinary.cloudinary_mirror import CloudinaryMirror  # noqa: E402
from core.models.errors import (  # noqa: E402
    CatalogError,
    DuplicateNameError,
    MirrorError,
    NotFoundError,
    StorageUnavailableError,
)
from core.models.image import BlobHandle, BlobStream, ImageRecord, MirrorHandle  # noqa: E402
from core.repositories.blob_store import BlobStore  # noqa: E402
from core.repositories.catalog_repository import ImageCatalog  # noqa: E402
from core.repositories.mirror_repository import ImageMirror  # noqa: E402
from core.utils.time import utc_now_iso  # noqa: E402

PNG_1X1_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
)


@pytest.fixture
def aws_mock() -> Generator[None, None, None]:
    with mock_aws():
        yield


@pytest.fixture
def dynamodb_resource(aws_mock: None) -> Any:
    return boto3.resource("dynamodb", region_name=os.environ["AWS_REGION"])


@pytest.fixture
def dynamodb_table(dynamodb_resource: Any) -> Generator[Any, None, None]:
    """
    Catalog table keyed by image_id with the name-index GSI.
    Cleans up all items after the test.
    """
    table_name = os.environ["IMAGE_METADATA_TABLE_NAME"]

    try:
        table = dynamodb_resource.Table(table_name)
        table.load()
    except ClientError:
        table = dynamodb_resource.create_table(
            TableName=table_name,
            KeySchema=[{"AttributeName": "image_id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "image_id", "AttributeType": "S"},
                {"AttributeName": "name", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "name-index",
                    "KeySchema": [{"AttributeName": "name", "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()

    yield table

    scan = table.scan()
    with table.batch_writer() as batch:
        for item in scan.get("Items", []):
            batch.delete_item(Key={"image_id": item["image_id"]})


@pytest.fixture
def s3_client(aws_mock: None) -> Any:
    return boto3.client("s3", region_name=os.environ["AWS_REGION"])


@pytest.fixture
def s3_bucket(s3_client: Any) -> Generator[str, None, None]:
    """Create the image bucket and clean up all objects after the test."""
    bucket_name = os.environ["IMAGE_S3_BUCKET_NAME"]
    s3_client.create_bucket(Bucket=bucket_name)

    yield bucket_name

    response = s3_client.list_objects_v2(Bucket=bucket_name)
    for obj in response.get("Contents", []):
        s3_client.delete_object(Bucket=bucket_name, Key=obj["Key"])


@pytest.fixture
def s3_get_object(s3_client: Any, s3_bucket: str) -> Any:
    def _get(key: str) -> bytes:
        return s3_client.get_object(Bucket=s3_bucket, Key=key)["Body"].read()

    return _get


@pytest.fixture
def sample_image_binary() -> str:
    """1x1 PNG, base64 encoded."""
    return PNG_1X1_BASE64


@pytest.fixture
def png_bytes(sample_image_binary: str) -> bytes:
    return base64.b64decode(sample_image_binary)


@pytest.fixture
def jpeg_bytes() -> bytes:
    return b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64 + b"\xff\xd9"


@pytest.fixture
def settings() -> ImageServiceSettings:
    return ImageServiceSettings(
        bucket_name=os.environ["IMAGE_S3_BUCKET_NAME"],
        table_name=os.environ["IMAGE_METADATA_TABLE_NAME"],
        aws_region=os.environ["AWS_REGION"],
        blob_retry_backoff_seconds=0,
    )


@pytest.fixture
def mirror_settings(settings: ImageServiceSettings) -> ImageServiceSettings:
    return settings.model_copy(
        update={"mirror_enabled": True, "cloudinary_cloud_name": "demo-cloud"}
    )


# ----------------------------------------------------------------------
# In-memory backends
# ----------------------------------------------------------------------


class InMemoryBlobStore(BlobStore):
    """Dict-backed blob store with switchable failures."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.unavailable = False
        self.put_failures = 0
        self.put_calls = 0
        self._lock = threading.Lock()

    @staticmethod
    def key_for(name: str) -> str:
        return f"images/{name}"

    def _check_available(self) -> None:
        if self.unavailable:
            raise StorageUnavailableError(message="Image storage is unavailable")

    def put(
        self,
        *,
        name: str,
        data: bytes | Iterable[bytes],
        content_type: str,
        overwrite: bool = False,
    ) -> BlobHandle:
        body = data if isinstance(data, bytes) else b"".join(data)
        key = self.key_for(name)

        with self._lock:
            self.put_calls += 1
            if self.put_failures > 0:
                self.put_failures -= 1
                raise StorageUnavailableError(message="Image storage is unavailable")
            self._check_available()
            if not overwrite and key in self.objects:
                raise DuplicateNameError(message="An image with this name already exists")
            self.objects[key] = (body, content_type)

        return BlobHandle(key=key)

    def get(self, *, name: str) -> BlobStream:
        self._check_available()
        key = self.key_for(name)
        if key not in self.objects:
            raise NotFoundError(message="Image not found")
        body, content_type = self.objects[key]
        return BlobStream(chunks=iter([body]), content_type=content_type)

    def delete(self, *, handle: BlobHandle) -> None:
        self._check_available()
        if handle.key not in self.objects:
            raise NotFoundError(message="Image not found")
        del self.objects[handle.key]

    def exists(self, *, name: str) -> bool:
        self._check_available()
        return self.key_for(name) in self.objects


class InMemoryCatalog(ImageCatalog):
    """Dict-backed catalog keyed by image_id."""

    def __init__(self) -> None:
        self.records: dict[str, ImageRecord] = {}
        self.fail_lookups = False
        self.fail_writes = False
        self._lock = threading.Lock()

    def create_record(self, *, record: ImageRecord) -> None:
        if self.fail_writes:
            raise CatalogError(message="Unable to save image record")
        with self._lock:
            self.records[record.image_id] = record

    def fetch_record(self, *, image_id: str) -> ImageRecord | None:
        return self.records.get(image_id)

    def fetch_record_by_name(self, *, name: str) -> ImageRecord | None:
        if self.fail_lookups:
            raise CatalogError(message="Unable to retrieve image record")
        matches = [record for record in self.records.values() if record.name == name]
        if not matches:
            return None
        return max(matches, key=lambda record: record.created_at)

    def update_mirror_state(
        self,
        *,
        image_id: str,
        mirror_status: str,
        mirror_public_id: str | None = None,
        mirror_url: str | None = None,
    ) -> None:
        with self._lock:
            record = self.records.get(image_id)
            if record is None:
                raise NotFoundError(message="Image record no longer exists")

            refs = record.backend_refs.model_copy(
                update={
                    key: value
                    for key, value in {
                        "mirror_public_id": mirror_public_id,
                        "mirror_url": mirror_url,
                    }.items()
                    if value
                }
            )
            self.records[image_id] = record.model_copy(
                update={"mirror_status": mirror_status, "backend_refs": refs}
            )

    def update_caption(self, *, image_id: str, caption: str | None) -> ImageRecord:
        with self._lock:
            record = self.records.get(image_id)
            if record is None:
                raise NotFoundError(message="Image not found")
            updated = record.model_copy(update={"caption": caption, "updated_at": utc_now_iso()})
            self.records[image_id] = updated
            return updated

    def remove_record(self, *, image_id: str) -> None:
        with self._lock:
            self.records.pop(image_id, None)

    def list_records(self, *, limit: int | None = None) -> list[ImageRecord]:
        records = sorted(self.records.values(), key=lambda r: r.created_at, reverse=True)
        return records if limit is None else records[:limit]


class FakeMirror(ImageMirror):
    """Dict-backed mirror keyed by public id, with switchable failures."""

    folder = "website_uploads"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.fail_uploads = False
        self.fail_fetches = False
        self.fail_deletes = False
        self.upload_delay = 0.0
        self.upload_calls = 0
        self.fetch_calls = 0
        self.deleted: list[str] = []

    def public_id_for(self, name: str) -> str:
        return f"{self.folder}/{CloudinaryMirror.asset_name(name)}"

    def public_url(self, *, public_id: str) -> str:
        return f"https://mirror.example/{public_id}"

    def upload(self, *, data: bytes, suggested_name: str) -> MirrorHandle:
        self.upload_calls += 1
        if self.upload_delay:
            time.sleep(self.upload_delay)
        if self.fail_uploads:
            raise MirrorError(message="Unable to upload image to mirror")
        public_id = self.public_id_for(suggested_name)
        self.objects[public_id] = data
        return MirrorHandle(public_url=self.public_url(public_id=public_id), external_id=public_id)

    def fetch(self, *, public_id: str, url: str | None = None) -> BlobStream:
        self.fetch_calls += 1
        if self.fail_fetches:
            raise MirrorError(message="Unable to reach mirror")
        if public_id not in self.objects:
            raise NotFoundError(message="Image not found on mirror")
        return BlobStream(chunks=iter([self.objects[public_id]]))

    def delete(self, *, public_id: str) -> None:
        if self.fail_deletes:
            raise MirrorError(message="Unable to delete image from mirror")
        if public_id not in self.objects:
            raise NotFoundError(message="Image not found on mirror")
        del self.objects[public_id]
        self.deleted.append(public_id)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def mirror() -> FakeMirror:
    return FakeMirror()
