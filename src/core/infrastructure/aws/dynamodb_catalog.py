"""DynamoDB-backed implementation of ImageCatalog."""

from typing import Any

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from core.config import ImageServiceSettings
from core.infrastructure.adapters.dynamodb_adapter import DynamoDBAdapter, DynamoDBAdapterProtocol
from core.models.errors import CatalogError, DuplicateNameError, NotFoundError
from core.models.image import ImageRecord
from core.repositories.catalog_repository import ImageCatalog
from core.utils.constants import (
    CATALOG_NAME_INDEX,
    ERROR_CODE_METADATA_CREATE_FAILED,
    ERROR_CODE_METADATA_DELETE_FAILED,
    ERROR_CODE_METADATA_FETCH_FAILED,
    ERROR_CODE_METADATA_INVALID_FORMAT,
    ERROR_CODE_METADATA_LIST_FAILED,
    ERROR_CODE_METADATA_UPDATE_FAILED,
)
from core.utils.time import utc_now_iso

logger = Logger(UTC=True)

_CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == _CONDITIONAL_CHECK_FAILED


class DynamoDBImageCatalog(ImageCatalog):
    """Image records keyed by ``image_id`` with a ``name-index`` GSI.

    All boto3 errors are caught and translated into ``CatalogError`` or a more
    specific domain error.
    """

    def __init__(
        self,
        settings: ImageServiceSettings,
        adapter: DynamoDBAdapterProtocol | None = None,
    ) -> None:
        self._db: DynamoDBAdapterProtocol = adapter or DynamoDBAdapter(settings)

    @staticmethod
    def _to_record(item: dict[str, Any], *, image_id: str | None = None) -> ImageRecord:
        try:
            return ImageRecord.from_item(item)
        except PydanticValidationError as exc:
            raise CatalogError(
                message="Invalid image record format",
                error_code=ERROR_CODE_METADATA_INVALID_FORMAT,
                details={"image_id": image_id or item.get("image_id")},
            ) from exc

    def create_record(self, *, record: ImageRecord) -> None:
        logger.debug(
            "Creating image record",
            extra={"image_id": record.image_id, "image_name": record.name},
        )

        try:
            self._db.put_item(
                item=record.to_item(),
                condition_expression="attribute_not_exists(image_id)",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise DuplicateNameError(
                    message="This image record already exists",
                    details={"image_id": record.image_id},
                ) from exc

            logger.error("DynamoDB put_item failed", extra={"image_id": record.image_id})
            raise CatalogError(
                message="Unable to save image record",
                error_code=ERROR_CODE_METADATA_CREATE_FAILED,
                details={"image_id": record.image_id},
            ) from exc
        except BotoCoreError as exc:
            logger.exception("Unexpected error creating image record")
            raise CatalogError(
                message="Unable to save image record",
                error_code=ERROR_CODE_METADATA_CREATE_FAILED,
                details={"image_id": record.image_id},
            ) from exc

        logger.info(
            "Image record created",
            extra={"image_id": record.image_id, "image_name": record.name},
        )

    def fetch_record(self, *, image_id: str) -> ImageRecord | None:
        try:
            response = self._db.get_item(key={"image_id": image_id})
        except (ClientError, BotoCoreError) as exc:
            logger.error("DynamoDB get_item failed", extra={"image_id": image_id})
            raise CatalogError(
                message="Unable to retrieve image record",
                error_code=ERROR_CODE_METADATA_FETCH_FAILED,
                details={"image_id": image_id},
            ) from exc

        item = response.get("Item")
        if item is None:
            return None

        return self._to_record(item, image_id=image_id)

    def fetch_record_by_name(self, *, name: str) -> ImageRecord | None:
        query_kwargs: dict[str, Any] = {
            "IndexName": CATALOG_NAME_INDEX,
            "KeyConditionExpression": Key("name").eq(name),
        }
        items: list[dict[str, Any]] = []

        try:
            while True:
                response = self._db.query(**query_kwargs)
                items.extend(response.get("Items", []))

                last_evaluated_key = response.get("LastEvaluatedKey")
                if not last_evaluated_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_evaluated_key
        except (ClientError, BotoCoreError) as exc:
            logger.error("DynamoDB name query failed", extra={"image_name": name})
            raise CatalogError(
                message="Unable to retrieve image record",
                error_code=ERROR_CODE_METADATA_FETCH_FAILED,
                details={"name": name},
            ) from exc

        if not items:
            return None

        if len(items) > 1:
            logger.warning(
                "Multiple records share one name",
                extra={"image_name": name, "count": len(items)},
            )

        # ISO-8601 UTC timestamps sort lexicographically
        newest = max(items, key=lambda item: str(item.get("created_at", "")))
        return self._to_record(newest)

    def update_mirror_state(
        self,
        *,
        image_id: str,
        mirror_status: str,
        mirror_public_id: str | None = None,
        mirror_url: str | None = None,
    ) -> None:
        names: dict[str, str] = {"#status": "mirror_status"}
        values: dict[str, Any] = {":status": mirror_status}
        assignments = ["#status = :status"]

        if mirror_public_id:
            names["#refs"] = "backend_refs"
            names["#public_id"] = "mirror_public_id"
            values[":public_id"] = mirror_public_id
            assignments.append("#refs.#public_id = :public_id")

        if mirror_url:
            names["#refs"] = "backend_refs"
            names["#url"] = "mirror_url"
            values[":url"] = mirror_url
            assignments.append("#refs.#url = :url")

        try:
            self._db.update_item(
                Key={"image_id": image_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression="attribute_exists(image_id)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise NotFoundError(
                    message="Image record no longer exists",
                    details={"image_id": image_id},
                ) from exc

            logger.error("DynamoDB mirror state update failed", extra={"image_id": image_id})
            raise CatalogError(
                message="Unable to update image record",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"image_id": image_id},
            ) from exc
        except BotoCoreError as exc:
            raise CatalogError(
                message="Unable to update image record",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"image_id": image_id},
            ) from exc

        logger.debug(
            "Mirror state recorded",
            extra={"image_id": image_id, "mirror_status": mirror_status},
        )

    def update_caption(self, *, image_id: str, caption: str | None) -> ImageRecord:
        kwargs: dict[str, Any] = {
            "Key": {"image_id": image_id},
            "ConditionExpression": "attribute_exists(image_id)",
            "ReturnValues": "ALL_NEW",
            "ExpressionAttributeNames": {"#caption": "caption", "#updated": "updated_at"},
        }

        if caption is None:
            kwargs["UpdateExpression"] = "SET #updated = :updated_at REMOVE #caption"
            kwargs["ExpressionAttributeValues"] = {":updated_at": utc_now_iso()}
        else:
            kwargs["UpdateExpression"] = "SET #caption = :caption, #updated = :updated_at"
            kwargs["ExpressionAttributeValues"] = {
                ":caption": caption,
                ":updated_at": utc_now_iso(),
            }

        try:
            response = self._db.update_item(**kwargs)
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise NotFoundError(
                    message="Image not found",
                    details={"image_id": image_id},
                ) from exc

            logger.error("DynamoDB caption update failed", extra={"image_id": image_id})
            raise CatalogError(
                message="Unable to update image record",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"image_id": image_id},
            ) from exc
        except BotoCoreError as exc:
            raise CatalogError(
                message="Unable to update image record",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"image_id": image_id},
            ) from exc

        logger.info("Caption updated", extra={"image_id": image_id})
        return self._to_record(response.get("Attributes", {}), image_id=image_id)

    def remove_record(self, *, image_id: str) -> None:
        try:
            self._db.delete_item(key={"image_id": image_id})
        except (ClientError, BotoCoreError) as exc:
            logger.error("DynamoDB delete_item failed", extra={"image_id": image_id})
            raise CatalogError(
                message="Unable to delete image record",
                error_code=ERROR_CODE_METADATA_DELETE_FAILED,
                details={"image_id": image_id},
            ) from exc

        logger.info("Image record removed", extra={"image_id": image_id})

    def list_records(self, *, limit: int | None = None) -> list[ImageRecord]:
        """Scan the whole table and return records newest first.

        The catalog holds one row per stored image, so a full scan stays small
        enough for an admin listing.
        """
        scan_kwargs: dict[str, Any] = {}
        items: list[dict[str, Any]] = []

        try:
            while True:
                response = self._db.scan(**scan_kwargs)
                items.extend(response.get("Items", []))

                last_evaluated_key = response.get("LastEvaluatedKey")
                if not last_evaluated_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_evaluated_key
        except (ClientError, BotoCoreError) as exc:
            logger.error("DynamoDB scan failed")
            raise CatalogError(
                message="Unable to list image records",
                error_code=ERROR_CODE_METADATA_LIST_FAILED,
            ) from exc

        items.sort(key=lambda item: str(item.get("created_at", "")), reverse=True)
        if limit is not None:
            items = items[:limit]

        logger.info("Image records listed", extra={"count": len(items)})
        return [self._to_record(item) for item in items]
