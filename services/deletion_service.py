from __future__ import annotations

from loguru import logger
from starlette.concurrency import run_in_threadpool

from core.errors import object_access_denied, storage_unavailable, validation_failed
from core.storage import StorageGatewayManager
from repositories.upload_repo import delete_uploads_by_object_keys
from services.presign_service import object_key_owner


def ensure_owned_keys(object_keys: list[str], principal_id: str) -> None:
    """Reject the whole request if any key's owner segment is not the caller."""
    foreign = [key for key in object_keys if object_key_owner(key) != principal_id]
    if foreign:
        logger.warning("User {} attempted to delete {} foreign object key(s)", principal_id, len(foreign))
        raise object_access_denied(foreign)


async def delete_object(*, object_key: str, principal_id: str) -> dict:
    ensure_owned_keys([object_key], principal_id)
    gateway = StorageGatewayManager.get_instance().provider

    try:
        await run_in_threadpool(gateway.delete_object, object_key=object_key)
    except Exception as exc:
        logger.error("Failed to delete object {}: {}", object_key, exc)
        raise storage_unavailable("Failed to delete file from storage") from exc

    removed = await delete_uploads_by_object_keys(owner_user_id=principal_id, object_keys=[object_key])
    logger.info("Deleted object {} and {} upload row(s)", object_key, removed)
    return {"deleted": [object_key], "removedRecords": removed}


async def delete_objects(*, object_keys: list[str], principal_id: str) -> dict:
    unique_keys = list(dict.fromkeys(key for key in object_keys if key))
    if not unique_keys:
        raise validation_failed("At least one object key is required")
    ensure_owned_keys(unique_keys, principal_id)
    gateway = StorageGatewayManager.get_instance().provider

    try:
        result = await run_in_threadpool(gateway.delete_objects, object_keys=unique_keys)
    except Exception as exc:
        logger.error("Failed to delete {} objects: {}", len(unique_keys), exc)
        raise storage_unavailable("Failed to delete files from storage") from exc

    removed = 0
    if result.deleted:
        removed = await delete_uploads_by_object_keys(owner_user_id=principal_id, object_keys=list(result.deleted))

    if not result.ok:
        logger.error(
            "Storage rejected {} of {} deletes; removed {} upload row(s) for the rest",
            len(result.failed),
            len(unique_keys),
            removed,
        )
        raise storage_unavailable(
            "Failed to delete files from storage",
            details={"failed": list(result.failed), "deleted": list(result.deleted)},
        )

    logger.info("Deleted {} objects and {} upload row(s)", len(result.deleted), removed)
    return {"deleted": list(result.deleted), "removedRecords": removed}
