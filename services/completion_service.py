from __future__ import annotations

import time

from loguru import logger

from core.database import UploadTransaction, run_in_transaction
from core.errors import AppException, resource_not_found, transaction_failed
from repositories.resource_repo import get_resource_by_id
from repositories.upload_repo import list_uploads_for_resource, mark_uploads_uploaded
from schemas.imports import ActivityType
from schemas.upload_schema import UploadRecordOut
from services.activity_service import record_upload_event


async def complete_upload(
    *,
    resource_id: str,
    object_keys: list[str],
    principal_id: str,
) -> list[UploadRecordOut]:
    """Stamp ``uploaded_at`` on every upload row of the resource.

    Bookkeeping only; visibility and moderation never depend on it. Calling it
    twice leaves the same rows stamped with the later timestamp.
    """
    logger.info("Completing upload for resource {} with {} confirmed keys", resource_id, len(object_keys))
    # Events belong to the uploader; the caller is kept as the actor.
    owner = {"user_id": principal_id}

    async def _complete(tx: UploadTransaction) -> list[UploadRecordOut]:
        resource = await get_resource_by_id(resource_id, tx=tx)
        if resource is None:
            raise resource_not_found("Resource", resource_id)
        existing = await list_uploads_for_resource(resource_id, tx=tx)
        if existing:
            owner["user_id"] = existing[0].owner_user_id
        updated = await mark_uploads_uploaded(tx, resource_id=resource_id, uploaded_at=int(time.time()))
        logger.debug("Marked {} upload rows as uploaded for resource {}", updated, resource_id)
        return await list_uploads_for_resource(resource_id, tx=tx)

    try:
        uploads = await run_in_transaction(_complete)
    except AppException:
        raise
    except Exception as exc:
        logger.exception("Failed to complete upload for resource {}", resource_id)
        await record_upload_event(
            user_id=owner["user_id"],
            actor_id=principal_id,
            activity_type=ActivityType.UPLOAD_FAILED,
            entity_id=resource_id,
            message=f"Failed to complete upload: {exc}",
        )
        raise transaction_failed("Failed to complete upload. Please try again.") from exc

    await record_upload_event(
        user_id=owner["user_id"],
        actor_id=principal_id,
        activity_type=ActivityType.UPLOAD_SUCCESS,
        entity_id=resource_id,
        message=f"Successfully uploaded {len(uploads)} file(s)",
    )
    return uploads
