from __future__ import annotations

import math
import time

from loguru import logger
from starlette.concurrency import run_in_threadpool

from core.errors import resource_not_found, storage_unavailable, validation_failed
from core.settings import get_settings
from core.storage import StorageGatewayManager
from repositories import activity_log_repo
from repositories.folder_repo import get_owned_folder_names
from repositories.resource_repo import get_resource_by_id
from repositories.upload_repo import (
    get_upload_by_id,
    list_owner_uploads_with_resources,
    list_uploads_by_owner,
)
from schemas.imports import ActivityType, ModerationStatus, UploadStatus, Visibility
from schemas.upload_schema import Pagination, UploadRecordOut, UserResourceItem
from services.activity_service import record_upload_event

MAX_PAGE_SIZE = 100

RESOURCE_STATUS_FILTERS: dict[str, str | None] = {
    "all": None,
    "approved": ModerationStatus.APPROVED.value,
    "pending": ModerationStatus.PENDING_APPROVAL.value,
    "rejected": ModerationStatus.REJECTED.value,
}


def _page_window(page: int, limit: int) -> int:
    if page < 1:
        raise validation_failed("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise validation_failed(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return (page - 1) * limit


def build_pagination(*, page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if total else 0)


async def list_my_uploads(*, principal_id: str, page: int = 1, limit: int = 10) -> dict:
    start = _page_window(page, limit)
    items, total = await list_uploads_by_owner(owner_user_id=principal_id, start=start, limit=limit)
    return {"items": items, "pagination": build_pagination(page=page, limit=limit, total=total)}


def _to_resource_item(row: dict, folder_names: dict[str, str]) -> UserResourceItem:
    resource = row.get("resource") or {}
    return UserResourceItem(
        upload_id=str(row["_id"]),
        resource_id=row["resource_id"],
        file_name=row["file_name"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        moderation_status=row["moderation_status"],
        created_at=row["created_at"],
        title=resource.get("title") or "",
        description=resource.get("description") or "",
        visibility=resource.get("visibility") or Visibility.PRIVATE,
        category=resource.get("category"),
        folder_name=folder_names.get(row["resource_id"], "No Folder"),
    )


async def list_user_resources(
    *,
    principal_id: str,
    page: int = 1,
    limit: int = 10,
    status: str = "all",
    search: str | None = None,
) -> dict:
    start = _page_window(page, limit)
    status_key = (status or "all").strip().lower()
    if status_key not in RESOURCE_STATUS_FILTERS:
        raise validation_failed(
            f"Invalid status filter: {status}",
            details={"allowed": sorted(RESOURCE_STATUS_FILTERS)},
        )

    rows, total = await list_owner_uploads_with_resources(
        owner_user_id=principal_id,
        start=start,
        limit=limit,
        moderation_status=RESOURCE_STATUS_FILTERS[status_key],
        search=search,
    )
    folder_names = await get_owned_folder_names(
        resource_ids=list({row["resource_id"] for row in rows}),
        owner_user_id=principal_id,
    )
    return {
        "items": [_to_resource_item(row, folder_names) for row in rows],
        "pagination": build_pagination(page=page, limit=limit, total=total),
    }


def _can_download(upload: UploadRecordOut, *, principal_id: str, resource_visibility: Visibility) -> bool:
    if upload.status != UploadStatus.COMPLETED or upload.moderation_status != ModerationStatus.APPROVED:
        return False
    return upload.owner_user_id == principal_id or resource_visibility == Visibility.PUBLIC


async def generate_download_url(*, upload_id: str, principal_id: str) -> dict:
    upload = await get_upload_by_id(upload_id)
    if upload is None:
        raise resource_not_found("Upload", upload_id)

    resource = await get_resource_by_id(upload.resource_id)
    if resource is None or not _can_download(upload, principal_id=principal_id, resource_visibility=resource.visibility):
        raise resource_not_found("Upload", upload_id)

    expires_in = get_settings().download_url_expires_in
    gateway = StorageGatewayManager.get_instance().provider
    try:
        url = await run_in_threadpool(gateway.presign_download, object_key=upload.object_key, expires_in=expires_in)
    except Exception as exc:
        logger.error("Failed to generate download URL for upload {}: {}", upload_id, exc)
        raise storage_unavailable("Failed to generate download URL") from exc

    try:
        await activity_log_repo.insert_download(
            user_id=principal_id,
            resource_id=upload.resource_id,
            downloaded_at=int(time.time()),
        )
    except Exception:
        logger.exception("Failed to record download of upload {}", upload_id)

    await record_upload_event(
        user_id=principal_id,
        activity_type=ActivityType.DOWNLOAD,
        entity_id=upload.resource_id,
        message=f"Downloaded {upload.file_name}",
    )
    return {
        "downloadUrl": url,
        "fileName": upload.file_name,
        "mimetype": upload.mime_type,
        "expiresIn": expires_in,
    }
