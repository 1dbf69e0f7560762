from __future__ import annotations

import time

from loguru import logger
from pymongo.errors import DuplicateKeyError

from core.database import UploadTransaction, run_in_transaction
from core.errors import (
    AppException,
    ownership_denied,
    resource_creation_failed,
    resource_not_found,
    transaction_failed,
    validation_failed,
)
from repositories.folder_repo import (
    find_owned_folder,
    insert_folder,
    link_folder_resource,
    link_folder_tags,
    unlink_resource,
)
from repositories.resource_repo import delete_resource, insert_resource
from repositories.upload_repo import (
    delete_uploads_for_resource,
    insert_upload_records,
    list_uploads_for_resource,
    resource_has_owner_upload,
)
from schemas.imports import ActivityType, ModerationStatus, UploadStatus
from schemas.resource_schema import FolderCreate, ResourceCreate
from schemas.upload_schema import (
    CreateResourceRequest,
    FileMetadata,
    ResourceCreationResult,
    UploadRecordCreate,
)
from services.activity_service import record_upload_event
from services.presign_service import (
    MAX_FILES_PER_REQUEST,
    object_key_owner,
    validate_file_metadata,
    validate_principal_id,
)


def _epoch() -> int:
    return int(time.time())


def validate_resource_request(payload: CreateResourceRequest, principal_id: str) -> None:
    validate_principal_id(principal_id)

    if not payload.files:
        raise validation_failed("At least one uploaded file is required")
    if len(payload.files) > MAX_FILES_PER_REQUEST:
        raise validation_failed(
            f"Too many files: {len(payload.files)}. Maximum allowed: {MAX_FILES_PER_REQUEST}",
            details={"max_files": MAX_FILES_PER_REQUEST},
        )

    folder = payload.folder_management
    if not folder.selected_folder_id and folder.new_folder_data is None:
        raise validation_failed("Either selectedFolderId or newFolderData is required")

    seen_keys: set[str] = set()
    for position, file in enumerate(payload.files, start=1):
        validate_file_metadata(
            FileMetadata(
                original_filename=file.original_filename,
                mime_type=file.mime_type,
                file_size=file.file_size,
            ),
            position=position,
        )
        if object_key_owner(file.object_key) != principal_id:
            raise validation_failed(
                f"File {position}: Object key does not belong to the current user",
                details={"s3Key": file.object_key},
            )
        if file.object_key in seen_keys:
            raise validation_failed(
                f"File {position}: Duplicate object key",
                details={"s3Key": file.object_key},
            )
        seen_keys.add(file.object_key)


async def _resolve_folder(
    tx: UploadTransaction,
    *,
    payload: CreateResourceRequest,
    principal_id: str,
    created_at: int,
) -> str:
    selection = payload.folder_management

    if selection.selected_folder_id:
        folder = await find_owned_folder(
            tx,
            folder_id=selection.selected_folder_id,
            owner_user_id=principal_id,
        )
        if folder is None:
            raise ownership_denied("Folder", selection.selected_folder_id)
        return folder.id  # type: ignore[return-value]

    new_folder = selection.new_folder_data
    if new_folder is None:
        raise validation_failed("Either selectedFolderId or newFolderData is required")
    folder = await insert_folder(
        tx,
        FolderCreate(
            name=new_folder.name,
            description=new_folder.description or f"Folder for {payload.title}",
            visibility=payload.visibility,
            owner_user_id=principal_id,
            classification_level_id=new_folder.folder_classification_id,
            created_at=created_at,
        ),
    )
    logger.info("Created new folder with ID: {}", folder.id)

    if new_folder.folder_tag_ids:
        linked = await link_folder_tags(tx, folder_id=folder.id, tag_ids=new_folder.folder_tag_ids)  # type: ignore[arg-type]
        logger.info("Linked folder {} to {} new tags", folder.id, linked)
    return folder.id  # type: ignore[return-value]


async def create_resource_with_uploads(
    *,
    payload: CreateResourceRequest,
    principal_id: str,
) -> ResourceCreationResult:
    validate_resource_request(payload, principal_id)
    logger.info("Creating resource with folder association and {} uploads", len(payload.files))

    async def _write(tx: UploadTransaction) -> ResourceCreationResult:
        created_at = _epoch()
        resource = await insert_resource(
            tx,
            ResourceCreate(
                title=payload.title,
                description=payload.description,
                category=payload.category,
                visibility=payload.visibility,
                created_at=created_at,
            ),
        )
        resource_id: str = resource.id  # type: ignore[assignment]
        logger.info("Created resource with ID: {}", resource_id)

        folder_id = await _resolve_folder(tx, payload=payload, principal_id=principal_id, created_at=created_at)
        await link_folder_resource(tx, folder_id=folder_id, resource_id=resource_id)

        await insert_upload_records(
            tx,
            [
                UploadRecordCreate(
                    owner_user_id=principal_id,
                    resource_id=resource_id,
                    file_name=file.original_filename,
                    mime_type=file.mime_type,
                    file_size=file.file_size,
                    object_key=file.object_key,
                    title=file.title or file.original_filename,
                    description=file.description,
                    visibility=file.file_visibility,
                    status=UploadStatus.COMPLETED,
                    moderation_status=ModerationStatus.PENDING_APPROVAL,
                    created_at=created_at,
                )
                for file in payload.files
            ],
        )
        uploads = await list_uploads_for_resource(resource_id, tx=tx)
        return ResourceCreationResult(resource=resource, uploads=uploads, folder_id=folder_id)

    try:
        result = await run_in_transaction(_write)
    except AppException as exc:
        await record_upload_event(
            user_id=principal_id,
            activity_type=ActivityType.UPLOAD_FAILED,
            message=f"Failed to create resource: {exc.message}",
        )
        raise
    except DuplicateKeyError as exc:
        logger.warning("Rejected resource for user {}: object key already registered", principal_id)
        await record_upload_event(
            user_id=principal_id,
            activity_type=ActivityType.UPLOAD_FAILED,
            message="Failed to create resource: object key already registered",
        )
        raise validation_failed("Object key already registered") from exc
    except Exception as exc:
        logger.exception("Failed to create resource with uploads for user {}", principal_id)
        await record_upload_event(
            user_id=principal_id,
            activity_type=ActivityType.UPLOAD_FAILED,
            message=f"Failed to create resource: {exc}",
        )
        raise resource_creation_failed() from exc

    logger.info(
        "Created resource {} in folder {} with {} upload records",
        result.resource.id,
        result.folder_id,
        len(result.uploads),
    )
    return result


async def delete_resource_for_owner(*, resource_id: str, principal_id: str) -> None:
    async def _delete(tx: UploadTransaction) -> None:
        if not await resource_has_owner_upload(tx, resource_id=resource_id, owner_user_id=principal_id):
            raise resource_not_found("Resource", resource_id)
        removed_uploads = await delete_uploads_for_resource(tx, resource_id=resource_id)
        await unlink_resource(tx, resource_id=resource_id)
        if not await delete_resource(tx, resource_id):
            raise resource_not_found("Resource", resource_id)
        logger.info("Deleted resource {} and {} associated uploads", resource_id, removed_uploads)

    try:
        await run_in_transaction(_delete)
    except AppException:
        raise
    except Exception as exc:
        logger.exception("Failed to delete resource {}", resource_id)
        raise transaction_failed("Failed to delete resource. Please try again.") from exc
