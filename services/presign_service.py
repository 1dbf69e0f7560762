from __future__ import annotations

import re
from uuid import uuid4

from loguru import logger
from starlette.concurrency import run_in_threadpool

from core.errors import AppException, resource_not_found, storage_unavailable, validation_failed
from core.rate_limiter import RateLimiter
from core.retry import RetryPolicy
from core.settings import get_settings
from core.storage import StorageGatewayManager
from repositories.upload_repo import get_upload_by_id
from repositories.user_repo import principal_exists
from schemas.upload_schema import FileMetadata, PresignedFile, PresignedUrlResponse

MAX_FILES_PER_REQUEST = 10
MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024
MAX_FILENAME_LENGTH = 255
ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)

PRESIGN_OPERATION = "presign"
PRESIGN_RATE_LIMIT = 50
PRESIGN_RATE_WINDOW_MS = 60_000
PRESIGN_RETRY_POLICY = RetryPolicy(max_attempts=3, base_delay_ms=1000)

OBJECT_KEY_PREFIX = "uploads"
PRINCIPAL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")


def validate_principal_id(principal_id: str | None) -> None:
    if not isinstance(principal_id, str) or not PRINCIPAL_ID_PATTERN.fullmatch(principal_id):
        raise validation_failed("Valid user ID is required")


def validate_file_metadata(file: FileMetadata, *, position: int) -> None:
    filename = file.original_filename
    if not filename or not filename.strip():
        raise validation_failed(f"File {position}: Invalid filename")
    if ".." in filename or "/" in filename:
        raise validation_failed(f"File {position}: Invalid filename: contains illegal characters")
    if len(filename) > MAX_FILENAME_LENGTH:
        raise validation_failed(f"File {position}: Filename too long (max {MAX_FILENAME_LENGTH} characters)")

    if not file.mime_type or not file.mime_type.strip():
        raise validation_failed(f"File {position}: Invalid MIME type")
    if file.mime_type not in ALLOWED_MIME_TYPES:
        raise validation_failed(
            f"File {position}: Invalid file type: {file.mime_type}. Allowed types: PDF, DOC, DOCX",
            details={"allowed_mime_types": sorted(ALLOWED_MIME_TYPES)},
        )

    if file.file_size <= 0:
        raise validation_failed(f"File {position}: Invalid file size")
    if file.file_size > MAX_FILE_SIZE_BYTES:
        raise validation_failed(
            f"File {position}: File size exceeds limit: {file.file_size} bytes. "
            f"Max allowed: {MAX_FILE_SIZE_BYTES} bytes",
            details={"max_size_bytes": MAX_FILE_SIZE_BYTES},
        )


def validate_upload_request(files: list[FileMetadata], principal_id: str) -> None:
    if not files:
        raise validation_failed("No files provided for upload")
    if len(files) > MAX_FILES_PER_REQUEST:
        raise validation_failed(
            f"Too many files: {len(files)}. Maximum allowed: {MAX_FILES_PER_REQUEST}",
            details={"max_files": MAX_FILES_PER_REQUEST},
        )
    validate_principal_id(principal_id)
    for position, file in enumerate(files, start=1):
        validate_file_metadata(file, position=position)


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def build_object_key(owner_id: str, filename: str) -> str:
    """Keys always carry the owner as their second path segment."""
    return f"{OBJECT_KEY_PREFIX}/{owner_id}/{uuid4()}-{sanitize_filename(filename)}"


async def request_presigned_urls(*, files: list[FileMetadata], principal_id: str) -> PresignedUrlResponse:
    validate_upload_request(files, principal_id)

    if not await principal_exists(principal_id):
        raise validation_failed("Invalid user ID")

    await RateLimiter.get_instance().check_and_increment(
        principal_id,
        limit=PRESIGN_RATE_LIMIT,
        window_ms=PRESIGN_RATE_WINDOW_MS,
        operation=PRESIGN_OPERATION,
    )

    expires_in = get_settings().presigned_url_expires_in
    gateway = StorageGatewayManager.get_instance().provider

    async def _presign_batch() -> list[PresignedFile]:
        logger.info("Requesting pre-signed URLs for {} files for user {}", len(files), principal_id)
        presigned: list[PresignedFile] = []
        for file in files:
            upload = await run_in_threadpool(
                gateway.presign_upload,
                object_key=build_object_key(principal_id, file.original_filename),
                content_type=file.mime_type,
                expires_in=expires_in,
            )
            presigned.append(
                PresignedFile(
                    object_key=upload.object_key,
                    upload_url=upload.upload_url,
                    original_filename=file.original_filename,
                    file_size=file.file_size,
                    mime_type=file.mime_type,
                )
            )
        return presigned

    try:
        pre_signed_data = await PRESIGN_RETRY_POLICY.execute(_presign_batch, operation="Pre-signed URL generation")
    except AppException:
        raise
    except Exception as exc:
        logger.error("All pre-signed URL generation attempts failed for user {}: {}", principal_id, exc)
        raise storage_unavailable(
            "Failed to generate upload URLs after multiple attempts. Please try again later."
        ) from exc

    return PresignedUrlResponse(
        session_id=str(uuid4()),
        pre_signed_data=pre_signed_data,
        expires_in=expires_in,
    )


async def retry_failed_upload(*, upload_id: str, principal_id: str) -> PresignedUrlResponse:
    upload = await get_upload_by_id(upload_id)
    if upload is None or upload.owner_user_id != principal_id:
        raise resource_not_found("Upload", upload_id)

    logger.info("Issuing fresh upload URL for upload {} of user {}", upload_id, principal_id)
    return await request_presigned_urls(
        files=[
            FileMetadata(
                original_filename=upload.file_name,
                mime_type=upload.mime_type,
                file_size=upload.file_size,
            )
        ],
        principal_id=principal_id,
    )


def object_key_owner(object_key: str) -> str | None:
    """Owner id embedded as the second path segment of a key built by :func:`build_object_key`."""
    segments = object_key.split("/")
    if len(segments) < 3 or ".." in segments:
        return None
    return segments[1] or None
