from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from core.response_envelope import document_response
from core.storage import StorageGatewayManager
from core.storage.local_provider import LocalStorageProvider
from schemas.upload_schema import (
    CompleteUploadRequest,
    CreateResourceRequest,
    DeleteObjectRequest,
    DeleteObjectsRequest,
    PresignedUrlRequest,
)
from security.auth import verify_any_token
from security.principal import AuthPrincipal
from services.completion_service import complete_upload
from services.deletion_service import delete_object, delete_objects
from services.presign_service import request_presigned_urls, retry_failed_upload
from services.resource_service import create_resource_with_uploads, delete_resource_for_owner
from services.upload_query_service import generate_download_url, list_my_uploads, list_user_resources

router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.post("/request-presigned-urls")
@document_response(
    message="Pre-signed URLs generated successfully",
    response_codes={400: "Invalid file metadata", 429: "Rate limit exceeded", 503: "Storage unavailable"},
)
async def request_upload_urls(
    payload: PresignedUrlRequest,
    principal: AuthPrincipal = Depends(verify_any_token),
):
    result = await request_presigned_urls(files=payload.files, principal_id=principal.user_id)
    return result.model_dump(by_alias=True)


@router.post("/create-resource")
@document_response(
    message="Resource created successfully",
    status_code=201,
    response_codes={400: "Invalid payload", 403: "Folder not owned by user", 503: "Transaction failed"},
)
async def create_resource(
    payload: CreateResourceRequest,
    principal: AuthPrincipal = Depends(verify_any_token),
):
    result = await create_resource_with_uploads(payload=payload, principal_id=principal.user_id)
    return result.model_dump(by_alias=True)


@router.post("/complete/{resource_id}")
@document_response(message="Upload completed successfully", response_codes={404: "Resource not found"})
async def complete_resource_upload(
    resource_id: str,
    payload: CompleteUploadRequest | None = None,
    principal: AuthPrincipal = Depends(verify_any_token),
):
    uploads = await complete_upload(
        resource_id=resource_id,
        object_keys=payload.object_keys if payload else [],
        principal_id=principal.user_id,
    )
    return {"resourceId": resource_id, "uploads": uploads}


@router.get("/my-uploads")
@document_response(message="Uploads retrieved successfully")
async def get_my_uploads(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: AuthPrincipal = Depends(verify_any_token),
):
    return await list_my_uploads(principal_id=principal.user_id, page=page, limit=limit)


@router.get("/resources")
@document_response(message="Resources retrieved successfully")
async def get_user_resources(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: str = Query(default="all"),
    search: str | None = Query(default=None),
    principal: AuthPrincipal = Depends(verify_any_token),
):
    return await list_user_resources(
        principal_id=principal.user_id,
        page=page,
        limit=limit,
        status=status,
        search=search,
    )


@router.get("/download/{upload_id}")
@document_response(message="Download URL generated successfully", response_codes={404: "Upload not found"})
async def get_download_url(upload_id: str, principal: AuthPrincipal = Depends(verify_any_token)):
    return await generate_download_url(upload_id=upload_id, principal_id=principal.user_id)


@router.post("/retry/{upload_id}")
@document_response(message="Upload retry URL generated successfully", response_codes={404: "Upload not found"})
async def retry_upload(upload_id: str, principal: AuthPrincipal = Depends(verify_any_token)):
    result = await retry_failed_upload(upload_id=upload_id, principal_id=principal.user_id)
    return result.model_dump(by_alias=True)


@router.delete("/resource/{resource_id}")
@document_response(message="Resource deleted successfully", success_example={"deleted": True})
async def delete_resource(resource_id: str, principal: AuthPrincipal = Depends(verify_any_token)):
    await delete_resource_for_owner(resource_id=resource_id, principal_id=principal.user_id)
    return {"deleted": True, "resourceId": resource_id}


@router.delete("/delete-s3-file")
@document_response(message="File deleted successfully", response_codes={403: "Key belongs to another user"})
async def delete_storage_file(
    payload: DeleteObjectRequest,
    principal: AuthPrincipal = Depends(verify_any_token),
):
    return await delete_object(object_key=payload.object_key, principal_id=principal.user_id)


@router.delete("/delete-multiple-s3-files")
@document_response(message="Files deleted successfully", response_codes={403: "Key belongs to another user"})
async def delete_storage_files(
    payload: DeleteObjectsRequest,
    principal: AuthPrincipal = Depends(verify_any_token),
):
    return await delete_objects(object_keys=payload.object_keys, principal_id=principal.user_id)


@router.put("/local/{object_key:path}", include_in_schema=False)
async def upload_local_object(object_key: str, request: Request):
    if ".." in object_key:
        return Response(status_code=400)
    provider = StorageGatewayManager.get_instance().provider
    if not isinstance(provider, LocalStorageProvider):
        return Response(status_code=404)

    provider.save_bytes(object_key=object_key, payload=await request.body())
    return Response(status_code=204)


@router.get("/local/{object_key:path}", include_in_schema=False)
async def read_local_object(object_key: str):
    if ".." in object_key:
        return Response(status_code=400)
    provider = StorageGatewayManager.get_instance().provider
    if not isinstance(provider, LocalStorageProvider):
        return Response(status_code=404)

    try:
        data = provider.read_bytes(object_key=object_key)
    except FileNotFoundError:
        return Response(status_code=404)
    return Response(content=data)
