from __future__ import annotations

import pytest

from core.errors import AppException, ErrorCode
from schemas.resource_schema import ResourceOut
from schemas.upload_schema import UploadRecordOut
from services import upload_query_service


def _upload(**overrides) -> UploadRecordOut:
    payload = {
        "id": "upl-1",
        "owner_user_id": "U1",
        "resource_id": "res-1",
        "file_name": "a.pdf",
        "mime_type": "application/pdf",
        "file_size": 1000,
        "object_key": "uploads/U1/1-a.pdf",
        "status": "COMPLETED",
        "moderation_status": "APPROVED",
        "created_at": 1,
    }
    payload.update(overrides)
    return UploadRecordOut(**payload)


def _resource(visibility: str = "PRIVATE") -> ResourceOut:
    return ResourceOut(id="res-1", title="Notes", visibility=visibility, created_at=1)


@pytest.fixture
def stub_lookup(monkeypatch):
    def _install(upload: UploadRecordOut | None, resource: ResourceOut | None):
        async def _get_upload_by_id(upload_id: str):
            return upload

        async def _get_resource_by_id(resource_id: str, *, tx=None):
            return resource

        monkeypatch.setattr(upload_query_service, "get_upload_by_id", _get_upload_by_id)
        monkeypatch.setattr(upload_query_service, "get_resource_by_id", _get_resource_by_id)

    return _install


@pytest.mark.asyncio
async def test_owner_downloads_approved_private_upload(stub_lookup, storage_gateway, activity_log):
    stub_lookup(_upload(), _resource("PRIVATE"))

    result = await upload_query_service.generate_download_url(upload_id="upl-1", principal_id="U1")

    assert result["downloadUrl"] == "https://storage.test/uploads/U1/1-a.pdf?download=1"
    assert result["fileName"] == "a.pdf"
    assert result["expiresIn"] == 3600
    assert [entry["type"] for entry in activity_log] == ["download_row", "DOWNLOAD"]


@pytest.mark.asyncio
async def test_other_user_downloads_public_resource(stub_lookup, storage_gateway):
    stub_lookup(_upload(), _resource("PUBLIC"))

    result = await upload_query_service.generate_download_url(upload_id="upl-1", principal_id="U2")
    assert result["downloadUrl"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "upload,resource,principal",
    [
        (_upload(), _resource("PRIVATE"), "U2"),
        (_upload(moderation_status="PENDING_APPROVAL"), _resource("PUBLIC"), "U1"),
        (_upload(status="PENDING"), _resource("PUBLIC"), "U1"),
        (None, None, "U1"),
    ],
    ids=["private-foreign", "not-approved", "not-completed", "missing"],
)
async def test_download_is_hidden_when_not_allowed(upload, resource, principal, stub_lookup, storage_gateway):
    stub_lookup(upload, resource)

    with pytest.raises(AppException) as exc_info:
        await upload_query_service.generate_download_url(upload_id="upl-1", principal_id=principal)
    assert exc_info.value.code == ErrorCode.RESOURCE_NOT_FOUND


@pytest.mark.asyncio
async def test_my_uploads_paginates(monkeypatch):
    async def _list_uploads_by_owner(*, owner_user_id: str, start: int, limit: int):
        assert (owner_user_id, start, limit) == ("U1", 20, 10)
        return [_upload()], 21

    monkeypatch.setattr(upload_query_service, "list_uploads_by_owner", _list_uploads_by_owner)

    result = await upload_query_service.list_my_uploads(principal_id="U1", page=3, limit=10)

    assert len(result["items"]) == 1
    assert result["pagination"].model_dump(by_alias=True) == {
        "page": 3,
        "limit": 10,
        "total": 21,
        "totalPages": 3,
    }


@pytest.mark.asyncio
async def test_resources_view_maps_status_and_folder_names(monkeypatch):
    captured: dict = {}

    async def _list_owner_uploads_with_resources(**kwargs):
        captured.update(kwargs)
        return (
            [
                {
                    "_id": "upl-1",
                    "resource_id": "res-1",
                    "file_name": "a.pdf",
                    "mime_type": "application/pdf",
                    "file_size": 1000,
                    "moderation_status": "PENDING_APPROVAL",
                    "created_at": 5,
                    "resource": {"title": "Notes", "description": "", "visibility": "PUBLIC", "category": "exam"},
                },
                {
                    "_id": "upl-2",
                    "resource_id": "res-2",
                    "file_name": "b.pdf",
                    "mime_type": "application/pdf",
                    "file_size": 10,
                    "moderation_status": "PENDING_APPROVAL",
                    "created_at": 4,
                    "resource": {"title": "Loose"},
                },
            ],
            2,
        )

    async def _get_owned_folder_names(*, resource_ids, owner_user_id):
        return {"res-1": "Calc I"}

    monkeypatch.setattr(upload_query_service, "list_owner_uploads_with_resources", _list_owner_uploads_with_resources)
    monkeypatch.setattr(upload_query_service, "get_owned_folder_names", _get_owned_folder_names)

    result = await upload_query_service.list_user_resources(principal_id="U1", status="Pending", search="notes")

    assert captured["moderation_status"] == "PENDING_APPROVAL"
    assert captured["search"] == "notes"
    assert [item.folder_name for item in result["items"]] == ["Calc I", "No Folder"]
    assert result["items"][0].category == "exam"
    assert result["pagination"].total_pages == 1


@pytest.mark.asyncio
async def test_resources_view_rejects_unknown_status():
    with pytest.raises(AppException) as exc_info:
        await upload_query_service.list_user_resources(principal_id="U1", status="archived")
    assert exc_info.value.code == ErrorCode.VALIDATION_FAILED
