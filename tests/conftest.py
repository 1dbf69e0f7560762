from __future__ import annotations

import copy
import os
from typing import Any

import pytest

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "docshare_test")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from core.rate_limiter import MemoryRateLimitStore, RateLimiter  # noqa: E402
from core.settings import get_settings  # noqa: E402
from core.storage import BatchDeleteResult, PresignedUpload, StorageGatewayManager  # noqa: E402
from repositories import activity_log_repo  # noqa: E402


class FakeStorageGateway:
    """Records every call; ``fail_presign`` makes the next N presign calls raise."""

    backend_name = "fake"

    def __init__(self) -> None:
        self.presign_calls: list[dict[str, Any]] = []
        self.deleted: list[str] = []
        self.batch_deletes: list[list[str]] = []
        self.fail_presign = 0
        self.failed_batch_keys: tuple[str, ...] = ()

    def presign_upload(self, *, object_key: str, content_type: str, expires_in: int = 3600) -> PresignedUpload:
        self.presign_calls.append({"object_key": object_key, "content_type": content_type, "expires_in": expires_in})
        if self.fail_presign:
            self.fail_presign -= 1
            raise ConnectionError("storage endpoint unreachable")
        return PresignedUpload(
            object_key=object_key,
            upload_url=f"https://storage.test/{object_key}?signature=abc",
            expires_in=expires_in,
        )

    def presign_download(self, *, object_key: str, expires_in: int = 3600) -> str:
        return f"https://storage.test/{object_key}?download=1"

    def delete_object(self, *, object_key: str) -> None:
        self.deleted.append(object_key)

    def delete_objects(self, *, object_keys: list[str]) -> BatchDeleteResult:
        self.batch_deletes.append(list(object_keys))
        failed = tuple(key for key in object_keys if key in self.failed_batch_keys)
        deleted = tuple(key for key in object_keys if key not in failed)
        return BatchDeleteResult(deleted=deleted, failed=failed)


class StagedTransaction:
    """In-memory stand-in for ``UploadTransaction``; writes stay staged until commit."""

    def __init__(self, tables: dict[str, list[dict]]) -> None:
        self.tables = copy.deepcopy(tables)


class FakeDatabase:
    """Collections as lists of dicts, committed only when the transaction callback returns."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {
            "resources": [],
            "folders": [],
            "folder_tags": [],
            "folder_resources": [],
            "uploads": [],
        }
        self.users: set[str] = {"U1", "U2"}
        self.sequence = 0
        self.fail_tag_link = False
        self.commits = 0
        self.aborts = 0

    async def run_in_transaction(self, callback, *, options=None):
        tx = StagedTransaction(self.tables)
        try:
            result = await callback(tx)
        except BaseException:
            self.aborts += 1
            raise
        self.tables = tx.tables
        self.commits += 1
        return result


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def activity_log(monkeypatch):
    entries: list[dict] = []

    async def _stub_insert_activity_log(payload: dict) -> None:
        entries.append(payload)

    async def _stub_insert_download(*, user_id: str, resource_id: str, downloaded_at: int) -> None:
        entries.append({"type": "download_row", "user_id": user_id, "resource_id": resource_id})

    monkeypatch.setattr(activity_log_repo, "insert_activity_log", _stub_insert_activity_log)
    monkeypatch.setattr(activity_log_repo, "insert_download", _stub_insert_download)
    return entries


@pytest.fixture
def storage_gateway():
    gateway = FakeStorageGateway()
    StorageGatewayManager.configure(gateway)  # type: ignore[arg-type]
    yield gateway
    StorageGatewayManager._instance = None


@pytest.fixture
def rate_limiter():
    limiter = RateLimiter.configure(MemoryRateLimitStore())
    yield limiter
    RateLimiter._instance = None


@pytest.fixture
def fake_db():
    return FakeDatabase()


def _install_repository_fakes(monkeypatch, fake_db: FakeDatabase) -> None:
    from schemas.resource_schema import FolderOut, ResourceOut
    from schemas.upload_schema import UploadRecordOut
    from services import completion_service, deletion_service, presign_service, resource_service

    def _next_id(prefix: str) -> str:
        fake_db.sequence += 1
        return f"{prefix}{fake_db.sequence:04d}"

    def _tables(tx):
        return tx.tables if tx is not None else fake_db.tables

    async def insert_resource(tx, payload):
        row = {**payload.model_dump(mode="json"), "_id": _next_id("res")}
        tx.tables["resources"].append(row)
        return ResourceOut(**row)

    async def get_resource_by_id(resource_id, *, tx=None):
        for row in _tables(tx)["resources"]:
            if row["_id"] == resource_id:
                return ResourceOut(**row)
        return None

    async def delete_resource(tx, resource_id):
        before = len(tx.tables["resources"])
        tx.tables["resources"] = [row for row in tx.tables["resources"] if row["_id"] != resource_id]
        return len(tx.tables["resources"]) < before

    async def insert_folder(tx, payload):
        row = {**payload.model_dump(mode="json"), "_id": _next_id("fld")}
        tx.tables["folders"].append(row)
        return FolderOut(**row)

    async def find_owned_folder(tx, *, folder_id, owner_user_id):
        for row in tx.tables["folders"]:
            if row["_id"] == folder_id and row["owner_user_id"] == owner_user_id:
                return FolderOut(**row)
        return None

    async def link_folder_tags(tx, *, folder_id, tag_ids):
        if fake_db.fail_tag_link:
            raise RuntimeError("folder_tags write conflict")
        existing = {(row["folder_id"], row["tag_id"]) for row in tx.tables["folder_tags"]}
        created = 0
        for tag_id in dict.fromkeys(tag_ids):
            if (folder_id, tag_id) not in existing:
                tx.tables["folder_tags"].append({"folder_id": folder_id, "tag_id": tag_id})
                created += 1
        return created

    async def link_folder_resource(tx, *, folder_id, resource_id):
        tx.tables["folder_resources"].append({"folder_id": folder_id, "resource_id": resource_id})

    async def unlink_resource(tx, *, resource_id):
        before = len(tx.tables["folder_resources"])
        tx.tables["folder_resources"] = [
            row for row in tx.tables["folder_resources"] if row["resource_id"] != resource_id
        ]
        return before - len(tx.tables["folder_resources"])

    async def insert_upload_records(tx, records):
        ids = []
        for record in records:
            row = {**record.model_dump(mode="json"), "_id": _next_id("upl")}
            tx.tables["uploads"].append(row)
            ids.append(row["_id"])
        return ids

    async def list_uploads_for_resource(resource_id, *, tx=None):
        rows = [row for row in _tables(tx)["uploads"] if row["resource_id"] == resource_id]
        return [UploadRecordOut(**row) for row in sorted(rows, key=lambda row: (row["created_at"], row["_id"]))]

    async def mark_uploads_uploaded(tx, *, resource_id, uploaded_at):
        matched = 0
        for row in tx.tables["uploads"]:
            if row["resource_id"] == resource_id:
                row["uploaded_at"] = uploaded_at
                matched += 1
        return matched

    async def resource_has_owner_upload(tx, *, resource_id, owner_user_id):
        return any(
            row["resource_id"] == resource_id and row["owner_user_id"] == owner_user_id
            for row in tx.tables["uploads"]
        )

    async def delete_uploads_for_resource(tx, *, resource_id):
        before = len(tx.tables["uploads"])
        tx.tables["uploads"] = [row for row in tx.tables["uploads"] if row["resource_id"] != resource_id]
        return before - len(tx.tables["uploads"])

    async def delete_uploads_by_object_keys(*, owner_user_id, object_keys):
        before = len(fake_db.tables["uploads"])
        fake_db.tables["uploads"] = [
            row
            for row in fake_db.tables["uploads"]
            if not (row["owner_user_id"] == owner_user_id and row["object_key"] in object_keys)
        ]
        return before - len(fake_db.tables["uploads"])

    async def principal_exists(user_id):
        return user_id in fake_db.users

    monkeypatch.setattr(resource_service, "run_in_transaction", fake_db.run_in_transaction)
    monkeypatch.setattr(completion_service, "run_in_transaction", fake_db.run_in_transaction)
    for name, fn in {
        "insert_resource": insert_resource,
        "delete_resource": delete_resource,
        "insert_folder": insert_folder,
        "find_owned_folder": find_owned_folder,
        "link_folder_tags": link_folder_tags,
        "link_folder_resource": link_folder_resource,
        "unlink_resource": unlink_resource,
        "insert_upload_records": insert_upload_records,
        "list_uploads_for_resource": list_uploads_for_resource,
        "resource_has_owner_upload": resource_has_owner_upload,
        "delete_uploads_for_resource": delete_uploads_for_resource,
    }.items():
        monkeypatch.setattr(resource_service, name, fn)
    monkeypatch.setattr(completion_service, "get_resource_by_id", get_resource_by_id)
    monkeypatch.setattr(completion_service, "mark_uploads_uploaded", mark_uploads_uploaded)
    monkeypatch.setattr(completion_service, "list_uploads_for_resource", list_uploads_for_resource)
    monkeypatch.setattr(deletion_service, "delete_uploads_by_object_keys", delete_uploads_by_object_keys)
    monkeypatch.setattr(presign_service, "principal_exists", principal_exists)


@pytest.fixture
def upload_store(monkeypatch, fake_db):
    _install_repository_fakes(monkeypatch, fake_db)
    return fake_db
