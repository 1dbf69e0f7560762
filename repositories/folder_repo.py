from __future__ import annotations

from pymongo import UpdateOne

from core.database import UploadTransaction, db
from repositories._ids import id_filter
from schemas.resource_schema import FolderCreate, FolderOut


async def ensure_folder_indexes() -> None:
    await db.folders.create_index("owner_user_id", name="idx_folder_owner_user_id")
    await db.folder_tags.create_index(
        [("folder_id", 1), ("tag_id", 1)],
        name="idx_folder_tag_unique",
        unique=True,
    )
    await db.folder_resources.create_index(
        [("folder_id", 1), ("resource_id", 1)],
        name="idx_folder_resource_unique",
        unique=True,
    )
    await db.folder_resources.create_index("resource_id", name="idx_folder_resource_resource_id")


async def insert_folder(tx: UploadTransaction, payload: FolderCreate) -> FolderOut:
    result = await tx.db.folders.insert_one(payload.model_dump(mode="json"), session=tx.session)
    stored = await tx.db.folders.find_one({"_id": result.inserted_id}, session=tx.session)
    return FolderOut(**stored)  # type: ignore[arg-type]


async def find_owned_folder(tx: UploadTransaction, *, folder_id: str, owner_user_id: str) -> FolderOut | None:
    row = await tx.db.folders.find_one(
        {**id_filter(folder_id), "owner_user_id": owner_user_id},
        session=tx.session,
    )
    if row is None:
        return None
    return FolderOut(**row)


async def link_folder_tags(tx: UploadTransaction, *, folder_id: str, tag_ids: list[str]) -> int:
    """Upsert one folder/tag pair per tag; existing pairs are left untouched."""
    unique_tag_ids = list(dict.fromkeys(tag_ids))
    if not unique_tag_ids:
        return 0
    operations = [
        UpdateOne(
            {"folder_id": folder_id, "tag_id": tag_id},
            {"$setOnInsert": {"folder_id": folder_id, "tag_id": tag_id}},
            upsert=True,
        )
        for tag_id in unique_tag_ids
    ]
    result = await tx.db.folder_tags.bulk_write(operations, ordered=True, session=tx.session)
    return result.upserted_count


async def link_folder_resource(tx: UploadTransaction, *, folder_id: str, resource_id: str) -> None:
    await tx.db.folder_resources.insert_one(
        {"folder_id": folder_id, "resource_id": resource_id},
        session=tx.session,
    )


async def unlink_resource(tx: UploadTransaction, *, resource_id: str) -> int:
    result = await tx.db.folder_resources.delete_many({"resource_id": resource_id}, session=tx.session)
    return result.deleted_count


async def get_owned_folder_names(*, resource_ids: list[str], owner_user_id: str) -> dict[str, str]:
    """Map resource id to the name of the owner's folder holding it."""
    links: dict[str, str] = {}
    async for row in db.folder_resources.find({"resource_id": {"$in": resource_ids}}):
        links.setdefault(row["resource_id"], row["folder_id"])
    if not links:
        return {}

    folder_ids = [id_filter(folder_id)["_id"] for folder_id in set(links.values())]
    names: dict[str, str] = {}
    async for row in db.folders.find({"_id": {"$in": folder_ids}, "owner_user_id": owner_user_id}):
        names[str(row["_id"])] = row.get("name", "")

    return {resource_id: names[folder_id] for resource_id, folder_id in links.items() if folder_id in names}
