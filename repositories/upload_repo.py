from __future__ import annotations

import re

from pymongo import ASCENDING, DESCENDING

from core.database import UploadTransaction, db
from repositories._ids import id_filter
from schemas.upload_schema import UploadRecordCreate, UploadRecordOut


async def ensure_upload_indexes() -> None:
    await db.uploads.create_index("object_key", name="idx_upload_object_key_unique", unique=True)
    await db.uploads.create_index(
        [("owner_user_id", ASCENDING), ("created_at", DESCENDING)],
        name="idx_upload_owner_created_at",
    )
    await db.uploads.create_index(
        [("resource_id", ASCENDING), ("created_at", ASCENDING)],
        name="idx_upload_resource_created_at",
    )


async def insert_upload_records(tx: UploadTransaction, records: list[UploadRecordCreate]) -> list[str]:
    if not records:
        return []
    result = await tx.db.uploads.insert_many(
        [record.model_dump(mode="json") for record in records],
        ordered=True,
        session=tx.session,
    )
    return [str(inserted_id) for inserted_id in result.inserted_ids]


async def list_uploads_for_resource(
    resource_id: str,
    *,
    tx: UploadTransaction | None = None,
) -> list[UploadRecordOut]:
    sort = [("created_at", ASCENDING), ("_id", ASCENDING)]
    if tx is not None:
        cursor = tx.db.uploads.find({"resource_id": resource_id}, session=tx.session).sort(sort)
    else:
        cursor = db.uploads.find({"resource_id": resource_id}).sort(sort)
    return [UploadRecordOut(**row) async for row in cursor]


async def mark_uploads_uploaded(tx: UploadTransaction, *, resource_id: str, uploaded_at: int) -> int:
    result = await tx.db.uploads.update_many(
        {"resource_id": resource_id},
        {"$set": {"uploaded_at": uploaded_at}},
        session=tx.session,
    )
    return result.matched_count


async def resource_has_owner_upload(tx: UploadTransaction, *, resource_id: str, owner_user_id: str) -> bool:
    row = await tx.db.uploads.find_one(
        {"resource_id": resource_id, "owner_user_id": owner_user_id},
        projection={"_id": 1},
        session=tx.session,
    )
    return row is not None


async def delete_uploads_for_resource(tx: UploadTransaction, *, resource_id: str) -> int:
    result = await tx.db.uploads.delete_many({"resource_id": resource_id}, session=tx.session)
    return result.deleted_count


async def get_upload_by_id(upload_id: str) -> UploadRecordOut | None:
    row = await db.uploads.find_one(id_filter(upload_id))
    if row is None:
        return None
    return UploadRecordOut(**row)


async def delete_uploads_by_object_keys(*, owner_user_id: str, object_keys: list[str]) -> int:
    result = await db.uploads.delete_many({"owner_user_id": owner_user_id, "object_key": {"$in": object_keys}})
    return result.deleted_count


async def list_uploads_by_owner(*, owner_user_id: str, start: int, limit: int) -> tuple[list[UploadRecordOut], int]:
    query = {"owner_user_id": owner_user_id}
    cursor = db.uploads.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).skip(start).limit(limit)
    items = [UploadRecordOut(**row) async for row in cursor]
    total = await db.uploads.count_documents(query)
    return items, total


async def list_owner_uploads_with_resources(
    *,
    owner_user_id: str,
    start: int,
    limit: int,
    moderation_status: str | None = None,
    search: str | None = None,
) -> tuple[list[dict], int]:
    """Owner uploads joined with their resource, newest first."""
    match: dict = {"owner_user_id": owner_user_id, "resource_id": {"$ne": None}}
    if moderation_status:
        match["moderation_status"] = moderation_status

    pipeline: list[dict] = [
        {"$match": match},
        {"$addFields": {"resource_object_id": {"$convert": {"input": "$resource_id", "to": "objectId", "onError": "$resource_id"}}}},
        {"$lookup": {"from": "resources", "localField": "resource_object_id", "foreignField": "_id", "as": "resource"}},
        {"$unwind": "$resource"},
    ]
    if search and search.strip():
        pattern = re.escape(search.strip())
        pipeline.append(
            {
                "$match": {
                    "$or": [
                        {"resource.title": {"$regex": pattern, "$options": "i"}},
                        {"resource.description": {"$regex": pattern, "$options": "i"}},
                    ]
                }
            }
        )
    pipeline.append(
        {
            "$facet": {
                "items": [
                    {"$sort": {"created_at": -1, "_id": -1}},
                    {"$skip": start},
                    {"$limit": limit},
                ],
                "total": [{"$count": "count"}],
            }
        }
    )

    cursor = await db.uploads.aggregate(pipeline)
    rows = await cursor.to_list(length=1)
    if not rows:
        return [], 0
    facet = rows[0]
    total = facet["total"][0]["count"] if facet["total"] else 0
    return facet["items"], total
