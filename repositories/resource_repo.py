from __future__ import annotations

from core.database import UploadTransaction, db
from repositories._ids import id_filter
from schemas.resource_schema import ResourceCreate, ResourceOut


async def ensure_resource_indexes() -> None:
    await db.resources.create_index("created_at", name="idx_resource_created_at")


async def insert_resource(tx: UploadTransaction, payload: ResourceCreate) -> ResourceOut:
    result = await tx.db.resources.insert_one(payload.model_dump(mode="json"), session=tx.session)
    stored = await tx.db.resources.find_one({"_id": result.inserted_id}, session=tx.session)
    return ResourceOut(**stored)  # type: ignore[arg-type]


async def get_resource_by_id(resource_id: str, *, tx: UploadTransaction | None = None) -> ResourceOut | None:
    if tx is not None:
        row = await tx.db.resources.find_one(id_filter(resource_id), session=tx.session)
    else:
        row = await db.resources.find_one(id_filter(resource_id))
    if row is None:
        return None
    return ResourceOut(**row)


async def delete_resource(tx: UploadTransaction, resource_id: str) -> bool:
    result = await tx.db.resources.delete_one(id_filter(resource_id), session=tx.session)
    return bool(result.deleted_count)
