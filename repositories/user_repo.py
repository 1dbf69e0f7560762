from __future__ import annotations

from core.database import db
from repositories._ids import id_candidates


async def principal_exists(user_id: str) -> bool:
    row = await db.users.find_one({"_id": {"$in": id_candidates(user_id)}}, projection={"_id": 1})
    return row is not None
