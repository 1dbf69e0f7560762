from __future__ import annotations

from core.database import db


async def insert_activity_log(payload: dict) -> None:
    await db.activity_logs.insert_one(payload)


async def insert_download(*, user_id: str, resource_id: str, downloaded_at: int) -> None:
    await db.downloads.insert_one(
        {"user_id": user_id, "resource_id": resource_id, "downloaded_at": downloaded_at}
    )
