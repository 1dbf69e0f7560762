from __future__ import annotations

import time

from loguru import logger

from repositories import activity_log_repo
from schemas.imports import ActivityType


async def record_upload_event(
    *,
    user_id: str,
    activity_type: ActivityType,
    entity_id: str | None = None,
    actor_id: str | None = None,
    message: str | None = None,
) -> None:
    """Best-effort audit trail; a failed write never changes the caller's outcome."""
    payload = {
        "user_id": user_id,
        "actor_id": actor_id or user_id,
        "type": activity_type.value,
        "entity_type": "resource",
        "entity_id": entity_id,
        "message": message,
        "created_at": int(time.time()),
    }
    try:
        await activity_log_repo.insert_activity_log(payload)
    except Exception:
        logger.exception("Failed to write {} activity log for user {}", activity_type.value, user_id)
