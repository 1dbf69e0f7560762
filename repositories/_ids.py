from __future__ import annotations

from bson import ObjectId


def id_filter(raw_id: str) -> dict:
    if ObjectId.is_valid(raw_id):
        return {"_id": ObjectId(raw_id)}
    return {"_id": raw_id}


def id_candidates(raw_id: str) -> list:
    if ObjectId.is_valid(raw_id):
        return [ObjectId(raw_id), raw_id]
    return [raw_id]
