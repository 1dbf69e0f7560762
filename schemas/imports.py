from bson import ObjectId
from enum import Enum


class Visibility(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class DocumentCategory(str, Enum):
    LECTURE = "lecture"
    EXERCISE = "exercise"
    EXAM = "exam"
    REFERENCE = "reference"
    OTHER = "other"


class UploadStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ModerationStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ActivityType(str, Enum):
    UPLOAD_SUCCESS = "UPLOAD_SUCCESS"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    DOWNLOAD = "DOWNLOAD"


def stringify_object_id(values):
    if isinstance(values, dict) and isinstance(values.get("_id"), ObjectId):
        values = {**values, "_id": str(values["_id"])}
    return values


__all__ = [
    "ActivityType",
    "DocumentCategory",
    "ModerationStatus",
    "ObjectId",
    "UploadStatus",
    "Visibility",
    "stringify_object_id",
]
