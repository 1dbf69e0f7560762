from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StorageBackend(str, Enum):
    LOCAL = "local"
    S3 = "s3"


@dataclass(frozen=True)
class PresignedUpload:
    object_key: str
    upload_url: str
    expires_in: int
    method: str = "PUT"
    headers: dict[str, str] | None = None


@dataclass(frozen=True)
class BatchDeleteResult:
    deleted: tuple[str, ...]
    failed: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed
