from __future__ import annotations

from typing import Protocol

from core.storage.types import BatchDeleteResult, PresignedUpload


class ObjectStorageGateway(Protocol):
    backend_name: str

    def presign_upload(self, *, object_key: str, content_type: str, expires_in: int = 3600) -> PresignedUpload:
        ...

    def presign_download(self, *, object_key: str, expires_in: int = 3600) -> str:
        ...

    def delete_object(self, *, object_key: str) -> None:
        ...

    def delete_objects(self, *, object_keys: list[str]) -> BatchDeleteResult:
        ...
