from __future__ import annotations

from pathlib import Path
from urllib.parse import quote

from core.storage.provider import ObjectStorageGateway
from core.storage.types import BatchDeleteResult, PresignedUpload, StorageBackend


class LocalStorageProvider(ObjectStorageGateway):
    backend_name = StorageBackend.LOCAL.value

    def __init__(self, root_dir: str) -> None:
        self._root = Path(root_dir).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, object_key: str) -> Path:
        file_path = (self._root / object_key).resolve()
        if not file_path.is_relative_to(self._root):
            raise ValueError(f"Object key escapes storage root: {object_key}")
        return file_path

    def presign_upload(self, *, object_key: str, content_type: str, expires_in: int = 3600) -> PresignedUpload:
        # Local uploads are written through the API (PUT endpoint)
        return PresignedUpload(
            object_key=object_key,
            upload_url=f"/v1/uploads/local/{quote(object_key)}",
            expires_in=expires_in,
            method="PUT",
            headers={"Content-Type": content_type},
        )

    def presign_download(self, *, object_key: str, expires_in: int = 3600) -> str:
        return f"/v1/uploads/local/{quote(object_key)}"

    def delete_object(self, *, object_key: str) -> None:
        file_path = self._path_for(object_key)
        if file_path.exists():
            file_path.unlink()

    def delete_objects(self, *, object_keys: list[str]) -> BatchDeleteResult:
        for object_key in object_keys:
            self.delete_object(object_key=object_key)
        return BatchDeleteResult(deleted=tuple(object_keys))

    def save_bytes(self, *, object_key: str, payload: bytes) -> int:
        file_path = self._path_for(object_key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(payload)
        return file_path.stat().st_size

    def read_bytes(self, *, object_key: str) -> bytes:
        return self._path_for(object_key).read_bytes()
