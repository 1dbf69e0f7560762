from __future__ import annotations

from core.storage.provider import ObjectStorageGateway
from core.storage.types import BatchDeleteResult, PresignedUpload, StorageBackend

# DeleteObjects accepts at most 1000 keys per call.
_DELETE_BATCH_SIZE = 1000


def _chunks(items: list[str], size: int) -> list[list[str]]:
    return [items[index : index + size] for index in range(0, len(items), size)]


class S3StorageProvider(ObjectStorageGateway):
    backend_name = StorageBackend.S3.value

    def __init__(self, *, bucket_name: str, region: str | None = None, endpoint_url: str | None = None) -> None:
        try:
            import boto3
        except ModuleNotFoundError as err:
            raise RuntimeError("boto3 is required for S3 storage provider") from err

        self._bucket = bucket_name
        self._client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    def presign_upload(self, *, object_key: str, content_type: str, expires_in: int = 3600) -> PresignedUpload:
        url = self._client.generate_presigned_url(
            ClientMethod="put_object",
            Params={"Bucket": self._bucket, "Key": object_key, "ContentType": content_type},
            ExpiresIn=expires_in,
        )
        return PresignedUpload(
            object_key=object_key,
            upload_url=url,
            expires_in=expires_in,
            method="PUT",
            headers={"Content-Type": content_type},
        )

    def presign_download(self, *, object_key: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={
                "Bucket": self._bucket,
                "Key": object_key,
                "ResponseContentDisposition": "attachment",
            },
            ExpiresIn=expires_in,
        )

    def delete_object(self, *, object_key: str) -> None:
        self._client.delete_object(Bucket=self._bucket, Key=object_key)

    def delete_objects(self, *, object_keys: list[str]) -> BatchDeleteResult:
        deleted: list[str] = []
        failed: list[str] = []
        for chunk in _chunks(object_keys, _DELETE_BATCH_SIZE):
            response = self._client.delete_objects(
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": key} for key in chunk], "Quiet": False},
            )
            deleted.extend(item["Key"] for item in response.get("Deleted", []))
            failed.extend(item["Key"] for item in response.get("Errors", []))
        return BatchDeleteResult(deleted=tuple(deleted), failed=tuple(failed))
