from core.storage.manager import StorageGatewayManager
from core.storage.provider import ObjectStorageGateway
from core.storage.types import BatchDeleteResult, PresignedUpload, StorageBackend

__all__ = [
    "BatchDeleteResult",
    "ObjectStorageGateway",
    "PresignedUpload",
    "StorageBackend",
    "StorageGatewayManager",
]
