from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from schemas.imports import DocumentCategory, ModerationStatus, UploadStatus, Visibility, stringify_object_id
from schemas.resource_schema import ResourceOut


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FileMetadata(CamelModel):
    original_filename: str = Field(alias="originalFilename")
    mime_type: str = Field(alias="mimetype")
    file_size: int = Field(alias="fileSize")


class PresignedUrlRequest(CamelModel):
    files: list[FileMetadata]


class PresignedFile(CamelModel):
    object_key: str = Field(alias="s3Key")
    upload_url: str = Field(alias="preSignedUrl")
    original_filename: str = Field(alias="originalFilename")
    file_size: int = Field(alias="fileSize")
    mime_type: str = Field(alias="mimetype")


class PresignedUrlResponse(CamelModel):
    session_id: str = Field(alias="sessionId")
    pre_signed_data: list[PresignedFile] = Field(alias="preSignedData")
    expires_in: int = Field(alias="expiresIn")


class NewFolderData(CamelModel):
    name: str = Field(min_length=1)
    description: str | None = None
    folder_classification_id: str | None = Field(default=None, alias="folderClassificationId")
    folder_tag_ids: list[str] = Field(default_factory=list, alias="folderTagIds")


class FolderManagement(CamelModel):
    selected_folder_id: str | None = Field(default=None, alias="selectedFolderId")
    new_folder_data: NewFolderData | None = Field(default=None, alias="newFolderData")


class FileUploadData(CamelModel):
    original_filename: str = Field(alias="originalFilename")
    mime_type: str = Field(alias="mimetype")
    file_size: int = Field(alias="fileSize")
    object_key: str = Field(alias="s3Key")
    title: str | None = None
    description: str | None = None
    file_visibility: Visibility = Field(default=Visibility.PUBLIC, alias="fileVisibility")


class CreateResourceRequest(CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    category: DocumentCategory | None = None
    visibility: Visibility = Visibility.PUBLIC
    folder_management: FolderManagement = Field(alias="folderManagement")
    files: list[FileUploadData]

    @model_validator(mode="before")
    @classmethod
    def strip_text(cls, values):
        if isinstance(values, dict):
            values = dict(values)
            for key in ("title", "description"):
                if isinstance(values.get(key), str):
                    values[key] = values[key].strip()
        return values


class CompleteUploadRequest(CamelModel):
    object_keys: list[str] = Field(default_factory=list, alias="s3Keys")


class DeleteObjectRequest(CamelModel):
    object_key: str = Field(alias="s3Key", min_length=1)


class DeleteObjectsRequest(CamelModel):
    object_keys: list[str] = Field(alias="s3Keys", min_length=1)


class UploadRecordCreate(BaseModel):
    owner_user_id: str
    resource_id: str
    file_name: str
    mime_type: str
    file_size: int
    object_key: str
    title: str
    description: str | None = None
    visibility: Visibility = Visibility.PUBLIC
    status: UploadStatus = UploadStatus.COMPLETED
    moderation_status: ModerationStatus = ModerationStatus.PENDING_APPROVAL
    created_at: int
    uploaded_at: int | None = None


class UploadRecordOut(BaseModel):
    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    owner_user_id: str
    resource_id: str
    file_name: str
    mime_type: str
    file_size: int
    object_key: str
    title: str | None = None
    description: str | None = None
    visibility: Visibility = Visibility.PUBLIC
    status: UploadStatus
    moderation_status: ModerationStatus
    created_at: int
    uploaded_at: int | None = None

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        return stringify_object_id(values)


class ResourceCreationResult(CamelModel):
    resource: ResourceOut
    uploads: list[UploadRecordOut]
    folder_id: str = Field(alias="folderId")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(serialization_alias="totalPages")


class UserResourceItem(BaseModel):
    upload_id: str
    resource_id: str
    file_name: str
    mime_type: str
    file_size: int
    moderation_status: ModerationStatus
    created_at: int
    title: str = ""
    description: str = ""
    visibility: Visibility = Visibility.PRIVATE
    category: DocumentCategory | None = None
    folder_name: str = "No Folder"
