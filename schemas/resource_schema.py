from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field, model_validator

from schemas.imports import DocumentCategory, ModerationStatus, Visibility, stringify_object_id


class ResourceCreate(BaseModel):
    title: str
    description: str
    category: DocumentCategory | None = None
    visibility: Visibility = Visibility.PUBLIC
    created_at: int


class ResourceOut(BaseModel):
    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    title: str
    description: str = ""
    category: DocumentCategory | None = None
    visibility: Visibility = Visibility.PUBLIC
    status: ModerationStatus = ModerationStatus.PENDING_APPROVAL
    created_at: int

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        return stringify_object_id(values)


class FolderCreate(BaseModel):
    name: str
    description: str
    visibility: Visibility = Visibility.PUBLIC
    owner_user_id: str
    classification_level_id: str | None = None
    created_at: int


class FolderOut(BaseModel):
    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    name: str
    description: str = ""
    visibility: Visibility = Visibility.PUBLIC
    owner_user_id: str
    classification_level_id: str | None = None
    created_at: int

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        return stringify_object_id(values)
