from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from file_vault.app.models.objects import StoredObject, TrashedObject


class FileOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    filename: str
    length: int
    upload_date: datetime = Field(alias="uploadDate")

    @classmethod
    def from_stored(cls, obj: StoredObject) -> "FileOut":
        return cls(id=obj.id, filename=obj.filename, length=obj.size, upload_date=obj.uploaded_at)


class TrashOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(alias="fileId")
    filename: str
    length: int
    upload_date: datetime = Field(alias="uploadDate")
    deleted_at: datetime = Field(alias="deletedAt")
    has_payload: bool = Field(alias="hasPayload")

    @classmethod
    def from_trashed(cls, record: TrashedObject) -> "TrashOut":
        return cls(
            file_id=record.original_id,
            filename=record.filename,
            length=record.size,
            upload_date=record.uploaded_at,
            deleted_at=record.deleted_at,
            has_payload=record.has_payload,
        )


class UploadOut(BaseModel):
    message: str
    id: str
    filename: str


class MessageOut(BaseModel):
    message: str


class RestoreOut(BaseModel):
    message: str
    id: Optional[str] = None
    filename: Optional[str] = None


class HealthOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    used_bytes: int = Field(alias="usedBytes")
    capacity_bytes: int = Field(alias="capacityBytes")
