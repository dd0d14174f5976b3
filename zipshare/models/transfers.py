from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from enum import Enum


class TransferState(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


class BackendModel(BaseModel):
    # the backend answers in snake_case on some routes and camelCase on others
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Transfer(BackendModel):
    id: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    status: TransferState = TransferState.PENDING


class TransferStatus(BackendModel):
    id: str
    file_name: str
    file_size: int
    status: TransferState
    progress: float = 0
    download_count: int = 0
    max_downloads: Optional[int] = None
    created_at: str
    expires_at: str
    share_url: Optional[str] = None


class TransferList(BackendModel):
    transfers: List[TransferStatus] = Field(default_factory=list)
    total: int = 0


class BatchTransfer(BackendModel):
    id: str
    transfers: List[Transfer]


class MultipartInit(BackendModel):
    upload_id: str
    key: str


class PartRecord(BaseModel):
    part_number: int
    etag: str


class ShareOptions(BaseModel):
    password: Optional[str] = None
    expires_in: Optional[int] = None
    max_downloads: Optional[int] = None
    recipient_email: Optional[str] = None
    message: Optional[str] = None


class ShareLink(BackendModel):
    token: str
    url: str
    expires_at: str


class DownloadLink(BackendModel):
    file_name: str
    file_size: int
    download_url: str
    valid_for: int


class FileEntry(BaseModel):
    name: str
    size: int


class UploadResult(BaseModel):
    id: str
    file_name: str
    file_size: int
    share_url: str
    expires_at: str


class MultiUploadResult(UploadResult):
    file_count: int
    total_size: int
    files: List[FileEntry]


class ChunkReceipt(BackendModel):
    etag: str
    speed: Optional[float] = None
    eta: Optional[float] = None
