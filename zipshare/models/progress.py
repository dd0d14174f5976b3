from pydantic import BaseModel, ConfigDict
from typing import Any, Literal, Optional, Union
from enum import Enum

from zipshare.models.transfers import Transfer


class ProgressEvent(BaseModel):
    kind: Literal["progress"] = "progress"
    loaded: int
    total: int
    percent: float
    chunk: Optional[int] = None
    total_chunks: Optional[int] = None
    speed: float = 0
    eta: Optional[float] = None
    source: Literal["local", "push"] = "local"


class UploadStarted(BaseModel):
    kind: Literal["started"] = "started"
    transfer: Transfer


class UploadCompleted(BaseModel):
    kind: Literal["completed"] = "completed"
    result: Any = None


class UploadPaused(BaseModel):
    kind: Literal["paused"] = "paused"
    at_chunk: int


class UploadFailed(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["failed"] = "failed"
    message: str
    error: Exception


class UploadAborted(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["aborted"] = "aborted"
    message: str = "Upload aborted"
    error: Optional[Exception] = None


UploadEvent = Union[UploadStarted, ProgressEvent, UploadCompleted, UploadPaused, UploadFailed, UploadAborted]
TERMINAL_EVENTS = (UploadCompleted, UploadPaused, UploadFailed, UploadAborted)


class UploadState(str, Enum):
    COMPLETED = "completed"
    PAUSED = "paused"
    FAILED = "failed"
    ABORTED = "aborted"


class UploadOutcome(BaseModel):
    state: UploadState
    transfer_id: Optional[str] = None
    at_chunk: Optional[int] = None
    result: Any = None
