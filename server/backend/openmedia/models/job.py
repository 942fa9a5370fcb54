# Job model - tracks transcoding jobs (status, source, result prefix, progress, artifacts, errors)

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)

    @property
    def rank(self) -> int:
        """Position in the forward-only state machine"""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.DONE: 2,
    JobStatus.ERROR: 2,
}


class ProgressStage(str, Enum):
    DOWNLOADING = "downloading"
    TRANSCODING = "transcoding"
    THUMBNAILS = "thumbnails"
    UPLOADING = "uploading"
    DONE = "done"


class JobProgress(BaseModel):
    """Progress snapshot, replaced wholesale on every update"""

    step: ProgressStage
    current_quality: Optional[str] = None
    completed_qualities: Optional[List[str]] = None
    total_qualities: Optional[int] = None
    percentage: int = Field(default=0, ge=0, le=100)
    message: str = ""


class Job(BaseModel):
    """A transcoding job as stored in the registry and returned by the API"""

    id: str
    source_url: str
    result_key_prefix: str
    webhook_url: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: Optional[JobProgress] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    result_files: Optional[List[str]] = None
    poster_key: Optional[str] = None
    thumbnails_key: Optional[str] = None
    error: Optional[str] = None

    def __repr__(self):
        return f"<Job(id={self.id}, status={self.status.value})>"


class JobPatch(BaseModel):
    """
    Partial update of the mutable Job fields.

    Only fields that were explicitly set are applied, so `JobPatch(error=None)`
    clears the error while `JobPatch()` changes nothing but `updated_at`.
    """

    status: Optional[JobStatus] = None
    progress: Optional[JobProgress] = None
    result_files: Optional[List[str]] = None
    poster_key: Optional[str] = None
    thumbnails_key: Optional[str] = None
    error: Optional[str] = None

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}
