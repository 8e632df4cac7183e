# model/job.py
from datetime import datetime
from enum import Enum
from typing import Any, Literal
from pydantic import BaseModel, Field
from model.analysis import MatrixAnalysisRequest


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Allowed forward moves; terminal states have none.
TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class Job(BaseModel):
    id: str
    status: JobStatus
    request: MatrixAnalysisRequest
    error: str | None = None
    analysisId: str | None = None
    createdAt: datetime
    updatedAt: datetime


EventStatus = Literal["started", "completed", "failed"]


class JobEvent(BaseModel):
    type: Literal["matrix"] = "matrix"
    jobId: str = Field(min_length=1)
    status: EventStatus
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class CreateJobResponse(BaseModel):
    jobId: str
    status: JobStatus
