from app.models.types import JOB_TYPES, TERMINAL_STATUSES, JobStatus, JobType
from app.models.request import CreateJobRequest, PatchJobRequest
from app.models.response import (
    BlobStoredResponse,
    CreateJobResponse,
    HealthResponse,
    JobResponse,
    UploadUrlResponse,
)

__all__ = [
    "JOB_TYPES",
    "TERMINAL_STATUSES",
    "JobStatus",
    "JobType",
    "CreateJobRequest",
    "PatchJobRequest",
    "BlobStoredResponse",
    "CreateJobResponse",
    "HealthResponse",
    "JobResponse",
    "UploadUrlResponse",
]
