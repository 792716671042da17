"""Job-related Pydantic schemas.

This module defines request and response schemas for Job endpoints,
including the paginated listing with tab counters, status changes and
the ingestion batch.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from jobfeed.models.job import JobStatus

JobType = Literal["remote", "hybrid", "onsite"]


class JobCreate(BaseModel):
    """Schema for a scraped job handed to the ingestion path."""

    site_id: int
    external_id: str = Field(..., min_length=1, max_length=512)
    external_url: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=512)
    company_name: str = Field(..., min_length=1, max_length=255)
    company_logo: str | None = None
    location: str | None = None
    salary: str | None = None
    tags: list[str] | None = None
    job_type: JobType | None = None
    description: str | None = None


class JobResponse(BaseModel):
    """Schema for job response with all fields."""

    id: int
    site_id: int
    external_id: str
    external_url: str
    title: str
    company_name: str
    company_logo: str | None = None
    location: str | None = None
    salary: str | None = None
    tags: list[str] | None = None
    job_type: JobType | None = None
    description: str | None = None
    labels: list[str] = Field(default_factory=list)
    status: JobStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    """One page of jobs for a status tab plus the authoritative tab counters."""

    jobs: list[JobResponse]
    new: int
    applied: int
    archived: int
    next_page_token: str | None = None


class JobStatusUpdate(BaseModel):
    """Schema for moving a single job to another status."""

    status: JobStatus


class JobLabelsUpdate(BaseModel):
    """Schema for replacing the labels of a job."""

    labels: list[str] = Field(..., max_length=20)


class BulkStatusChange(BaseModel):
    """Schema for moving every job in one status to another."""

    from_status: JobStatus
    to_status: JobStatus


class BulkStatusChangeResponse(BaseModel):
    updated: int


class JobIngestRequest(BaseModel):
    """Batch of freshly scraped jobs for one user."""

    jobs: list[JobCreate] = Field(..., max_length=500)


class JobIngestResponse(BaseModel):
    """Outcome of an ingestion batch.

    Only jobs that landed in the ``new`` status are returned; excluded and
    duplicate jobs are reported as counts.
    """

    new_jobs: list[JobResponse]
    excluded: int
    duplicates: int
