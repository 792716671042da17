"""Jobs API router.

This module provides REST endpoints for the job feed: paginated listing with
tab counters, status transitions, and the ingestion path that runs the
advanced matching filter on freshly scraped jobs.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from jobfeed.config import settings
from jobfeed.context import RequestContext
from jobfeed.dependencies import get_llm_client, get_request_context, get_usage_meter
from jobfeed.models import JobStatus
from jobfeed.schemas.job import (
    BulkStatusChange,
    BulkStatusChangeResponse,
    JobIngestRequest,
    JobIngestResponse,
    JobLabelsUpdate,
    JobListResponse,
    JobResponse,
    JobStatusUpdate,
)
from jobfeed.services import job_store
from jobfeed.services.ingestion import ingest_jobs
from jobfeed.services.job_store import InvalidStatusError, JobNotFoundError
from jobfeed.services.llm import LLMClient
from jobfeed.services.page_token import InvalidPageTokenError
from jobfeed.services.remote import RemoteCallError
from jobfeed.services.usage import UsageMeter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs for a status tab"
)
async def list_jobs(
    job_status: JobStatus = Query(JobStatus.NEW, alias="status", description="Status tab"),
    limit: int = Query(
        settings.default_page_size,
        ge=1,
        le=settings.max_page_size,
        description="Page size"
    ),
    after: str | None = Query(None, description="Continuation token of the previous page"),
    ctx: RequestContext = Depends(get_request_context)
) -> JobListResponse:
    """List one page of jobs plus the counters of every tab.

    Jobs are ordered by (updated_at, id) descending. ``next_page_token`` is
    present when the page came back full, meaning more jobs might follow.

    Args:
        job_status: Status tab to list
        limit: Page size
        after: Continuation token from a previous page
        ctx: Request context

    Returns:
        Page of jobs with new/applied/archived counters

    Raises:
        HTTPException 400: Malformed continuation token
        HTTPException 500: Database error
    """
    try:
        page = await job_store.list_jobs_page(ctx, job_status, limit, after)
        counters = await job_store.count_statuses(ctx)

        return JobListResponse(
            jobs=[JobResponse.model_validate(job) for job in page.jobs],
            new=counters[JobStatus.NEW.value],
            applied=counters[JobStatus.APPLIED.value],
            archived=counters[JobStatus.ARCHIVED.value],
            next_page_token=page.next_page_token
        )

    except InvalidPageTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Failed to list jobs: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list jobs: {str(e)}"
        )


@router.post(
    "/status",
    response_model=BulkStatusChangeResponse,
    summary="Move all jobs of one status to another"
)
async def change_all_jobs_status(
    change: BulkStatusChange,
    ctx: RequestContext = Depends(get_request_context)
) -> BulkStatusChangeResponse:
    """Move every job in ``from_status`` to ``to_status``.

    Raises:
        HTTPException 400: Status not reachable by the user
        HTTPException 500: Database error
    """
    try:
        updated = await job_store.change_all_job_status(
            ctx, change.from_status, change.to_status
        )
        return BulkStatusChangeResponse(updated=updated)

    except InvalidStatusError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Failed to change job statuses: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to change job statuses: {str(e)}"
        )


@router.post(
    "/ingest",
    response_model=JobIngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest freshly scraped jobs"
)
async def ingest_scraped_jobs(
    request: JobIngestRequest,
    ctx: RequestContext = Depends(get_request_context),
    llm: LLMClient = Depends(get_llm_client),
    meter: UsageMeter = Depends(get_usage_meter)
) -> JobIngestResponse:
    """Deduplicate, classify and persist a batch of scraped jobs.

    Each new job runs through the advanced matching filter, which decides
    whether it starts as ``new`` or ``excluded_by_advanced_matching``.

    Args:
        request: Batch of scraped jobs
        ctx: Request context
        llm: Chat client for the semantic stage
        meter: Usage meter for LLM cost

    Returns:
        New jobs plus excluded and duplicate counts

    Raises:
        HTTPException 502: LLM provider failed after retries
        HTTPException 500: Database error
    """
    try:
        result = await ingest_jobs(ctx, request.jobs, llm, meter)

        return JobIngestResponse(
            new_jobs=[JobResponse.model_validate(job) for job in result.new_jobs],
            excluded=result.excluded,
            duplicates=result.duplicates
        )

    except RemoteCallError as e:
        logger.error(f"Advanced matching failed during ingestion: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Advanced matching unavailable: {e.message}"
        )
    except Exception as e:
        logger.error(f"Failed to ingest jobs: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to ingest jobs: {str(e)}"
        )


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get a specific job"
)
async def get_job(
    job_id: int,
    ctx: RequestContext = Depends(get_request_context)
) -> JobResponse:
    """Get a single job by ID.

    Raises:
        HTTPException 404: Job not found
        HTTPException 500: Database error
    """
    try:
        job = await job_store.get_job(ctx, job_id)
        return JobResponse.model_validate(job)

    except JobNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Failed to get job {job_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get job: {str(e)}"
        )


@router.patch(
    "/{job_id}/status",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Update the status of a job"
)
async def update_job_status(
    job_id: int,
    update: JobStatusUpdate,
    ctx: RequestContext = Depends(get_request_context)
) -> None:
    """Move a job between the new, applied and archived tabs.

    Raises:
        HTTPException 400: Status not reachable by the user
        HTTPException 404: Job not found (or excluded by advanced matching)
        HTTPException 500: Database error
    """
    try:
        await job_store.update_job_status(ctx, job_id, update.status)

    except InvalidStatusError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except JobNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Failed to update status of job {job_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update job status: {str(e)}"
        )


@router.patch(
    "/{job_id}/labels",
    response_model=JobResponse,
    summary="Replace the labels of a job"
)
async def update_job_labels(
    job_id: int,
    update: JobLabelsUpdate,
    ctx: RequestContext = Depends(get_request_context)
) -> JobResponse:
    """Replace a job's labels; the job keeps its place in its tab.

    Raises:
        HTTPException 404: Job not found (or excluded by advanced matching)
        HTTPException 500: Database error
    """
    try:
        job = await job_store.update_job_labels(ctx, job_id, update.labels)
        return JobResponse.model_validate(job)

    except JobNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Failed to update labels of job {job_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update job labels: {str(e)}"
        )
