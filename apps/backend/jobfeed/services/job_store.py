"""Job storage: cursor pagination, status counters, status and label updates.

Counters are never maintained incrementally. Every count is a fresh
aggregate over committed rows, so a listing fetch always reports the
authoritative numbers no matter how the client's view drifted.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import and_, func, or_, select, update

from jobfeed.context import RequestContext
from jobfeed.models import USER_STATUSES, Job, JobStatus
from jobfeed.services.page_token import decode_page_token, encode_page_token
from jobfeed.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


class JobNotFoundError(ValueError):
    """Raised when a job does not exist for the requesting user."""


class InvalidStatusError(ValueError):
    """Raised for status changes a user is not allowed to make."""


@dataclass
class JobPage:
    """One page of a status listing."""

    jobs: list[Job] = field(default_factory=list)
    next_page_token: str | None = None


def _require_user_status(status: JobStatus) -> None:
    if status not in USER_STATUSES:
        raise InvalidStatusError(
            f"Status '{status.value}' cannot be set by the user"
        )


async def list_jobs_page(
    ctx: RequestContext,
    status: JobStatus,
    limit: int,
    after: str | None = None,
) -> JobPage:
    """Fetch one page of jobs in strictly decreasing (updated_at, id) order.

    Args:
        ctx: Request context (user + session)
        status: Status tab to list
        limit: Page size
        after: Continuation token from the previous page

    Returns:
        JobPage whose next_page_token is set iff exactly ``limit`` rows came back

    Raises:
        InvalidPageTokenError: If ``after`` is malformed
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    query = (
        select(Job)
        .where(Job.user_id == ctx.user_id)
        .where(Job.status == status.value)
        .order_by(Job.updated_at.desc(), Job.id.desc())
        .limit(limit)
    )

    if after:
        cursor = decode_page_token(after)
        # Resume strictly past the last-seen key
        query = query.where(
            or_(
                Job.updated_at < cursor.updated_at,
                and_(
                    Job.updated_at == cursor.updated_at,
                    Job.id < cursor.job_id,
                ),
            )
        )

    result = await ctx.db.execute(query)
    jobs = list(result.scalars().all())

    next_page_token = None
    if len(jobs) == limit:
        last = jobs[-1]
        next_page_token = encode_page_token(last.id, last.updated_at)

    return JobPage(jobs=jobs, next_page_token=next_page_token)


async def count_jobs(ctx: RequestContext, status: JobStatus) -> int:
    """Count the user's committed jobs in a status."""
    result = await ctx.db.execute(
        select(func.count())
        .select_from(Job)
        .where(Job.user_id == ctx.user_id)
        .where(Job.status == status.value)
    )
    return result.scalar() or 0


async def count_statuses(ctx: RequestContext) -> dict[str, int]:
    """Counters for every user-visible tab, keyed by status value."""
    counters = {}
    for status in USER_STATUSES:
        counters[status.value] = await count_jobs(ctx, status)
    return counters


async def get_job(ctx: RequestContext, job_id: int) -> Job:
    """Fetch a single job owned by the user.

    Raises:
        JobNotFoundError: If the job does not exist for this user
    """
    result = await ctx.db.execute(
        select(Job).where(Job.id == job_id).where(Job.user_id == ctx.user_id)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    return job


async def update_job_status(
    ctx: RequestContext,
    job_id: int,
    status: JobStatus,
) -> None:
    """Move one job to a user status in a single atomic UPDATE.

    Jobs excluded by advanced matching are not user-reachable, so only rows
    currently in a user status are eligible.

    Raises:
        InvalidStatusError: If ``status`` is not a user status
        JobNotFoundError: If no eligible job matched
    """
    _require_user_status(status)

    result = await ctx.db.execute(
        update(Job)
        .where(Job.id == job_id)
        .where(Job.user_id == ctx.user_id)
        .where(Job.status.in_([s.value for s in USER_STATUSES]))
        .values(status=status.value, updated_at=utc_now())
    )
    if result.rowcount == 0:
        await ctx.db.rollback()
        raise JobNotFoundError(f"Job {job_id} not found")

    await ctx.db.commit()
    logger.info(f"Moved job {job_id} to '{status.value}' for user {ctx.user_id}")


async def change_all_job_status(
    ctx: RequestContext,
    from_status: JobStatus,
    to_status: JobStatus,
) -> int:
    """Move every job of the user in ``from_status`` to ``to_status``.

    Returns:
        Number of rows updated

    Raises:
        InvalidStatusError: If either status is not a user status
    """
    _require_user_status(from_status)
    _require_user_status(to_status)

    result = await ctx.db.execute(
        update(Job)
        .where(Job.user_id == ctx.user_id)
        .where(Job.status == from_status.value)
        .values(status=to_status.value, updated_at=utc_now())
    )
    await ctx.db.commit()

    logger.info(
        f"Moved {result.rowcount} jobs from '{from_status.value}' "
        f"to '{to_status.value}' for user {ctx.user_id}"
    )
    return result.rowcount


def normalize_labels(labels: list[str]) -> list[str]:
    """Strip labels, drop blanks and repeats (case-insensitive), keep order."""
    seen: set[str] = set()
    cleaned = []
    for label in labels:
        name = label.strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            cleaned.append(name)
    return cleaned


async def update_job_labels(
    ctx: RequestContext,
    job_id: int,
    labels: list[str],
) -> Job:
    """Replace the labels of a job without moving it in its listing.

    Returns:
        The updated job

    Raises:
        JobNotFoundError: If the job does not exist for this user or was
            excluded by advanced matching
    """
    cleaned = normalize_labels(labels)

    result = await ctx.db.execute(
        update(Job)
        .where(Job.id == job_id)
        .where(Job.user_id == ctx.user_id)
        .where(Job.status.in_([s.value for s in USER_STATUSES]))
        # Keeps updated_at, so the pagination key does not change
        .values(labels=cleaned, updated_at=Job.updated_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await ctx.db.rollback()
        raise JobNotFoundError(f"Job {job_id} not found")

    await ctx.db.commit()
    job = await get_job(ctx, job_id)
    await ctx.db.refresh(job)
    return job
