"""Ingestion of freshly scraped jobs.

Deduplicates a batch against the user's existing jobs, runs the advanced
matching filter once per new job, and persists every new job with the
status the filter decided. Existing keys and matching inputs are read in
one short transaction and the new rows written in another; the LLM stage
runs in between without holding a database connection.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select

from jobfeed.context import RequestContext
from jobfeed.models import Job, JobStatus
from jobfeed.schemas.job import JobCreate
from jobfeed.services.advanced_matching import (
    ChatClient,
    classify_job,
    load_matching_inputs,
)
from jobfeed.services.usage import UsageMeter
from jobfeed.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    new_jobs: list[Job] = field(default_factory=list)
    excluded: int = 0
    duplicates: int = 0


async def ingest_jobs(
    ctx: RequestContext,
    candidates: list[JobCreate],
    llm: ChatClient,
    meter: UsageMeter | None,
    now: datetime | None = None,
) -> IngestResult:
    """Persist new jobs from a scraped batch.

    Args:
        ctx: Request context (user + session)
        candidates: Scraped jobs
        llm: Chat client for the semantic stage
        meter: Usage meter for LLM cost
        now: Reference time for the subscription check

    Returns:
        IngestResult with the jobs that landed in ``new``, the number of
        excluded jobs and the number of duplicates skipped

    Raises:
        RemoteCallError: If the LLM stage fails after all retries
    """
    result = IngestResult()
    if not candidates:
        return result

    site_ids = {candidate.site_id for candidate in candidates}
    existing = await ctx.db.execute(
        select(Job.site_id, Job.external_id)
        .where(Job.user_id == ctx.user_id)
        .where(Job.site_id.in_(site_ids))
    )
    seen = {(row.site_id, row.external_id) for row in existing}

    # Config and profile are read once for the whole batch
    config, profile = await load_matching_inputs(ctx)
    # Ends the read transaction; no connection is held during LLM calls
    await ctx.db.commit()
    now = now or utc_now()

    fresh: list[JobCreate] = []
    for candidate in candidates:
        key = (candidate.site_id, candidate.external_id)
        if key in seen:
            result.duplicates += 1
            continue
        seen.add(key)
        fresh.append(candidate)

    statuses = []
    for candidate in fresh:
        statuses.append(
            await classify_job(
                candidate, config, profile, now, llm, meter, user_id=ctx.user_id
            )
        )

    try:
        for candidate, status in zip(fresh, statuses):
            job = Job(user_id=ctx.user_id, status=status.value, **candidate.model_dump())
            ctx.db.add(job)

            if status == JobStatus.NEW:
                result.new_jobs.append(job)
            else:
                result.excluded += 1

        await ctx.db.commit()
    except Exception:
        await ctx.db.rollback()
        raise

    for job in result.new_jobs:
        await ctx.db.refresh(job)

    logger.info(
        f"Ingested {len(result.new_jobs)} new jobs for user {ctx.user_id} "
        f"({result.excluded} excluded, {result.duplicates} duplicates)"
    )
    return result
