"""Client-side feed aggregator.

Keeps the in-memory listing of one status tab in sync with the jobs API:

- ``activate`` loads the first page of a tab (tab switch or filter change)
- ``load_more`` appends the next page (scroll), and is also started
  automatically whenever the listing runs below half a batch
- ``update_job_status`` moves a job out of the tab optimistically
- ``update_job_labels`` replaces a job's labels in place
- ``select_job`` scans a job's description on demand

Everything runs on one event loop. Only one page fetch is in flight per tab,
guarded by the listing state, and pages that arrive after the user switched
tabs are dropped by comparing a generation number. Any failure of the API
or the scanner ends up in ``errors`` as a FeedError; a failed fetch always
leaves the listing out of its loading state.

Reconciliation policy for optimistic updates: the listing is flagged
``is_stale`` while a mutation is unconfirmed. A rejected mutation is
reported as a FeedError and left as is until the next full reload, unless
the aggregator was built with ``reload_on_failure=True``, in which case the
tab is reloaded right away.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Protocol

from jobfeed.config import settings
from jobfeed.models.job import USER_STATUSES, JobStatus
from jobfeed.schemas.job import JobListResponse, JobResponse

logger = logging.getLogger(__name__)


class FeedApi(Protocol):
    async def list_jobs(
        self, status: JobStatus, limit: int | None = None, after: str | None = None
    ) -> JobListResponse: ...

    async def update_job_status(self, job_id: int, status: JobStatus) -> None: ...

    async def update_job_labels(self, job_id: int, labels: list[str]) -> JobResponse: ...

    async def change_all_job_status(
        self, from_status: JobStatus, to_status: JobStatus
    ) -> int: ...


# Returns the job enriched with its description
Scanner = Callable[[JobResponse], Awaitable[JobResponse]]


class ListingState(str, Enum):
    IDLE = "idle"
    LOADING_INITIAL = "loading-initial"
    LOADED = "loaded"
    LOADING_MORE = "loading-more"


@dataclass
class Counters:
    """Tab badges; mirror the server counts between reloads."""

    new: int = 0
    applied: int = 0
    archived: int = 0

    @classmethod
    def from_page(cls, page: JobListResponse) -> "Counters":
        return cls(new=page.new, applied=page.applied, archived=page.archived)

    def get(self, status: JobStatus) -> int:
        return getattr(self, status.value)

    def move(self, source: JobStatus | None, destination: JobStatus) -> None:
        """Move one job's worth of count from ``source`` to ``destination``."""
        if source == destination:
            return
        if source in USER_STATUSES:
            setattr(self, source.value, max(0, self.get(source) - 1))
        if destination in USER_STATUSES:
            setattr(self, destination.value, self.get(destination) + 1)


@dataclass
class Listing:
    """In-memory view of one status tab."""

    status: JobStatus
    jobs: list[JobResponse] = field(default_factory=list)
    next_page_token: str | None = None
    has_more: bool = True
    state: ListingState = ListingState.IDLE
    counters: Counters = field(default_factory=Counters)
    is_stale: bool = False
    pending_mutations: int = 0

    @property
    def is_loading(self) -> bool:
        return self.state in (ListingState.LOADING_INITIAL, ListingState.LOADING_MORE)


@dataclass(frozen=True)
class FeedError:
    """User-visible failure: a short title plus the underlying message."""

    title: str
    message: str


class FeedAggregator:
    """Merges API pages into the listing of the active tab."""

    def __init__(
        self,
        api: FeedApi,
        scanner: Scanner | None = None,
        batch_size: int | None = None,
        reload_on_failure: bool = False,
    ):
        self._api = api
        self._scanner = scanner
        self.batch_size = batch_size or settings.default_page_size
        self.reload_on_failure = reload_on_failure

        self.listing = Listing(status=JobStatus.NEW)
        self.selected_job: JobResponse | None = None
        self.is_scanning = False
        self.errors: list[FeedError] = []

        self._generation = 0
        self._tasks: set[asyncio.Task] = set()

    def _report(self, title: str, error: Exception) -> None:
        message = getattr(error, "message", None) or str(error)
        logger.error(f"{title}: {message}")
        self.errors.append(FeedError(title=title, message=message))

    # Loading

    async def activate(self, status: JobStatus) -> None:
        """Load the first page of a tab, replacing the whole listing."""
        self._generation += 1
        generation = self._generation

        self.listing = Listing(
            status=status,
            state=ListingState.LOADING_INITIAL,
            counters=replace(self.listing.counters),
        )
        listing = self.listing

        try:
            page = await self._api.list_jobs(status=status, limit=self.batch_size)
        except Exception as e:
            if generation == self._generation:
                listing.state = ListingState.IDLE
                self._report("Failed to load jobs", e)
            return

        if generation != self._generation:
            logger.debug(f"Dropping stale first page for '{status.value}'")
            return

        listing.jobs = list(page.jobs)
        listing.next_page_token = page.next_page_token
        listing.has_more = len(page.jobs) == self.batch_size
        listing.counters = Counters.from_page(page)
        listing.state = ListingState.LOADED
        self.selected_job = page.jobs[0] if page.jobs else None

        self._maybe_backfill()

    async def load_more(self) -> bool:
        """Append the next page of the active tab.

        Returns:
            True if a page was appended, False if nothing was fetched or the
            response was dropped
        """
        listing = self.listing
        if listing.is_loading or not listing.has_more or not listing.next_page_token:
            return False

        generation = self._generation
        listing.state = ListingState.LOADING_MORE

        try:
            page = await self._api.list_jobs(
                status=listing.status,
                limit=self.batch_size,
                after=listing.next_page_token,
            )
        except Exception as e:
            if generation == self._generation:
                listing.state = ListingState.LOADED
                self._report("Failed to load more jobs", e)
            return False

        if generation != self._generation or self.listing is not listing:
            logger.debug(f"Dropping stale page for '{listing.status.value}'")
            return False

        listing.jobs.extend(page.jobs)
        listing.next_page_token = page.next_page_token
        listing.has_more = len(page.jobs) == self.batch_size
        # Unconfirmed moves are not reflected in server counts yet
        if listing.pending_mutations == 0:
            listing.counters = Counters.from_page(page)
        listing.state = ListingState.LOADED

        self._maybe_backfill()
        return True

    def should_backfill(self) -> bool:
        """Whether the listing ran low and another page may exist."""
        listing = self.listing
        return (
            listing.state == ListingState.LOADED
            and len(listing.jobs) < self.batch_size / 2
            and listing.has_more
            and listing.next_page_token is not None
        )

    def _maybe_backfill(self) -> asyncio.Task | None:
        if not self.should_backfill():
            return None

        logger.debug(
            f"Backfilling '{self.listing.status.value}' "
            f"({len(self.listing.jobs)} jobs loaded)"
        )
        task = asyncio.create_task(self.load_more())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until no background fetch is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # Mutations

    async def update_job_status(self, job_id: int, status: JobStatus) -> bool:
        """Move a job to another tab, updating the listing before the server.

        Returns:
            True if the server confirmed the change

        Raises:
            ValueError: If ``status`` is not a user status
        """
        if status not in USER_STATUSES:
            raise ValueError(f"Status '{status.value}' cannot be set by the user")

        listing = self.listing
        job = next((j for j in listing.jobs if j.id == job_id), None)

        if job is not None and job.status != status:
            listing.jobs.remove(job)
            listing.counters.move(job.status, status)

        listing.is_stale = True
        listing.pending_mutations += 1
        self._maybe_backfill()

        try:
            await self._api.update_job_status(job_id, status)
        except Exception as e:
            self._report("Failed to update job status", e)
            if self.reload_on_failure and self.listing is listing:
                await self.activate(listing.status)
            return False
        finally:
            listing.pending_mutations -= 1

        return True

    async def change_all_status(self, from_status: JobStatus, to_status: JobStatus) -> bool:
        """Move every job of one status to another, then reload the active tab."""
        try:
            moved = await self._api.change_all_job_status(from_status, to_status)
        except Exception as e:
            self._report("Failed to update job statuses", e)
            return False

        logger.info(f"Moved {moved} jobs from '{from_status.value}' to '{to_status.value}'")
        await self.activate(self.listing.status)
        return True

    async def update_job_labels(self, job_id: int, labels: list[str]) -> bool:
        """Replace a job's labels, patching the listing with the stored job.

        Labels do not change a job's place in its tab, so nothing is
        applied before the server confirms.
        """
        try:
            updated = await self._api.update_job_labels(job_id, labels)
        except Exception as e:
            self._report("Failed to update job labels", e)
            return False

        self._patch_job(updated)
        return True

    def _patch_job(self, updated: JobResponse) -> None:
        if self.selected_job is not None and self.selected_job.id == updated.id:
            self.selected_job = updated
        self.listing.jobs = [
            updated if j.id == updated.id else j for j in self.listing.jobs
        ]

    # Selection

    async def select_job(self, job: JobResponse) -> JobResponse:
        """Select a job, scanning its description first if it has none.

        Returns:
            The selected job, enriched when the scan succeeded
        """
        self.selected_job = job
        if job.description or self._scanner is None:
            return job

        self.is_scanning = True
        try:
            updated = await self._scanner(job)
        except Exception as e:
            self._report("Failed to scan job", e)
            return job
        finally:
            self.is_scanning = False

        self._patch_job(updated)
        return updated
