"""Async HTTP client for the jobs API.

Every call runs through ``with_backoff``; failures surface as
RemoteCallError only after all attempts are exhausted.
"""

from typing import Any, TypeVar
from uuid import UUID

import httpx
from pydantic import BaseModel, ValidationError

from jobfeed.config import settings
from jobfeed.models.job import JobStatus
from jobfeed.schemas.job import BulkStatusChangeResponse, JobListResponse, JobResponse
from jobfeed.schemas.site import SiteResponse
from jobfeed.services.remote import (
    RemoteCallError,
    Result,
    result_from_response,
    with_backoff,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: type[ModelT], data: Any) -> ModelT:
    """Validate a response body, reporting a bad body as a remote failure.

    Raises:
        RemoteCallError: If the body does not match ``model``
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RemoteCallError(
            f"Unexpected {model.__name__} payload: {str(data)[:200]}"
        ) from e


class JobFeedApiClient:
    """Client for the /api/v1/jobs endpoints on behalf of one user."""

    def __init__(
        self,
        user_id: UUID,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ):
        """Initialize the client.

        Args:
            user_id: Identity sent in the X-User-Id header
            base_url: API base URL. Defaults to settings.api_base_url
            http_client: Shared httpx client; a short-lived one is opened per call otherwise
            timeout: Request timeout in seconds
            max_attempts: Retry attempts. Defaults to settings.remote_max_attempts
            base_delay: Retry base delay. Defaults to settings.remote_base_delay
        """
        self.user_id = user_id
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._http_client = http_client

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Result:
        response = await client.request(
            method,
            f"{self.base_url}{path}",
            headers={"X-User-Id": str(self.user_id)},
            timeout=self.timeout,
            **kwargs,
        )
        return result_from_response(response)

    async def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._http_client is not None:
            return await with_backoff(
                lambda: self._request(self._http_client, method, path, **kwargs),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
            )
        async with httpx.AsyncClient() as client:
            return await with_backoff(
                lambda: self._request(client, method, path, **kwargs),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
            )

    async def list_jobs(
        self,
        status: JobStatus,
        limit: int | None = None,
        after: str | None = None,
    ) -> JobListResponse:
        """Fetch one page of a status tab plus the tab counters."""
        params: dict[str, Any] = {
            "status": status.value,
            "limit": limit or settings.default_page_size,
        }
        if after:
            params["after"] = after

        data = await self._call("GET", "/api/v1/jobs", params=params)
        return parse_payload(JobListResponse, data)

    async def get_job(self, job_id: int) -> JobResponse:
        data = await self._call("GET", f"/api/v1/jobs/{job_id}")
        return parse_payload(JobResponse, data)

    async def update_job_status(self, job_id: int, status: JobStatus) -> None:
        """Overwrite a job's status (safe to repeat)."""
        await self._call(
            "PATCH", f"/api/v1/jobs/{job_id}/status", json={"status": status.value}
        )

    async def change_all_job_status(
        self,
        from_status: JobStatus,
        to_status: JobStatus,
    ) -> int:
        """Move every job in ``from_status`` to ``to_status``.

        Returns:
            Number of jobs moved
        """
        data = await self._call(
            "POST",
            "/api/v1/jobs/status",
            json={"from_status": from_status.value, "to_status": to_status.value},
        )
        return parse_payload(BulkStatusChangeResponse, data).updated

    async def update_job_labels(self, job_id: int, labels: list[str]) -> JobResponse:
        """Replace a job's labels (safe to repeat).

        Returns:
            The job as stored, with normalized labels
        """
        data = await self._call(
            "PATCH", f"/api/v1/jobs/{job_id}/labels", json={"labels": labels}
        )
        return parse_payload(JobResponse, data)

    async def list_sites(self) -> list[SiteResponse]:
        data = await self._call("GET", "/api/v1/sites")
        if not isinstance(data, list):
            raise RemoteCallError(f"Unexpected sites payload: {str(data)[:200]}")
        return [parse_payload(SiteResponse, site) for site in data]
