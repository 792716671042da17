"""Dependency health checks for the /health endpoint.

Each check is a small coroutine run under a common 2 second budget;
``_run_check`` turns its outcome (or timeout, or exception) into a
ServiceHealth with the measured latency.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

CHECK_TIMEOUT = 2.0


@dataclass
class ServiceHealth:
    """Health status for a service dependency."""

    status: Literal["connected", "unreachable", "error"]
    latency_ms: float | None = None
    error: str | None = None


async def _run_check(check: Callable[[], Awaitable[str | None]]) -> ServiceHealth:
    """Run a check returning None when healthy or an error description."""
    start = time.perf_counter()
    try:
        async with asyncio.timeout(CHECK_TIMEOUT):
            problem = await check()
    except asyncio.TimeoutError:
        return ServiceHealth(status="unreachable", error="timeout")
    except Exception as e:
        return ServiceHealth(status="error", error=str(e))

    if problem is not None:
        return ServiceHealth(status="error", error=problem)
    latency = (time.perf_counter() - start) * 1000
    return ServiceHealth(status="connected", latency_ms=round(latency, 2))


async def check_database(db_url: str) -> ServiceHealth:
    """SELECT 1 through a throwaway engine, leaving the app pool untouched."""

    async def check() -> None:
        engine = create_async_engine(db_url)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        finally:
            await engine.dispose()

    return await _run_check(check)


async def check_llm(
    base_url: str,
    api_key: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceHealth:
    """Ask the chat completions provider for its model list.

    Args:
        base_url: OpenAI-compatible API base URL
        api_key: Bearer token, if the provider needs one
        http_client: Client to query with; a short-lived one otherwise
    """
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
    url = f"{base_url.rstrip('/')}/models"

    async def check() -> str | None:
        if http_client is not None:
            response = await http_client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, headers=headers)
        if response.status_code != 200:
            return f"HTTP {response.status_code}"
        return None

    return await _run_check(check)


async def health_report(db_url: str, llm_base_url: str, llm_api_key: str | None) -> dict:
    """Run every check concurrently and summarize them for the endpoint."""
    database, llm = await asyncio.gather(
        check_database(db_url),
        check_llm(llm_base_url, llm_api_key),
    )
    healthy = database.status == "connected" and llm.status == "connected"
    return {
        "status": "healthy" if healthy else "degraded",
        "dependencies": {"database": database.status, "llm": llm.status},
    }
