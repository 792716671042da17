"""FastAPI dependencies shared by the routers."""

from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from jobfeed.context import RequestContext
from jobfeed.database import get_db
from jobfeed.services.llm import LLMClient
from jobfeed.services.usage import UsageMeter


async def get_request_context(
    x_user_id: UUID = Header(..., description="Authenticated user id"),
    db: AsyncSession = Depends(get_db),
) -> RequestContext:
    """Build the explicit request context from the caller identity header."""
    return RequestContext(user_id=x_user_id, db=db)


def get_llm_client() -> LLMClient:
    return LLMClient()


def get_usage_meter(request: Request) -> UsageMeter:
    """Application-wide usage meter, created on first use."""
    meter = getattr(request.app.state, "usage_meter", None)
    if meter is None:
        meter = UsageMeter()
        request.app.state.usage_meter = meter
    return meter
