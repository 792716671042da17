"""Advanced matching API router.

Lets the user read and replace their advanced matching policy and inspect
the cumulative LLM usage it produced.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from jobfeed.context import RequestContext
from jobfeed.dependencies import get_request_context
from jobfeed.schemas.advanced_matching import (
    AdvancedMatchingResponse,
    AdvancedMatchingUpdate,
    LLMUsageResponse,
)
from jobfeed.services.advanced_matching import (
    get_advanced_matching,
    upsert_advanced_matching,
)
from jobfeed.services.usage import get_usage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/advanced-matching", tags=["advanced-matching"])


@router.get("", response_model=AdvancedMatchingResponse)
async def read_advanced_matching(
    ctx: RequestContext = Depends(get_request_context)
) -> AdvancedMatchingResponse:
    """Get the user's advanced matching config.

    Raises:
        HTTPException 404: No config saved yet
    """
    config = await get_advanced_matching(ctx)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Advanced matching config not found"
        )
    return AdvancedMatchingResponse.model_validate(config)


@router.put("", response_model=AdvancedMatchingResponse)
async def save_advanced_matching(
    update: AdvancedMatchingUpdate,
    ctx: RequestContext = Depends(get_request_context)
) -> AdvancedMatchingResponse:
    """Create or replace the user's advanced matching config."""
    try:
        config = await upsert_advanced_matching(
            ctx, update.chatgpt_prompt, update.blacklisted_companies
        )
        return AdvancedMatchingResponse.model_validate(config)

    except Exception as e:
        logger.error(f"Failed to save advanced matching config: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save advanced matching config: {str(e)}"
        )


@router.get("/usage", response_model=LLMUsageResponse)
async def read_usage(
    ctx: RequestContext = Depends(get_request_context)
) -> LLMUsageResponse:
    """Cumulative LLM usage; zeros when the user never triggered a call."""
    usage = await get_usage(ctx.db, ctx.user_id)
    if usage is None:
        return LLMUsageResponse()
    return LLMUsageResponse.model_validate(usage)
