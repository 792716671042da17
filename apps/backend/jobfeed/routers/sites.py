"""Sites API router.

Lists the job boards the scraper knows about, so clients can show where a
job came from.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobfeed.database import get_db
from jobfeed.schemas.site import SiteResponse
from jobfeed.services.sites import list_sites

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sites", tags=["sites"])


@router.get("", response_model=list[SiteResponse], summary="List job sites")
async def read_sites(db: AsyncSession = Depends(get_db)) -> list[SiteResponse]:
    """List every job site.

    Raises:
        HTTPException 500: Database error
    """
    try:
        sites = await list_sites(db)
        return [SiteResponse.model_validate(site) for site in sites]

    except Exception as e:
        logger.error(f"Failed to list sites: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list sites: {str(e)}"
        )
