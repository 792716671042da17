"""Read access to the job boards jobs are scraped from."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobfeed.models import Site


async def list_sites(db: AsyncSession) -> list[Site]:
    """All known sites, ordered by id."""
    result = await db.execute(select(Site).order_by(Site.id))
    return list(result.scalars().all())
