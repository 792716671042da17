"""Explicit per-request context passed into every core operation."""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller plus the storage handle to act with."""

    user_id: UUID
    db: AsyncSession
