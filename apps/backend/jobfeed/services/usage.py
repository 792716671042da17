"""LLM usage metering.

Usage increments are written by detached tasks with their own database
session. A failed write is logged and dropped; it never reaches the code
path that scheduled it.
"""

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobfeed.models import LLMUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageIncrement:
    """Tokens and estimated cost of one LLM call."""

    cost: float
    input_tokens: int
    output_tokens: int


async def increment_usage(
    db: AsyncSession,
    user_id: UUID,
    usage: UsageIncrement,
) -> None:
    """Accumulate one call's usage into the user's row, creating it if needed.

    Args:
        db: Database session (committed here)
        user_id: Owner of the usage
        usage: Increment to add
    """
    values = {
        "call_count": LLMUsage.call_count + 1,
        "cost": LLMUsage.cost + usage.cost,
        "input_tokens": LLMUsage.input_tokens + usage.input_tokens,
        "output_tokens": LLMUsage.output_tokens + usage.output_tokens,
    }

    result = await db.execute(
        update(LLMUsage).where(LLMUsage.user_id == user_id).values(**values)
    )
    if result.rowcount:
        await db.commit()
        return

    db.add(
        LLMUsage(
            user_id=user_id,
            call_count=1,
            cost=usage.cost,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
    )
    try:
        await db.commit()
    except IntegrityError:
        # Another writer created the row first
        await db.rollback()
        await db.execute(
            update(LLMUsage).where(LLMUsage.user_id == user_id).values(**values)
        )
        await db.commit()


async def get_usage(db: AsyncSession, user_id: UUID) -> LLMUsage | None:
    """Fetch the cumulative usage row for a user, if any."""
    result = await db.execute(select(LLMUsage).where(LLMUsage.user_id == user_id))
    return result.scalar_one_or_none()


class UsageMeter:
    """Schedules usage writes as detached tasks.

    The meter keeps references to its in-flight tasks so they are not
    garbage collected, and ``drain`` waits for them (used at shutdown and in
    tests).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from jobfeed.database import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, user_id: UUID, usage: UsageIncrement) -> asyncio.Task:
        """Schedule a usage increment and return immediately."""
        task = asyncio.create_task(
            self._persist(user_id, usage), name=f"llm-usage-{user_id}"
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _persist(self, user_id: UUID, usage: UsageIncrement) -> None:
        async with self._session_factory() as session:
            await increment_usage(session, user_id, usage)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning(f"Usage write {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Failed to record LLM usage ({task.get_name()}): "
                f"{type(error).__name__}: {error}"
            )

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
