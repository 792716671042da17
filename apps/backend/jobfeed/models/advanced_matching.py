"""Profile, AdvancedMatching and LLMUsage models.

These three tables drive the advanced matching filter:

- ``profiles`` holds the subscription tier that gates the LLM stage
- ``advanced_matching`` holds the user's free-text policy and company deny-list
- ``llm_usage`` accumulates token counts and estimated cost per user
"""

from datetime import datetime
from typing import List
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Profile(Base, TimestampMixin):
    """Per-user subscription entitlement."""

    __tablename__ = "profiles"

    user_id: Mapped[UUID] = mapped_column(primary_key=True)

    subscription_tier: Mapped[str] = mapped_column(
        String(32), nullable=False, default="basic"
    )
    subscription_end_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Profile(user_id={self.user_id}, tier='{self.subscription_tier}', "
            f"ends={self.subscription_end_date})>"
        )


class AdvancedMatching(Base, TimestampMixin):
    """Per-user advanced matching policy."""

    __tablename__ = "advanced_matching"

    # Primary Key - UUID
    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(nullable=False, unique=True, index=True)

    # Natural-language inclusion/exclusion intent
    chatgpt_prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    blacklisted_companies: Mapped[List[str]] = mapped_column(
        JSON, nullable=False, default=list
    )

    def __repr__(self) -> str:
        return (
            f"<AdvancedMatching(user_id={self.user_id}, "
            f"blacklisted={len(self.blacklisted_companies or [])})>"
        )


class LLMUsage(Base, TimestampMixin):
    """Cumulative LLM usage and estimated cost per user."""

    __tablename__ = "llm_usage"

    user_id: Mapped[UUID] = mapped_column(primary_key=True)

    call_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<LLMUsage(user_id={self.user_id}, calls={self.call_count}, "
            f"cost={self.cost:.6f})>"
        )
