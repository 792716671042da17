"""Job model for scraped job postings."""

from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class JobStatus(str, Enum):
    """Lifecycle status of a job in the user's feed."""

    NEW = "new"
    APPLIED = "applied"
    ARCHIVED = "archived"
    EXCLUDED_BY_ADVANCED_MATCHING = "excluded_by_advanced_matching"


# Statuses a user can move jobs between; each has a counted tab
USER_STATUSES: tuple[JobStatus, ...] = (
    JobStatus.NEW,
    JobStatus.APPLIED,
    JobStatus.ARCHIVED,
)


class Job(Base, TimestampMixin):
    """Scraped job posting owned by a single user."""

    __tablename__ = "jobs"

    # Primary Key - monotonic integer, used as the pagination tie-breaker
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)

    # Source identity (dedup key within a site)
    site_id: Mapped[int] = mapped_column(Integer, nullable=False)
    external_id: Mapped[str] = mapped_column(String(512), nullable=False)
    external_url: Mapped[str] = mapped_column(Text, nullable=False)

    # Job Information
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_logo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    salary: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    job_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Filled in later by the description scan
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # User triage labels, free-form
    labels: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default=JobStatus.NEW.value,
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "site_id", "external_id", name="uq_jobs_user_site_external"
        ),
        Index("idx_jobs_user_status_updated", "user_id", "status", "updated_at", "id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Job(id={self.id}, title='{self.title}', "
            f"company='{self.company_name}', status={self.status})>"
        )
