"""Site model for the job boards jobs are scraped from."""

from typing import List, Optional

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Site(Base, TimestampMixin):
    """Job board known to the scraper; shared by every user."""

    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    urls: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Tracking parameters stripped from job URLs before dedup
    query_params_to_remove: Mapped[Optional[List[str]]] = mapped_column(
        JSON, nullable=True
    )

    def __repr__(self) -> str:
        return f"<Site(id={self.id}, name='{self.name}')>"
