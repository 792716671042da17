"""Database models for the job feed."""

from .advanced_matching import AdvancedMatching, LLMUsage, Profile
from .base import Base
from .job import USER_STATUSES, Job, JobStatus
from .site import Site

__all__ = [
    "Base",
    "Job",
    "JobStatus",
    "USER_STATUSES",
    "Site",
    "Profile",
    "AdvancedMatching",
    "LLMUsage",
]
