"""Database models."""

from .generation_job import GenerationJob, JobStatus, ACTIVE_STATUSES
from .content_version import ContentVersion

__all__ = ["GenerationJob", "JobStatus", "ACTIVE_STATUSES", "ContentVersion"]
