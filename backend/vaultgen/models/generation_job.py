"""Generation job model for tracking chunked content generation."""

from enum import Enum

from sqlalchemy import Column, Index, String, Text, Integer, Boolean, DateTime, JSON

from ..core.clock import utcnow
from ..database import Base


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ACTIVE_STATUSES = (JobStatus.QUEUED.value, JobStatus.PROCESSING.value)


class GenerationJob(Base):
    """
    One invocation of the chunked generation pipeline for an owner and
    content group.

    Status transitions: queued -> processing -> completed | failed.
    Terminal jobs are immutable. completed_at is set exactly when the
    job is terminal.
    """

    __tablename__ = "generation_jobs"
    __table_args__ = (
        Index("ix_generation_jobs_owner_group", "owner_id", "content_group_id"),
        Index("ix_generation_jobs_status", "status"),
        Index("ix_generation_jobs_created_at", "created_at"),
    )

    # Primary key (UUID format)
    id = Column(String(50), primary_key=True)

    owner_id = Column(String(100), nullable=False)
    content_group_id = Column(String(100), nullable=False)
    # Content pipeline tag, e.g. "sms-sequence"
    job_type = Column(String(50), nullable=False)

    # Job lifecycle
    status = Column(String(20), nullable=False, default=JobStatus.QUEUED.value)
    progress_percentage = Column(Integer, nullable=False, default=0)
    current_section = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)

    # Field names. sections_to_generate NULL means every field of the job type.
    sections_to_generate = Column(JSON, nullable=True)
    sections_completed = Column(JSON, nullable=False, default=list)
    sections_failed = Column(JSON, nullable=False, default=list)

    # Generation inputs, kept so a retry can reuse them
    input_context = Column(JSON, nullable=False, default=dict)
    reference_context = Column(Text, nullable=True)
    force_regenerate = Column(Boolean, nullable=False, default=False)
    retry_of_job_id = Column(String(50), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    last_progress_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    total_time_ms = Column(Integer, nullable=True)

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)
