"""Generation job, retry and update-status schemas."""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.clock import as_utc


def _non_blank(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


class GenerationRequest(BaseModel):
    """Request to generate one content type for a content group."""
    content_group_id: str
    job_type: str  # e.g. "sms-sequence"
    context: Dict[str, Any] = {}  # Business data from the intake answers
    reference_context: Optional[str] = None

    @field_validator('content_group_id', 'job_type')
    @classmethod
    def strip_ids(cls, v: str) -> str:
        return _non_blank(v)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "content_group_id": "funnel-42",
                    "job_type": "sms-sequence",
                    "context": {
                        "business_name": "Peak Coaching",
                        "ideal_client": "First-time founders",
                        "offer_program": "12-week accelerator",
                    },
                }
            ]
        }
    }


class RetryRequest(BaseModel):
    """Retry the failed sections of one content type.

    Omitting failed_section_ids retries whatever the latest job recorded
    as failed. force regenerates every section.
    """
    job_type: str
    content_group_id: str
    failed_section_ids: Optional[List[str]] = None
    force: bool = False

    @field_validator('content_group_id', 'job_type')
    @classmethod
    def strip_ids(cls, v: str) -> str:
        return _non_blank(v)


class GenerationJobResponse(BaseModel):
    """Schema for generation job status."""
    id: str
    content_group_id: str
    job_type: str
    status: str
    progress_percentage: int
    current_section: Optional[str] = None
    sections_to_generate: Optional[List[str]] = None
    sections_completed: List[str] = []
    sections_failed: List[str] = []
    error_message: Optional[str] = None
    force_regenerate: bool = False
    retry_of_job_id: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    last_progress_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_time_ms: Optional[int] = None

    @field_validator('created_at', 'started_at', 'last_progress_at', 'completed_at')
    @classmethod
    def attach_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    class Config:
        from_attributes = True


class RecentJobsResponse(BaseModel):
    """Jobs inside the recency window, partitioned by status."""
    active_jobs: List[GenerationJobResponse]
    completed_jobs: List[GenerationJobResponse]
    failed_jobs: List[GenerationJobResponse]
    has_active_jobs: bool


class SectionUpdate(BaseModel):
    section_id: Optional[str] = None
    version: Optional[int] = None
    last_update: datetime
    type: str  # "content" or "job"


class UpdateStatusResponse(BaseModel):
    has_recent_updates: bool
    updates: List[SectionUpdate] = Field(default_factory=list)


class ChunkSummary(BaseModel):
    index: int
    label: str
    fields: List[str]


class ContentTypeSummary(BaseModel):
    """A content type's schema and partition plan."""
    content_type: str
    section_id: str
    title: str
    fields: List[str]
    chunks: List[ChunkSummary]
