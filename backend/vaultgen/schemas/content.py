"""Content version schemas."""

from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.clock import as_utc


class ContentVersionSummary(BaseModel):
    """Version metadata without the content body."""
    version: int
    content_hash: str
    is_current_version: bool
    source_job_id: Optional[str] = None
    created_at: datetime

    @field_validator('created_at')
    @classmethod
    def attach_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    class Config:
        from_attributes = True


class ContentVersionResponse(ContentVersionSummary):
    """Schema for a stored section version."""
    content_group_id: str
    section_id: str
    content: Dict[str, Any]
    updated_at: datetime

    @field_validator('updated_at')
    @classmethod
    def attach_utc_updated(cls, v: datetime) -> datetime:
        return as_utc(v)
