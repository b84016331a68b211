"""Pydantic schemas for request/response validation."""

from .content import ContentVersionResponse, ContentVersionSummary
from .generation import (
    ChunkSummary,
    ContentTypeSummary,
    GenerationJobResponse,
    GenerationRequest,
    RecentJobsResponse,
    RetryRequest,
    SectionUpdate,
    UpdateStatusResponse,
)

__all__ = [
    "ContentVersionResponse",
    "ContentVersionSummary",
    "ChunkSummary",
    "ContentTypeSummary",
    "GenerationJobResponse",
    "GenerationRequest",
    "RecentJobsResponse",
    "RetryRequest",
    "SectionUpdate",
    "UpdateStatusResponse",
]
