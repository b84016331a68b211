"""Generation job, retry and polling endpoints.

Every route is scoped to the authenticated owner. Jobs are executed by the
worker; these endpoints only queue work and read persisted state.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.config import settings
from ..database import get_db
from ..schemas.generation import (
    ChunkSummary,
    ContentTypeSummary,
    GenerationJobResponse,
    GenerationRequest,
    RecentJobsResponse,
    RetryRequest,
    UpdateStatusResponse,
)
from ..services.content_schema import CONTENT_SCHEMAS
from ..services.generation_service import GenerationService
from ..services.job_service import JobService
from ..services.partition_plan import get_plan
from ..services.update_status import UpdateStatusService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generation", tags=["generation"])


@router.post("/jobs", response_model=GenerationJobResponse, status_code=202)
def create_job(
    request: GenerationRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Queue generation of one content type.

    Returns the already active job when one exists for the same content
    group and type.
    """
    service = GenerationService(db)
    job = service.request_generation(
        owner_id=auth.user_id,
        content_group_id=request.content_group_id,
        job_type=request.job_type,
        context=request.context,
        reference_context=request.reference_context,
    )
    logger.info(f"Generation of {request.job_type} requested for {request.content_group_id} by {auth.user_id}")
    return job


@router.get("/jobs", response_model=RecentJobsResponse)
def list_jobs(
    content_group_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Jobs from the recency window, newest first, split by status."""
    recent = JobService(db).list_recent(
        auth.user_id,
        content_group_id,
        window=timedelta(minutes=settings.job_recency_window_minutes),
    )
    return RecentJobsResponse(
        active_jobs=recent.active,
        completed_jobs=recent.completed,
        failed_jobs=recent.failed,
        has_active_jobs=recent.has_active_jobs,
    )


@router.get("/jobs/{job_id}", response_model=GenerationJobResponse)
def get_job(
    job_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Get a job's status. Jobs of other owners are reported as not found."""
    return JobService(db).get_job_for_owner(job_id, auth.user_id)


@router.post("/retry", response_model=GenerationJobResponse, status_code=202)
def retry_sections(
    request: RetryRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Queue regeneration of failed sections, keeping the sections that succeeded."""
    service = GenerationService(db)
    return service.request_retry(
        owner_id=auth.user_id,
        job_type=request.job_type,
        content_group_id=request.content_group_id,
        failed_section_ids=request.failed_section_ids,
        force=request.force,
    )


@router.get("/update-status", response_model=UpdateStatusResponse)
def update_status(
    content_group_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Recent content writes and active jobs for a content group."""
    service = UpdateStatusService(
        db,
        window=timedelta(seconds=settings.update_status_window_seconds),
        job_window=timedelta(minutes=settings.job_recency_window_minutes),
    )
    return service.get_update_status(auth.user_id, content_group_id)


@router.get("/content-types", response_model=List[ContentTypeSummary])
def list_content_types():
    """Supported content types with their fields and chunk partitioning."""
    summaries = []
    for content_type, schema in CONTENT_SCHEMAS.items():
        plan = get_plan(content_type)
        summaries.append(ContentTypeSummary(
            content_type=content_type,
            section_id=schema.section_id,
            title=schema.title,
            fields=schema.field_names,
            chunks=[
                ChunkSummary(index=c.index, label=c.label, fields=list(c.fields))
                for c in plan.chunks
            ],
        ))
    return summaries
