"""Service for managing chunked generation jobs."""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock, as_utc, utcnow
from ..exceptions import InvalidJobTransitionError, JobNotFoundError
from ..models.generation_job import ACTIVE_STATUSES, GenerationJob, JobStatus
from .content_schema import get_schema

logger = logging.getLogger(__name__)

RECENT_JOBS_LIMIT = 10


@dataclass
class RecentJobs:
    """Jobs inside the recency window, partitioned by status."""

    active: List[GenerationJob] = field(default_factory=list)
    completed: List[GenerationJob] = field(default_factory=list)
    failed: List[GenerationJob] = field(default_factory=list)

    @property
    def has_active_jobs(self) -> bool:
        return bool(self.active)


class JobService:
    """
    Manages the lifecycle of generation jobs.

    Jobs are created by API requests, claimed by the worker, and tracked
    through queued -> processing -> completed/failed transitions. Terminal
    jobs are immutable. Every mutation commits immediately so a concurrent
    poller sees it on its next read.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def enqueue(
        self,
        owner_id: str,
        content_group_id: str,
        job_type: str,
        context: Optional[Dict[str, Any]] = None,
        reference_context: Optional[str] = None,
        sections_to_generate: Optional[List[str]] = None,
        force_regenerate: bool = False,
        retry_of_job_id: Optional[str] = None,
    ) -> GenerationJob:
        """
        Create a queued job, deduplicating against active jobs.

        An existing queued or processing job for the same owner, content
        group and job type is returned instead of creating a second one, so
        two runs for the same target never overlap.

        Raises:
            UnknownContentTypeError: job_type has no schema.
        """
        get_schema(job_type)

        existing = (
            self.db.query(GenerationJob)
            .filter(
                GenerationJob.owner_id == owner_id,
                GenerationJob.content_group_id == content_group_id,
                GenerationJob.job_type == job_type,
                GenerationJob.status.in_(ACTIVE_STATUSES),
            )
            .order_by(GenerationJob.created_at.desc())
            .first()
        )
        if existing:
            logger.info(f"Active {job_type} job already exists for {content_group_id}: {existing.id}")
            return existing

        job = GenerationJob(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            content_group_id=content_group_id,
            job_type=job_type,
            status=JobStatus.QUEUED.value,
            progress_percentage=0,
            sections_to_generate=list(sections_to_generate) if sections_to_generate else None,
            sections_completed=[],
            sections_failed=[],
            input_context=dict(context or {}),
            reference_context=reference_context,
            force_regenerate=force_regenerate,
            retry_of_job_id=retry_of_job_id,
            created_at=self.clock(),
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Enqueued {job_type} job {job.id} for group {content_group_id}")
        return job

    def claim_next(self) -> Optional[GenerationJob]:
        """
        Claim the oldest queued job for processing.

        Returns:
            The claimed job (now processing), or None if nothing is queued
        """
        job = (
            self.db.query(GenerationJob)
            .filter(GenerationJob.status == JobStatus.QUEUED.value)
            .order_by(GenerationJob.created_at.asc())
            .first()
        )
        if not job:
            return None

        self.start(job)
        logger.info(f"Claimed job {job.id} ({job.job_type})")
        return job

    def start(self, job: GenerationJob) -> GenerationJob:
        """queued -> processing. Starting a processing job is a no-op."""
        if job.status == JobStatus.PROCESSING.value:
            return job
        self._require_status(job, JobStatus.QUEUED, JobStatus.PROCESSING)

        now = self.clock()
        job.status = JobStatus.PROCESSING.value
        job.started_at = now
        job.last_progress_at = now
        self.db.commit()
        self.db.refresh(job)
        return job

    def record_chunk_settled(
        self,
        job: GenerationJob,
        label: str,
        completed_fields: Iterable[str],
        failed_fields: Iterable[str],
        settled: int,
        total: int,
    ) -> GenerationJob:
        """
        Record one settled chunk on a processing job.

        Progress never decreases. Field lists only ever hold fields the
        job type declares, each at most once; a field that later succeeds
        is removed from the failed list.
        """
        self._require_status(job, JobStatus.PROCESSING, JobStatus.PROCESSING)

        declared = set(get_schema(job.job_type).field_names)
        done = [f for f in completed_fields if f in declared]
        failed = [f for f in failed_fields if f in declared]

        sections_completed = list(job.sections_completed or [])
        sections_completed += [f for f in done if f not in sections_completed]
        sections_failed = [f for f in (job.sections_failed or []) if f not in done]
        sections_failed += [f for f in failed if f not in sections_failed and f not in sections_completed]

        progress = int(settled * 100 / total) if total else 100
        # JSON columns are reassigned, not mutated, so SQLAlchemy sees the change
        job.sections_completed = sections_completed
        job.sections_failed = sections_failed
        job.progress_percentage = max(job.progress_percentage or 0, min(progress, 100))
        job.current_section = label
        job.last_progress_at = self.clock()
        self.db.commit()
        self.db.refresh(job)

        logger.debug(f"Job {job.id} progress {job.progress_percentage}% after {label}")
        return job

    def complete(
        self,
        job: GenerationJob,
        sections_completed: Optional[List[str]] = None,
        sections_failed: Optional[List[str]] = None,
    ) -> GenerationJob:
        """Mark a job completed. Partial failures stay in sections_failed."""
        self._require_status(job, JobStatus.PROCESSING, JobStatus.COMPLETED)

        if sections_completed is not None:
            job.sections_completed = list(sections_completed)
        if sections_failed is not None:
            job.sections_failed = list(sections_failed)
        job.status = JobStatus.COMPLETED.value
        job.progress_percentage = 100
        job.error_message = None
        self._finish(job)

        logger.info(
            f"Job {job.id} completed in {job.total_time_ms}ms "
            f"({len(job.sections_failed or [])} sections failed)"
        )
        return job

    def fail(self, job: GenerationJob, error_message: str) -> GenerationJob:
        """
        Mark a job as failed.

        Progress is left at its last value. Jobs are not re-queued; a retry
        is a new job created through the retry surface.
        """
        self._require_status(job, None, JobStatus.FAILED)

        job.status = JobStatus.FAILED.value
        job.error_message = error_message
        self._finish(job)

        logger.warning(f"Job {job.id} failed: {error_message}")
        return job

    def get_job(self, job_id: str) -> Optional[GenerationJob]:
        """Get a job by ID regardless of owner (internal use only)."""
        return self.db.get(GenerationJob, job_id)

    def get_job_for_owner(self, job_id: str, owner_id: str) -> GenerationJob:
        """
        Get a job owned by owner_id.

        Raises:
            JobNotFoundError: Missing, or owned by someone else.
        """
        job = (
            self.db.query(GenerationJob)
            .filter(GenerationJob.id == job_id, GenerationJob.owner_id == owner_id)
            .first()
        )
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def list_recent(
        self,
        owner_id: str,
        content_group_id: Optional[str] = None,
        window: timedelta = timedelta(minutes=10),
        limit: int = RECENT_JOBS_LIMIT,
    ) -> RecentJobs:
        """Jobs created within *window*, newest first, partitioned by status."""
        since = self.clock() - window
        query = self.db.query(GenerationJob).filter(
            GenerationJob.owner_id == owner_id,
            GenerationJob.created_at >= since,
        )
        if content_group_id:
            query = query.filter(GenerationJob.content_group_id == content_group_id)
        jobs = query.order_by(GenerationJob.created_at.desc()).limit(limit).all()

        recent = RecentJobs()
        for job in jobs:
            if job.status in ACTIVE_STATUSES:
                recent.active.append(job)
            elif job.status == JobStatus.COMPLETED.value:
                recent.completed.append(job)
            else:
                recent.failed.append(job)
        return recent

    def list_active(self, owner_id: str, content_group_id: str, window: timedelta) -> List[GenerationJob]:
        since = self.clock() - window
        return (
            self.db.query(GenerationJob)
            .filter(
                GenerationJob.owner_id == owner_id,
                GenerationJob.content_group_id == content_group_id,
                GenerationJob.status.in_(ACTIVE_STATUSES),
                GenerationJob.created_at >= since,
            )
            .order_by(GenerationJob.created_at.desc())
            .all()
        )

    def latest_for(self, owner_id: str, content_group_id: str, job_type: str) -> Optional[GenerationJob]:
        """Get the most recent job for a target."""
        return (
            self.db.query(GenerationJob)
            .filter(
                GenerationJob.owner_id == owner_id,
                GenerationJob.content_group_id == content_group_id,
                GenerationJob.job_type == job_type,
            )
            .order_by(GenerationJob.created_at.desc())
            .first()
        )

    def fail_stale_jobs(self, max_idle: timedelta) -> List[GenerationJob]:
        """
        Fail processing jobs with no chunk progress for longer than max_idle.

        Called periodically by the worker so a job whose process died is
        not left processing forever.
        """
        cutoff = self.clock() - max_idle
        processing = (
            self.db.query(GenerationJob)
            .filter(GenerationJob.status == JobStatus.PROCESSING.value)
            .all()
        )

        stale = []
        for job in processing:
            last_seen = as_utc(job.last_progress_at or job.started_at or job.created_at)
            if last_seen < cutoff:
                minutes = int(max_idle.total_seconds() // 60)
                stale.append(self.fail(job, f"No progress for more than {minutes} minutes"))

        if stale:
            logger.warning(f"Failed {len(stale)} stale generation jobs")
        return stale

    def _finish(self, job: GenerationJob) -> None:
        now = self.clock()
        job.completed_at = now
        started = as_utc(job.started_at or job.created_at)
        job.total_time_ms = max(0, int((now - started).total_seconds() * 1000))
        self.db.commit()
        self.db.refresh(job)

    def _require_status(
        self,
        job: GenerationJob,
        expected: Optional[JobStatus],
        requested: JobStatus,
    ) -> None:
        """Raise unless the job may move to *requested*.

        expected=None allows any non-terminal status.
        """
        current = job.job_status
        if current.is_terminal or (expected is not None and current != expected):
            raise InvalidJobTransitionError(job.id, current.value, requested.value)
