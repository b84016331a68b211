"""Service tying job tracking, chunk orchestration and content versions together."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock, utcnow
from ..exceptions import ValidationError
from ..models import ContentVersion, GenerationJob
from ..repositories.content_version_repository import ContentVersionRepository
from .chunk_merger import MergeResult
from .content_schema import get_schema
from .generation_client import GenerationClient
from .job_service import JobService
from .orchestrator import ChunkedGenerationOrchestrator
from .partition_plan import get_plan

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOutcome:
    job: GenerationJob
    merge: MergeResult
    version: Optional[ContentVersion] = None
    unchanged: bool = False


class GenerationService:
    """Generation requests, retries and job execution.

    Args:
        db: Database session.
        client: Generation collaborator, only needed by execute().
        max_concurrency: Chunk calls in flight per job.
        clock: Time source shared with the job service and repository.
    """

    def __init__(
        self,
        db: Session,
        client: Optional[GenerationClient] = None,
        max_concurrency: int = 4,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.client = client
        self.max_concurrency = max_concurrency
        self.jobs = JobService(db, clock=clock)
        self.versions = ContentVersionRepository(db, clock=clock)

    def request_generation(
        self,
        owner_id: str,
        content_group_id: str,
        job_type: str,
        context: Optional[Dict[str, Any]] = None,
        reference_context: Optional[str] = None,
    ) -> GenerationJob:
        """Queue a full generation of one content type."""
        return self.jobs.enqueue(
            owner_id=owner_id,
            content_group_id=content_group_id,
            job_type=job_type,
            context=context,
            reference_context=reference_context,
        )

    def request_retry(
        self,
        owner_id: str,
        job_type: str,
        content_group_id: str,
        failed_section_ids: Optional[List[str]] = None,
        force: bool = False,
    ) -> GenerationJob:
        """
        Queue a retry of the failed sections of a content type.

        Without explicit ids the latest job's failed sections are retried.
        Only the chunks holding those sections are regenerated; the rest of
        the stored document is kept. force regenerates every chunk.

        Raises:
            ValidationError: Unknown section ids, or nothing to retry.
            UnknownContentTypeError: job_type has no schema.
        """
        schema = get_schema(job_type)
        previous = self.jobs.latest_for(owner_id, content_group_id, job_type)

        if failed_section_ids:
            unknown = [s for s in failed_section_ids if schema.get_field(s) is None]
            if unknown:
                raise ValidationError(
                    f"Unknown sections for {job_type}: {', '.join(unknown)}",
                    field="failed_section_ids",
                )
            sections = list(dict.fromkeys(failed_section_ids))
        elif previous is not None:
            sections = list(previous.sections_failed or [])
        else:
            sections = []

        if not sections and not force:
            raise ValidationError(f"No failed sections to retry for {job_type} in {content_group_id}")

        context = dict(previous.input_context or {}) if previous is not None else {}
        reference_context = previous.reference_context if previous is not None else None

        job = self.jobs.enqueue(
            owner_id=owner_id,
            content_group_id=content_group_id,
            job_type=job_type,
            context=context,
            reference_context=reference_context,
            sections_to_generate=None if force else sections,
            force_regenerate=force,
            retry_of_job_id=previous.id if previous is not None else None,
        )
        logger.info(
            f"Retry job {job.id} for {job_type} in {content_group_id}: "
            f"{'all sections (forced)' if force else sections}"
        )
        return job

    def execute(self, job: GenerationJob) -> ExecutionOutcome:
        """
        Run a queued or processing job to a terminal state.

        Persists the merged document when the job completes, unless it is
        identical to the stored version.

        Raises:
            PartitionOverlapError: Partition plan bug; the job is failed.
            PersistenceError: Saving the version failed; the job is failed.
        """
        if self.client is None:
            raise ValueError("GenerationService.execute requires a generation client")

        schema = get_schema(job.job_type)
        plan = get_plan(job.job_type)

        chunk_indices = None
        carry_over = None
        if job.sections_to_generate and not job.force_regenerate:
            chunk_indices = [c.index for c in plan.chunks_for_fields(job.sections_to_generate)]
            current = self.versions.get_current(job.owner_id, job.content_group_id, schema.section_id)
            carry_over = current.content if current is not None else None

        saved: Dict[str, Any] = {}

        def persist(merged: MergeResult) -> None:
            version, created = self.versions.save_if_changed(
                owner_id=job.owner_id,
                content_group_id=job.content_group_id,
                section_id=schema.section_id,
                content=merged.document,
                source_job_id=job.id,
            )
            saved["version"] = version
            saved["unchanged"] = not created

        orchestrator = ChunkedGenerationOrchestrator(self.jobs, self.client, self.max_concurrency)
        merged = orchestrator.run(
            job,
            plan,
            context=job.input_context or {},
            reference_context=job.reference_context,
            chunk_indices=chunk_indices,
            carry_over=carry_over,
            persist=persist,
        )

        return ExecutionOutcome(
            job=job,
            merge=merged,
            version=saved.get("version"),
            unchanged=saved.get("unchanged", False),
        )
