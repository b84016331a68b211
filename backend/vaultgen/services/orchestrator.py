"""
Chunked generation orchestrator.

Fans one job out into one generation call per planned chunk, runs the calls
on a bounded thread pool, records progress as each chunk settles, and merges
whatever succeeded. Worker threads only talk to the generation client; every
job update is made from the calling thread, in the order chunks settle.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..exceptions import PartitionOverlapError, VaultgenError
from ..models.generation_job import GenerationJob, JobStatus
from .chunk_merger import ChunkResult, MergeResult, merge
from .content_schema import ContentSchema, field_is_complete, get_schema
from .generation_client import ChunkCallError, GenerationClient, ParseError, parse_chunk_output
from .job_service import JobService
from .partition_plan import ChunkSpec, PartitionPlan
from .prompts import SYSTEM_PROMPT, build_chunk_prompt

logger = logging.getLogger(__name__)


class ChunkedGenerationOrchestrator:
    """Runs the chunks of one job and merges the results.

    Args:
        tracker: JobService used for every job state change.
        client: Generation collaborator; must be safe to call from
            several threads at once.
        max_concurrency: Upper bound on in-flight chunk calls. Chunks
            beyond it queue behind completions.
    """

    def __init__(self, tracker: JobService, client: GenerationClient, max_concurrency: int = 4):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.tracker = tracker
        self.client = client
        self.max_concurrency = max_concurrency

    def run(
        self,
        job: GenerationJob,
        plan: PartitionPlan,
        context: Mapping[str, Any],
        reference_context: Optional[str] = None,
        chunk_indices: Optional[Iterable[int]] = None,
        carry_over: Optional[Mapping[str, Any]] = None,
        persist: Optional[Callable[[MergeResult], None]] = None,
    ) -> MergeResult:
        """Generate, merge and settle *job*.

        Args:
            job: Queued or processing job; left terminal on return.
            plan: Partition plan for the job's content type.
            context: Business data shared by every chunk prompt.
            reference_context: Optional retrieved material for the prompts.
            chunk_indices: Chunks to generate. None generates every chunk.
            carry_over: Previously stored document. Fields of chunks that
                are not generated are taken from it unchanged.
            persist: Called with the merge result before the job is marked
                completed. A VaultgenError from it fails the job.

        Returns:
            The merge result. A failed job still returns its (possibly
            empty) merge result.

        Raises:
            PartitionOverlapError: Two chunks produced the same field. The
                job is marked failed before the error propagates.
            VaultgenError: Raised by *persist*; the job is marked failed.
        """
        schema = get_schema(plan.content_type)
        selected = self._select_chunks(plan, chunk_indices)

        if job.status == JobStatus.QUEUED.value:
            self.tracker.start(job)

        started = time.monotonic()
        total = len(selected)
        logger.info(
            f"Job {job.id}: generating {total}/{plan.total_chunks} chunks of {plan.content_type} "
            f"(max {self.max_concurrency} parallel)"
        )

        results: List[ChunkResult] = []
        workers = min(self.max_concurrency, total)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"chunk-{job.id[:8]}") as executor:
            futures = {
                executor.submit(self._generate_chunk, schema, chunk, plan.total_chunks, context, reference_context): chunk
                for chunk in selected
            }

            for settled, future in enumerate(as_completed(futures), 1):
                chunk = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    # _generate_chunk converts failures itself; this catches
                    # anything raised outside its try block.
                    logger.error(f"Chunk {chunk.index} of job {job.id} crashed: {e}")
                    result = ChunkResult.failed(chunk.index, str(e))
                results.append(result)
                self._record_settled(job, schema, chunk, result, settled, total)

        generated = {r.chunk_index for r in results}
        results += self._carried_results(plan, generated, carry_over)
        results.sort(key=lambda r: r.chunk_index)

        try:
            merged = merge(plan.content_type, results)
        except PartitionOverlapError as e:
            self.tracker.fail(job, e.message)
            raise

        elapsed = time.monotonic() - started
        failed_generated = [r.chunk_index for r in results if r.chunk_index in generated and not r.success]

        if len(failed_generated) == total:
            errors = "; ".join(
                f"chunk {r.chunk_index}: {r.error}" for r in results if r.chunk_index in generated
            )
            self.tracker.fail(job, f"All {total} chunks failed ({errors})")
        elif merged.coverage == 0:
            self.tracker.fail(job, "Generated content has no complete fields")
        else:
            problems = merged.validation.problem_fields
            done = [
                name for chunk in selected for name in chunk.fields
                if name in merged.document and name not in problems
            ]
            if persist is not None:
                try:
                    persist(merged)
                except VaultgenError as e:
                    self.tracker.fail(job, e.message)
                    raise
            self.tracker.complete(job, sections_completed=done, sections_failed=problems)

        logger.info(
            f"Job {job.id} {job.status} in {elapsed:.1f}s: coverage {merged.coverage}/"
            f"{len(schema.field_names)}, failed chunks {failed_generated}"
        )
        return merged

    def _select_chunks(self, plan: PartitionPlan, chunk_indices: Optional[Iterable[int]]) -> List[ChunkSpec]:
        if chunk_indices is None:
            return list(plan.chunks)
        wanted = set(chunk_indices)
        unknown = wanted - {c.index for c in plan.chunks}
        if unknown:
            raise ValueError(f"{plan.content_type} has no chunks {sorted(unknown)}")
        selected = [c for c in plan.chunks if c.index in wanted]
        if not selected:
            raise ValueError("No chunks selected for generation")
        return selected

    def _generate_chunk(
        self,
        schema: ContentSchema,
        chunk: ChunkSpec,
        total_chunks: int,
        context: Mapping[str, Any],
        reference_context: Optional[str],
    ) -> ChunkResult:
        """Run one chunk call. Runs on a worker thread; never touches the database."""
        prompt = build_chunk_prompt(schema, chunk, total_chunks, context, reference_context)
        try:
            raw = self.client.generate(
                SYSTEM_PROMPT, prompt,
                max_tokens=chunk.max_tokens,
                timeout=chunk.timeout_seconds,
            )
            fields = parse_chunk_output(raw, chunk)
        except (ChunkCallError, ParseError) as e:
            logger.warning(f"Chunk {chunk.index} ({chunk.label}) failed: {e}")
            return ChunkResult.failed(chunk.index, str(e))
        except Exception as e:
            logger.warning(f"Chunk {chunk.index} ({chunk.label}) failed: {type(e).__name__}: {e}")
            return ChunkResult.failed(chunk.index, f"{type(e).__name__}: {e}")
        return ChunkResult(chunk_index=chunk.index, fields=fields)

    def _record_settled(
        self,
        job: GenerationJob,
        schema: ContentSchema,
        chunk: ChunkSpec,
        result: ChunkResult,
        settled: int,
        total: int,
    ) -> None:
        if result.success:
            done = [
                name for name in chunk.fields
                if field_is_complete(schema.get_field(name), result.fields.get(name))
            ]
        else:
            done = []
        failed = [name for name in chunk.fields if name not in done]
        self.tracker.record_chunk_settled(job, chunk.label, done, failed, settled, total)

    @staticmethod
    def _carried_results(
        plan: PartitionPlan,
        generated: Iterable[int],
        carry_over: Optional[Mapping[str, Any]],
    ) -> List[ChunkResult]:
        """Successful results for the chunks not generated in this run."""
        generated = set(generated)
        previous: Mapping[str, Any] = carry_over or {}
        carried = []
        for chunk in plan.chunks:
            if chunk.index in generated:
                continue
            fields: Dict[str, Any] = {name: previous[name] for name in chunk.fields if name in previous}
            carried.append(ChunkResult(chunk_index=chunk.index, fields=fields))
        return carried
