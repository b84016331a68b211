"""
Polling worker for chunked generation jobs.

Checks the generation_jobs table every WORKER_POLL_INTERVAL seconds,
fails jobs that stopped making progress, claims the oldest queued job and
runs it through GenerationService with the LiteLLM client. Jobs are
processed one at a time; the chunks of a job run in parallel.

Usage:
    python worker.py
"""

import logging
import time
from datetime import timedelta
from typing import Optional

from vaultgen.core.config import settings
from vaultgen.core.logging_config import setup_logging
from vaultgen.database import SessionLocal, init_db
from vaultgen.exceptions import VaultgenError
from vaultgen.services.generation_client import GenerationClient, LiteLLMGenerationClient
from vaultgen.services.generation_service import GenerationService
from vaultgen.services.job_service import JobService

logger = logging.getLogger("vaultgen.worker")


def sweep_stale_jobs() -> int:
    """Fail processing jobs with no progress within STALE_JOB_MINUTES."""
    db = SessionLocal()
    try:
        stale = JobService(db).fail_stale_jobs(timedelta(minutes=settings.stale_job_minutes))
        return len(stale)
    finally:
        db.close()


def process_job(job_id: str, client: GenerationClient) -> None:
    """
    Run one claimed job to a terminal state.

    Partition overlaps and persistence failures already leave the job
    failed; anything unexpected fails it here.
    """
    db = SessionLocal()
    try:
        service = GenerationService(db, client=client, max_concurrency=settings.chunk_concurrency)
        job = service.jobs.get_job(job_id)
        if job is None:
            logger.warning(f"Job {job_id} disappeared before processing")
            return

        logger.info(f"Processing job {job.id}: {job.job_type} for {job.content_group_id}")
        try:
            outcome = service.execute(job)
        except VaultgenError as e:
            logger.error(f"Job {job_id} failed: {e.message}")
            return
        except Exception as e:
            logger.exception(f"Job {job_id} error: {e}")
            db.rollback()
            job = service.jobs.get_job(job_id)
            if job is not None and not job.job_status.is_terminal:
                service.jobs.fail(job, f"{type(e).__name__}: {e}")
            return

        if outcome.unchanged:
            logger.info(f"Job {job_id} {job.status}; content unchanged, no new version")
        elif outcome.version is not None:
            logger.info(f"Job {job_id} {job.status}; stored version {outcome.version.version}")
        else:
            logger.info(f"Job {job_id} {job.status}")
    finally:
        db.close()


def run_once(client: GenerationClient) -> Optional[str]:
    """Sweep stale jobs, then claim and process one queued job.

    Returns:
        The processed job id, or None when the queue was empty.
    """
    swept = sweep_stale_jobs()
    if swept:
        logger.warning(f"Failed {swept} stale job(s)")

    db = SessionLocal()
    try:
        job = JobService(db).claim_next()
        job_id = job.id if job else None
    finally:
        db.close()

    if job_id:
        process_job(job_id, client)
    return job_id


def main() -> None:
    """Poll for queued jobs and process them sequentially."""
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)
    init_db()

    client = LiteLLMGenerationClient(settings)
    logger.info(
        f"Worker started, polling every {settings.worker_poll_interval}s "
        f"(model={settings.generation_model}, chunk concurrency={settings.chunk_concurrency})"
    )

    while True:
        try:
            if run_once(client) is None:
                time.sleep(settings.worker_poll_interval)
        except KeyboardInterrupt:
            logger.info("Worker shutting down")
            break
        except Exception as e:
            logger.error(f"Worker error: {e}")
            time.sleep(settings.worker_poll_interval)


if __name__ == "__main__":
    main()
