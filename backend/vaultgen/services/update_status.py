"""Recent-update summary for "updating" indicators in polling clients."""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock, as_utc, utcnow
from ..repositories.content_version_repository import ContentVersionRepository
from .content_schema import CONTENT_SCHEMAS
from .job_service import JobService


class UpdateStatusService:
    """Read-only view of what changed recently in a content group.

    Reports content versions written inside the update window and jobs
    still queued or processing, newest first.
    """

    def __init__(
        self,
        db: Session,
        window: timedelta = timedelta(seconds=120),
        job_window: timedelta = timedelta(minutes=10),
        clock: Clock = utcnow,
    ):
        self.window = window
        self.job_window = job_window
        self.clock = clock
        self.versions = ContentVersionRepository(db, clock=clock)
        self.jobs = JobService(db, clock=clock)

    def get_update_status(self, owner_id: str, content_group_id: str) -> Dict[str, Any]:
        since = self.clock() - self.window
        updates: List[Dict[str, Any]] = []

        for record in self.versions.recent_updates(owner_id, content_group_id, since):
            updates.append({
                "section_id": record.section_id,
                "version": record.version,
                "last_update": as_utc(record.updated_at),
                "type": "content",
            })

        for job in self.jobs.list_active(owner_id, content_group_id, self.job_window):
            updates.append({
                "section_id": _section_for(job.job_type),
                "version": None,
                "last_update": as_utc(job.last_progress_at or job.created_at),
                "type": "job",
            })

        updates.sort(key=lambda u: u["last_update"], reverse=True)
        return {"has_recent_updates": bool(updates), "updates": updates}


def _section_for(job_type: str) -> Optional[str]:
    schema = CONTENT_SCHEMAS.get(job_type)
    return schema.section_id if schema else None
