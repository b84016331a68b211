"""Content version repository for database operations."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.clock import Clock, utcnow
from ..exceptions import ContentVersionNotFoundError, PersistenceError
from ..models import ContentVersion
from ..services.content_hash import hash_content

logger = logging.getLogger(__name__)


class ContentVersionRepository:
    """Repository for versioned section content.

    Versions are append-only. Promoting a new version and demoting the
    previous one happen in a single transaction, so at most one row per
    (owner, content group, section) is ever current. Content groups are
    scoped to their owner; two owners using the same group id never see
    or replace each other's versions.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def get_current(self, owner_id: str, content_group_id: str, section_id: str) -> Optional[ContentVersion]:
        """Get the owner's current version of a section, or None."""
        return self.db.query(ContentVersion).filter(
            ContentVersion.owner_id == owner_id,
            ContentVersion.content_group_id == content_group_id,
            ContentVersion.section_id == section_id,
            ContentVersion.is_current_version.is_(True),
        ).first()

    def get_current_for_owner(self, owner_id: str, content_group_id: str, section_id: str) -> ContentVersion:
        """Get the current version owned by owner_id.

        Raises:
            ContentVersionNotFoundError: The owner has no current version.
        """
        current = self.get_current(owner_id, content_group_id, section_id)
        if current is None:
            raise ContentVersionNotFoundError(content_group_id, section_id)
        return current

    def list_versions(
        self, owner_id: str, content_group_id: str, section_id: str, skip: int = 0, limit: int = 50
    ) -> List[ContentVersion]:
        """Get the owner's version history for a section, newest first."""
        return self.db.query(ContentVersion).filter(
            ContentVersion.owner_id == owner_id,
            ContentVersion.content_group_id == content_group_id,
            ContentVersion.section_id == section_id,
        ).order_by(ContentVersion.version.desc()).offset(skip).limit(limit).all()

    def recent_updates(self, owner_id: str, content_group_id: str, since: datetime) -> List[ContentVersion]:
        """Current versions of a content group written at or after *since*, newest first."""
        return self.db.query(ContentVersion).filter(
            ContentVersion.owner_id == owner_id,
            ContentVersion.content_group_id == content_group_id,
            ContentVersion.is_current_version.is_(True),
            ContentVersion.updated_at >= since,
        ).order_by(ContentVersion.updated_at.desc()).all()

    def save_if_changed(
        self,
        owner_id: str,
        content_group_id: str,
        section_id: str,
        content: Dict[str, Any],
        source_job_id: Optional[str] = None,
    ) -> Tuple[ContentVersion, bool]:
        """
        Store *content* as the new current version unless it is unchanged.

        Args:
            owner_id: Owner of the content group
            content_group_id: Content group (funnel/session) identifier
            section_id: Storage section, e.g. "smsSequence"
            content: Merged document to store
            source_job_id: Job that produced the content

        Returns:
            (version, created). created is False when the hash matched the
            current version and nothing was written.

        Raises:
            PersistenceError: The write failed; the transaction is rolled
                back and the previous current version is untouched.
        """
        content_hash = hash_content(content)
        current = self.get_current(owner_id, content_group_id, section_id)

        if current is not None and current.content_hash == content_hash:
            logger.info(f"{section_id} for {content_group_id} unchanged (hash {content_hash[:12]}), skipping write")
            return current, False

        now = self.clock()
        try:
            if current is not None:
                current.is_current_version = False
                current.updated_at = now
                # Demotion must reach the database before the insert or the
                # one-current index rejects the new row.
                self.db.flush()

            record = ContentVersion(
                owner_id=owner_id,
                content_group_id=content_group_id,
                section_id=section_id,
                version=(current.version + 1) if current is not None else self._next_version(
                    owner_id, content_group_id, section_id
                ),
                content=content,
                content_hash=content_hash,
                is_current_version=True,
                source_job_id=source_job_id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save {section_id} for {content_group_id}: {e}")
            raise PersistenceError(f"Failed to save content version for {section_id}", original_error=e)

        self.db.refresh(record)
        logger.info(f"Saved {section_id} v{record.version} for {content_group_id} (hash {content_hash[:12]})")
        return record, True

    def _next_version(self, owner_id: str, content_group_id: str, section_id: str) -> int:
        latest = self.db.query(ContentVersion.version).filter(
            ContentVersion.owner_id == owner_id,
            ContentVersion.content_group_id == content_group_id,
            ContentVersion.section_id == section_id,
        ).order_by(ContentVersion.version.desc()).first()
        return latest[0] + 1 if latest else 1
