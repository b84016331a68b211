"""Content version model."""

from sqlalchemy import (
    Column, Index, Integer, String, Boolean, DateTime, JSON, UniqueConstraint, text,
)

from ..core.clock import utcnow
from ..database import Base


class ContentVersion(Base):
    """Versioned content of one section within a content group.

    At most one row per (owner_id, content_group_id, section_id) carries
    is_current_version = true; the partial unique index enforces it.
    """

    __tablename__ = "content_versions"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "content_group_id", "section_id", "version",
            name="uq_content_versions_owner_group_section_version",
        ),
        Index(
            "uq_content_versions_one_current",
            "owner_id", "content_group_id", "section_id",
            unique=True,
            postgresql_where=text("is_current_version"),
            sqlite_where=text("is_current_version = 1"),
        ),
        Index("ix_content_versions_updated_at", "updated_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    owner_id = Column(String(100), nullable=False)
    content_group_id = Column(String(100), nullable=False)
    section_id = Column(String(100), nullable=False)

    version = Column(Integer, nullable=False)
    content = Column(JSON, nullable=False)
    content_hash = Column(String(64), nullable=False)  # SHA256 of the stable serialization
    is_current_version = Column(Boolean, nullable=False, default=True)

    # Job that produced this version (None for manual writes)
    source_job_id = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
