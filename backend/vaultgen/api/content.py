"""Stored content version endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..exceptions import ContentVersionNotFoundError
from ..repositories.content_version_repository import ContentVersionRepository
from ..schemas.content import ContentVersionResponse, ContentVersionSummary

router = APIRouter(prefix="/api/content", tags=["content"])


@router.get("/{content_group_id}/{section_id}", response_model=ContentVersionResponse)
def get_current_content(
    content_group_id: str,
    section_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Get the current version of a section."""
    return ContentVersionRepository(db).get_current_for_owner(auth.user_id, content_group_id, section_id)


@router.get("/{content_group_id}/{section_id}/versions", response_model=List[ContentVersionSummary])
def list_content_versions(
    content_group_id: str,
    section_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Version history of a section, newest first."""
    repo = ContentVersionRepository(db)
    versions = repo.list_versions(auth.user_id, content_group_id, section_id, skip=skip, limit=limit)
    if not versions:
        raise ContentVersionNotFoundError(content_group_id, section_id)
    return versions
