"""Data access repositories."""

from .content_version_repository import ContentVersionRepository

__all__ = [
    "ContentVersionRepository",
]
