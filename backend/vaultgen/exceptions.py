"""Custom exception hierarchy for vaultgen."""

from enum import Enum
from typing import Optional, Dict, Any, List


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Job errors
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    INVALID_JOB_TRANSITION = "INVALID_JOB_TRANSITION"

    # Content errors
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    UNKNOWN_CONTENT_TYPE = "UNKNOWN_CONTENT_TYPE"
    PARTITION_OVERLAP = "PARTITION_OVERLAP"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Persistence errors
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class VaultgenError(Exception):
    """
    Base exception for all vaultgen errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class JobNotFoundError(VaultgenError):
    """Job missing, or owned by someone other than the caller.

    Both cases share this error so a job's existence is never confirmed
    to a non-owner.
    """

    def __init__(self, job_id: str):
        super().__init__(
            f"Job not found: {job_id}",
            ErrorCode.JOB_NOT_FOUND,
            status_code=404,
            details={"job_id": job_id}
        )


class InvalidJobTransitionError(VaultgenError):
    """Requested status change is not allowed from the job's current state."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(
            f"Job {job_id} cannot move from {current} to {requested}",
            ErrorCode.INVALID_JOB_TRANSITION,
            status_code=409,
            details={"job_id": job_id, "current": current, "requested": requested}
        )


class ContentVersionNotFoundError(VaultgenError):
    """No current content version for a (content group, section)."""

    def __init__(self, content_group_id: str, section_id: str):
        super().__init__(
            f"No content for {section_id} in {content_group_id}",
            ErrorCode.CONTENT_NOT_FOUND,
            status_code=404,
            details={"content_group_id": content_group_id, "section_id": section_id}
        )


class UnknownContentTypeError(VaultgenError):
    """Content type has no declared schema or partition plan."""

    def __init__(self, content_type: str):
        super().__init__(
            f"Unknown content type: {content_type}",
            ErrorCode.UNKNOWN_CONTENT_TYPE,
            status_code=400,
            details={"content_type": content_type}
        )


class PartitionOverlapError(VaultgenError):
    """Two chunks produced the same field.

    This is a partition-plan configuration bug, not a data problem, so it
    cannot be fixed by retrying.
    """

    def __init__(self, content_type: str, overlaps: Dict[str, List[int]]):
        described = ", ".join(
            f"{name} (chunks {', '.join(str(i) for i in indices)})"
            for name, indices in sorted(overlaps.items())
        )
        super().__init__(
            f"Partition overlap in {content_type}: {described}",
            ErrorCode.PARTITION_OVERLAP,
            status_code=500,
            details={"content_type": content_type, "overlaps": overlaps}
        )
        self.content_type = content_type
        self.overlaps = overlaps


class ValidationError(VaultgenError):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class AuthenticationError(VaultgenError):
    """Request lacks valid authentication credentials."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class PersistenceError(VaultgenError):
    """Writing job state or content versions failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message,
            ErrorCode.PERSISTENCE_ERROR,
            status_code=500,
            details=details
        )
