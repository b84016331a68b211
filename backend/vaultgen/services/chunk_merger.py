"""Merge independently generated chunks into one validated document."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import PartitionOverlapError
from .content_schema import ValidationReport, get_schema, validate
from .partition_plan import find_overlaps

logger = logging.getLogger(__name__)


@dataclass
class ChunkResult:
    """Raw output of one chunk call. Lives only for the duration of a job."""

    chunk_index: int
    fields: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(cls, chunk_index: int, error: str) -> "ChunkResult":
        return cls(chunk_index=chunk_index, fields={}, success=False, error=error)


@dataclass
class MergeResult:
    document: Dict[str, Any]
    validation: ValidationReport
    failed_chunks: List[int] = field(default_factory=list)

    @property
    def coverage(self) -> int:
        """Number of schema fields present and complete."""
        problems = set(self.validation.problem_fields)
        return sum(1 for name in self.document if name not in problems)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document,
            "validation": self.validation.to_dict(),
            "failed_chunks": list(self.failed_chunks),
        }


def merge(content_type: str, chunk_results: Sequence[ChunkResult]) -> MergeResult:
    """Union the successful chunks of *content_type* and validate the result.

    Failed chunks contribute nothing; their fields stay absent and show up
    as missing in the validation report. A field produced by two chunks is
    a partition-plan violation and raises instead of picking a winner.

    Args:
        content_type: Job type tag, e.g. ``"sms-sequence"``.
        chunk_results: One result per planned chunk.

    Returns:
        MergeResult with the merged document, validation report and the
        indices of failed chunks.

    Raises:
        PartitionOverlapError: Two successful chunks share a field name.
        UnknownContentTypeError: The content type has no schema.
    """
    schema = get_schema(content_type)
    known = set(schema.field_names)

    succeeded = [r for r in chunk_results if r.success]
    failed_chunks = sorted(r.chunk_index for r in chunk_results if not r.success)

    overlaps = find_overlaps((r.chunk_index, r.fields.keys()) for r in succeeded)
    if overlaps:
        logger.error(f"Chunk overlap while merging {content_type}: {overlaps}")
        raise PartitionOverlapError(content_type, overlaps)

    document: Dict[str, Any] = {}
    for result in succeeded:
        for name, value in result.fields.items():
            if name not in known:
                logger.warning(
                    f"Dropping undeclared field {name!r} from chunk {result.chunk_index} of {content_type}"
                )
                continue
            document[name] = value

    # Schema order keeps the stored document readable; hashing ignores order.
    document = {name: document[name] for name in schema.field_names if name in document}

    report = validate(content_type, document)
    logger.info(
        f"Merged {content_type}: {len(document)}/{len(known)} fields, "
        f"failed chunks={failed_chunks}, valid={report.valid}"
    )
    return MergeResult(document=document, validation=report, failed_chunks=failed_chunks)
