"""Partition plans: which fields each generation chunk produces.

One row per content type. The orchestrator and the merger both read this
table, so adding a content type means adding a schema and a row here.
Chunk indices are 1-based and field sets within a plan are disjoint.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..exceptions import PartitionOverlapError, UnknownContentTypeError
from .content_schema import CONTENT_SCHEMAS


@dataclass(frozen=True)
class ChunkSpec:
    index: int
    label: str
    fields: Tuple[str, ...]
    max_tokens: int = 4000
    timeout_seconds: int = 90


@dataclass(frozen=True)
class PartitionPlan:
    content_type: str
    chunks: Tuple[ChunkSpec, ...]

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def get_chunk(self, index: int) -> ChunkSpec:
        for chunk in self.chunks:
            if chunk.index == index:
                return chunk
        raise KeyError(f"{self.content_type} has no chunk {index}")

    def chunk_for_field(self, field_name: str) -> Optional[ChunkSpec]:
        for chunk in self.chunks:
            if field_name in chunk.fields:
                return chunk
        return None

    def chunks_for_fields(self, field_names: Iterable[str]) -> List[ChunkSpec]:
        """Chunks holding at least one of *field_names*, in plan order."""
        wanted = set(field_names)
        return [c for c in self.chunks if wanted.intersection(c.fields)]


PARTITION_PLANS: Dict[str, PartitionPlan] = {
    "sms-sequence": PartitionPlan(
        content_type="sms-sequence",
        chunks=(
            ChunkSpec(1, "days-1-5", ("sms1", "sms2", "sms3", "sms4", "sms5"),
                      max_tokens=2000, timeout_seconds=30),
            ChunkSpec(2, "days-6-7-no-shows", ("sms6", "sms7a", "sms7b", "smsNoShow1", "smsNoShow2"),
                      max_tokens=2000, timeout_seconds=30),
        ),
    ),
    "email-sequence": PartitionPlan(
        content_type="email-sequence",
        chunks=(
            ChunkSpec(1, "emails-1-4", ("email1", "email2", "email3", "email4"),
                      timeout_seconds=180),
            ChunkSpec(2, "emails-5-8c", ("email5", "email6", "email7", "email8a", "email8b", "email8c"),
                      timeout_seconds=180),
            ChunkSpec(3, "emails-9-12", ("email9", "email10", "email11", "email12"),
                      timeout_seconds=180),
            ChunkSpec(4, "emails-13-15c", ("email13", "email14", "email15a", "email15b", "email15c"),
                      timeout_seconds=180),
        ),
    ),
    "setter-script": PartitionPlan(
        content_type="setter-script",
        chunks=(
            ChunkSpec(1, "call-flow",
                      ("callGoal", "setterMindset", "openingOptIn", "permissionPurpose",
                       "currentSituation", "primaryGoal"),
                      max_tokens=3500, timeout_seconds=45),
            ChunkSpec(2, "qualification-objections",
                      ("primaryObstacle", "authorityDrop", "fitReadiness", "bookCall",
                       "confirmShowUp", "objectionHandling"),
                      max_tokens=3500, timeout_seconds=45),
        ),
    ),
    "closer-script": PartitionPlan(
        content_type="closer-script",
        chunks=(
            ChunkSpec(1, "discovery-stakes",
                      ("agendaPermission", "discoveryQuestions", "stakesImpact", "commitmentScale",
                       "decisionGate", "recapConfirmation")),
            ChunkSpec(2, "pitch-close",
                      ("pitchScript", "proofLine", "investmentClose", "nextSteps", "objectionHandling")),
        ),
    ),
    "funnel-copy": PartitionPlan(
        content_type="funnel-copy",
        chunks=(
            ChunkSpec(1, "optin-page", ("optinPage",), max_tokens=1500, timeout_seconds=45),
            ChunkSpec(2, "sales-page", ("salesPage",), max_tokens=6000, timeout_seconds=120),
            ChunkSpec(3, "booking-page", ("bookingPage",), max_tokens=800, timeout_seconds=30),
            ChunkSpec(4, "thank-you-page", ("thankYouPage",), max_tokens=3000, timeout_seconds=60),
        ),
    ),
}


def get_plan(content_type: str) -> PartitionPlan:
    plan = PARTITION_PLANS.get(content_type)
    if plan is None:
        raise UnknownContentTypeError(content_type)
    return plan


def find_overlaps(chunks: Iterable[Tuple[int, Iterable[str]]]) -> Dict[str, List[int]]:
    """Map each field claimed by more than one chunk to the claiming indices."""
    owners: Dict[str, List[int]] = defaultdict(list)
    for index, field_names in chunks:
        for name in field_names:
            owners[name].append(index)
    return {name: indices for name, indices in owners.items() if len(indices) > 1}


def validate_partition_plan(plan: PartitionPlan) -> None:
    """Check a plan is disjoint and covers exactly its schema's fields.

    Raises:
        PartitionOverlapError: Two chunks declare the same field.
        ValueError: Fields missing from the plan, or not in the schema.
    """
    overlaps = find_overlaps((c.index, c.fields) for c in plan.chunks)
    if overlaps:
        raise PartitionOverlapError(plan.content_type, overlaps)

    schema = CONTENT_SCHEMAS.get(plan.content_type)
    if schema is None:
        raise UnknownContentTypeError(plan.content_type)

    planned = {name for c in plan.chunks for name in c.fields}
    declared = set(schema.field_names)
    if planned != declared:
        raise ValueError(
            f"Partition plan for {plan.content_type} does not match its schema: "
            f"unplanned={sorted(declared - planned)} undeclared={sorted(planned - declared)}"
        )

    indices = [c.index for c in plan.chunks]
    if len(set(indices)) != len(indices):
        raise ValueError(f"Partition plan for {plan.content_type} repeats a chunk index")


def validate_partition_plans() -> None:
    """Validate every plan in the table. Called at application startup."""
    for plan in PARTITION_PLANS.values():
        validate_partition_plan(plan)
    unplanned = set(CONTENT_SCHEMAS) - set(PARTITION_PLANS)
    if unplanned:
        raise ValueError(f"Content types without a partition plan: {sorted(unplanned)}")
