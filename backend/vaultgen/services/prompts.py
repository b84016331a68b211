"""Prompt construction for chunk generation.

Prompts are built from the schema and partition tables: every chunk gets the
same business context block, the optional retrieved reference context, and
a task section listing only the fields that chunk owns.
"""

import json
from typing import Any, Dict, Mapping, Optional

from .content_schema import LIST, MAPPING, TEXT, ContentSchema, FieldSpec
from .partition_plan import ChunkSpec

SYSTEM_PROMPT = (
    "You are a direct-response marketing copywriter. "
    "Return ONLY valid JSON. Your response must start with { and end with }. "
    "No markdown, no commentary."
)

# Business data keys shown to the model, in display order.
CONTEXT_LABELS: Dict[str, str] = {
    "business_name": "Business Name",
    "ideal_client": "Ideal Client",
    "core_problem": "Core Problem",
    "outcomes": "Desired Outcomes",
    "unique_advantage": "Unique Method",
    "offer_program": "Offer/Program",
    "offer_price": "Investment",
    "lead_magnet_title": "Free Gift Name",
    "call_to_action": "Call To Action",
    "brand_voice": "Brand Voice",
}

# Reference context is appended verbatim; cap it so one chunk prompt stays
# well inside the model's context window.
REFERENCE_CONTEXT_LIMIT = 6000


def build_shared_context(context: Mapping[str, Any]) -> str:
    """Render the business data block shared by every chunk of a job."""
    lines = ["=== BUSINESS DATA ==="]
    for key, label in CONTEXT_LABELS.items():
        value = context.get(key)
        lines.append(f"- {label}: {value if value else 'Not specified'}")

    extra = sorted(k for k in context if k not in CONTEXT_LABELS)
    for key in extra:
        lines.append(f"- {key}: {context[key]}")
    lines.append("- Schedule Link: [Schedule Link]")
    return "\n".join(lines)


def _skeleton(spec: FieldSpec) -> Any:
    if spec.kind == TEXT:
        return "..."
    if spec.kind == LIST:
        return ["..."]
    if spec.required_keys or spec.optional_keys:
        return {key: "..." for key in spec.required_keys + spec.optional_keys}
    return {"you1": "...", "lead1": "...", "you2": "..."}


def _field_line(spec: FieldSpec) -> str:
    if spec.kind == MAPPING and spec.required_keys:
        shape = "object with non-empty " + ", ".join(spec.required_keys)
        if spec.optional_keys:
            shape += "; also " + ", ".join(spec.optional_keys)
    elif spec.kind == MAPPING:
        shape = "non-empty object"
    elif spec.kind == LIST:
        shape = "non-empty array"
    else:
        shape = "non-empty string"
    return f"- {spec.name} ({shape}): {spec.description}"


def build_chunk_prompt(
    schema: ContentSchema,
    chunk: ChunkSpec,
    total_chunks: int,
    context: Mapping[str, Any],
    reference_context: Optional[str] = None,
) -> str:
    """Build the user prompt for one chunk.

    Args:
        schema: Content type schema the chunk belongs to.
        chunk: Chunk to generate; only its fields are requested.
        total_chunks: Number of chunks in the plan (shown to the model).
        context: Business data from the intake answers.
        reference_context: Optional retrieved examples or prior content.

    Returns:
        Prompt text requesting a flat JSON object keyed by field name.
    """
    specs = [schema.get_field(name) for name in chunk.fields]
    specs = [s for s in specs if s is not None]

    parts = [
        f"Generate part {chunk.index} of {total_chunks} of the {schema.title} "
        f"({chunk.label}).",
        "",
        build_shared_context(context),
    ]

    if reference_context:
        parts += [
            "",
            "=== REFERENCE MATERIAL ===",
            reference_context[:REFERENCE_CONTEXT_LIMIT],
        ]

    parts += [
        "",
        f"=== YOUR TASK: {len(specs)} FIELDS ===",
        *(_field_line(s) for s in specs),
        "",
        "=== JSON OUTPUT SCHEMA ===",
        "Return ONLY a JSON object with exactly these keys:",
        json.dumps({s.name: _skeleton(s) for s in specs}, indent=2),
        "",
        "Make the content specific to this business. Generate now.",
    ]
    return "\n".join(parts)
