"""Content type schemas and the validator run on merged documents.

Each content type declares an ordered list of top-level fields. A field is
*missing* when absent (or null) and *incomplete* when present but empty:
a mapping lacking one of its required sub-attributes, a blank string, or an
empty list. Validation is advisory and never mutates the document; callers
decide whether to persist, flag or retry.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..exceptions import UnknownContentTypeError

MAPPING = "mapping"
TEXT = "text"
LIST = "list"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str = MAPPING
    # Sub-attributes that must be non-empty when kind == "mapping".
    # Empty tuple means "any non-empty mapping".
    required_keys: Tuple[str, ...] = ()
    description: str = ""
    # Sub-attributes requested from the model but not needed for completeness.
    optional_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ContentSchema:
    content_type: str
    section_id: str
    title: str
    fields: Tuple[FieldSpec, ...]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


@dataclass
class ValidationReport:
    valid: bool
    missing_fields: List[str] = field(default_factory=list)
    incomplete_fields: List[str] = field(default_factory=list)

    @property
    def problem_fields(self) -> List[str]:
        return self.missing_fields + self.incomplete_fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "missing_fields": list(self.missing_fields),
            "incomplete_fields": list(self.incomplete_fields),
        }


def _non_empty(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


def field_is_complete(spec: FieldSpec, value: Any) -> bool:
    """Whether a present value satisfies its field's kind rule."""
    if spec.kind == TEXT:
        return isinstance(value, str) and bool(value.strip())
    if spec.kind == LIST:
        return isinstance(value, list) and len(value) > 0
    if not isinstance(value, Mapping):
        return False
    if not spec.required_keys:
        return len(value) > 0
    return all(_non_empty(value.get(key)) for key in spec.required_keys)


def _sms(name: str, timing: str) -> FieldSpec:
    return FieldSpec(
        name, MAPPING, ("message",), f"SMS sent {timing}, under 160 characters", optional_keys=("timing",),
    )


def _email(name: str, purpose: str) -> FieldSpec:
    return FieldSpec(name, MAPPING, ("subject", "body"), purpose, optional_keys=("preview",))


SMS_SEQUENCE = ContentSchema(
    content_type="sms-sequence",
    section_id="smsSequence",
    title="SMS Sequences",
    fields=(
        _sms("sms1", "on day 1, immediately: welcome and free gift reminder"),
        _sms("sms2", "on day 2: short value nudge"),
        _sms("sms3", "on day 3: actionable quick tip"),
        _sms("sms4", "on day 4: brief social proof"),
        _sms("sms5", "on day 5: soft booking reminder"),
        _sms("sms6", "on day 6: final value piece"),
        _sms("sms7a", "on day 7 morning: last chance to book"),
        _sms("sms7b", "on day 7 evening: final push with link"),
        _sms("smsNoShow1", "30 minutes after a missed call: concerned check-in"),
        _sms("smsNoShow2", "the day after a no-show: easy reschedule offer"),
    ),
)

EMAIL_SEQUENCE = ContentSchema(
    content_type="email-sequence",
    section_id="emailSequence",
    title="Email Sequence",
    fields=(
        _email("email1", "Day 1 welcome and free gift delivery"),
        _email("email2", "Day 2 origin story"),
        _email("email3", "Day 3 core problem"),
        _email("email4", "Day 4 unique method"),
        _email("email5", "Day 5 case study"),
        _email("email6", "Day 6 objection handling"),
        _email("email7", "Day 7 invitation to book"),
        _email("email8a", "Day 8 morning booking push"),
        _email("email8b", "Day 8 afternoon reminder"),
        _email("email8c", "Day 8 evening last call"),
        _email("email9", "Day 9 deeper value"),
        _email("email10", "Day 10 common mistakes"),
        _email("email11", "Day 11 transformation story"),
        _email("email12", "Day 12 future pacing"),
        _email("email13", "Day 13 results timeline"),
        _email("email14", "Day 14 next steps"),
        _email("email15a", "Day 15 morning final invitation"),
        _email("email15b", "Day 15 afternoon FAQ"),
        _email("email15c", "Day 15 evening strongest call to action"),
    ),
)

_DIALOGUE = "dialogue object with alternating you1, lead1, you2... lines"

SETTER_SCRIPT = ContentSchema(
    content_type="setter-script",
    section_id="setterScript",
    title="Setter Script",
    fields=(
        FieldSpec("callGoal", TEXT, description="one-line goal of the setter call"),
        FieldSpec("setterMindset", TEXT, description="mindset reminder for the setter"),
        FieldSpec("openingOptIn", description=f"opening referencing the opt-in, {_DIALOGUE}"),
        FieldSpec("permissionPurpose", description=f"ask permission and state purpose, {_DIALOGUE}"),
        FieldSpec("currentSituation", description=f"explore the current situation, {_DIALOGUE}"),
        FieldSpec("primaryGoal", description=f"clarify the 90-day goal, {_DIALOGUE}"),
        FieldSpec("primaryObstacle", description=f"uncover the main obstacle, {_DIALOGUE}"),
        FieldSpec("authorityDrop", description=f"introduce the expert's authority, {_DIALOGUE}"),
        FieldSpec("fitReadiness", description=f"check fit and readiness, {_DIALOGUE}"),
        FieldSpec("bookCall", description=f"book the consultation, {_DIALOGUE}"),
        FieldSpec("confirmShowUp", description=f"confirm attendance, {_DIALOGUE}"),
        FieldSpec("objectionHandling", LIST, description="list of {objection, response} objects"),
    ),
)

CLOSER_SCRIPT = ContentSchema(
    content_type="closer-script",
    section_id="salesScripts",
    title="Closer Script",
    fields=(
        FieldSpec("agendaPermission", TEXT, description="agenda and permission opener"),
        FieldSpec(
            "discoveryQuestions", LIST,
            description="list of {label, question, lookingFor, ifVague} objects",
        ),
        FieldSpec("stakesImpact", TEXT, description="cost of inaction"),
        FieldSpec("commitmentScale", TEXT, description="1-10 commitment scale question"),
        FieldSpec("decisionGate", TEXT, description="who decides and when"),
        FieldSpec("recapConfirmation", TEXT, description="recap of the prospect's situation"),
        FieldSpec("pitchScript", TEXT, description="offer presentation"),
        FieldSpec("proofLine", TEXT, description="single proof statement"),
        FieldSpec("investmentClose", TEXT, description="price reveal and close"),
        FieldSpec("nextSteps", TEXT, description="onboarding next steps"),
        FieldSpec("objectionHandling", LIST, description="list of {objection, response} objects"),
    ),
)

_SALES_PROCESS = tuple(f"process_bullet_{i}_text" for i in range(1, 6))
_SALES_AUDIENCE = tuple(f"audience_callout_bullet_{i}_text" for i in range(1, 4))
_SALES_CALL = (
    ("call_details_is_not_heading", "call_details_is_heading")
    + tuple(f"call_details_is_not_bullet_{i}_text" for i in range(1, 4))
    + tuple(f"call_details_is_bullet_{i}_text" for i in range(1, 4))
)
_SALES_FAQ = ("faq_question_1_text", "faq_answer_1_text") + tuple(
    f"faq_question_{i}_text" for i in range(2, 5)
)
_TESTIMONIALS = tuple(
    key
    for i in range(1, 5)
    for key in (f"testimonial_review_{i}_headline", f"testimonial_review_{i}_paragraph_with_name")
)

FUNNEL_COPY = ContentSchema(
    content_type="funnel-copy",
    section_id="funnelCopy",
    title="Funnel Page Copy",
    fields=(
        FieldSpec(
            "optinPage", MAPPING,
            ("headline_text", "subheadline_text", "cta_text"),
            "lead magnet opt-in page: benefit headline under 150 chars, subheadline under 200, button under 50",
            optional_keys=("footer_company_name",),
        ),
        FieldSpec(
            "salesPage", MAPPING,
            ("hero_headline_text", "cta_text", "process_headline_text",
             "audience_callout_headline_text", "call_details_headline_text",
             "bio_headline_text", "bio_paragraph_text", "faq_headline_text"),
            "video sales letter landing page that pre-frames the video and drives call bookings",
            optional_keys=(
                ("acknowledge_pill_text", "process_sub_headline_text")
                + _SALES_PROCESS
                + _SALES_AUDIENCE
                + ("audience_callout_cta_text", "testimonials_headline_text")
                + _SALES_CALL
                + _SALES_FAQ
            ),
        ),
        FieldSpec(
            "bookingPage", MAPPING,
            ("booking_pill_text",),
            "calendar page: encouraging confirmation line under 100 chars shown above the calendar",
        ),
        FieldSpec(
            "thankYouPage", MAPPING,
            ("headline_text", "subheadline_text"),
            "post-booking page confirming the call, setting expectations and showing specific testimonials",
            optional_keys=("testimonials_headline_text", "testimonials_subheadline_text") + _TESTIMONIALS,
        ),
    ),
)

CONTENT_SCHEMAS: Dict[str, ContentSchema] = {
    schema.content_type: schema
    for schema in (SMS_SEQUENCE, EMAIL_SEQUENCE, SETTER_SCRIPT, CLOSER_SCRIPT, FUNNEL_COPY)
}


def get_schema(content_type: str) -> ContentSchema:
    schema = CONTENT_SCHEMAS.get(content_type)
    if schema is None:
        raise UnknownContentTypeError(content_type)
    return schema


def validate(content_type: str, document: Mapping[str, Any]) -> ValidationReport:
    """Check *document* against the declared schema of *content_type*.

    Args:
        content_type: Job type tag, e.g. ``"sms-sequence"``.
        document: Merged field mapping. Not modified.

    Returns:
        ValidationReport with missing and incomplete field names in schema order.

    Raises:
        UnknownContentTypeError: If the content type has no schema.
    """
    schema = get_schema(content_type)
    missing: List[str] = []
    incomplete: List[str] = []

    for spec in schema.fields:
        value = document.get(spec.name) if document else None
        if value is None:
            missing.append(spec.name)
        elif not field_is_complete(spec, value):
            incomplete.append(spec.name)

    return ValidationReport(
        valid=not missing and not incomplete,
        missing_fields=missing,
        incomplete_fields=incomplete,
    )
