"""
Form Name Inference Module

Resolves which form a contact submitted. Sources are consulted in a fixed
priority order and the first one that yields a name wins:

1. FORM_SUBMISSION engagements carrying both a form id and a title
   (latest creation timestamp wins). A submission engagement whose body
   reads "Envio de Formulário <name>" is used when none carries a title.
2. The ``form_name`` contact property, then ``first_conversion_event_name``.
3. Ordered pattern rules over the analytics source fields.
4. The "form not found" sentinel.

Everything here is pure so rules can be added and tested in isolation.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from models.sync_records import (
    Contact,
    Engagement,
    FORM_NOT_FOUND,
    FormNameOrigin,
)


FORM_SUBMISSION_TYPE = "FORM_SUBMISSION"
ENGAGEMENT_BODY_PATTERN = re.compile(r"Envio de Formul[aá]rio\s*(?P<name>.*)", re.IGNORECASE)


@dataclass(frozen=True)
class InferenceRule:
    """Maps an analytics source field matching ``pattern`` to a form name.

    ``source_types`` restricts the rule to contacts whose analytics source is
    one of the given values (empty means any). ``field`` picks which source
    detail to match; the ``name`` group (or the whole value) fills
    ``template``.
    """
    name: str
    pattern: Pattern
    template: str = "{name}"
    source_types: Tuple[str, ...] = ()
    field: str = "analytics_source_data_1"
    requires: Optional[Tuple[str, str]] = None

    def apply(self, contact: Contact) -> Optional[str]:
        source_type = (contact.analytics_source or "").upper()
        if self.source_types and source_type not in self.source_types:
            return None
        if self.requires:
            attr, expected = self.requires
            if (getattr(contact, attr) or "").upper() != expected:
                return None

        value = getattr(contact, self.field)
        if not value:
            return None
        match = self.pattern.search(value)
        if not match:
            return None

        captured = match.groupdict().get("name")
        captured = (captured if captured is not None else match.group(0)).strip()
        if not captured:
            return None
        return self.template.format(name=captured)


ANY_TEXT = re.compile(r"^\s*(?P<name>\S.*?)\s*$")

DEFAULT_RULES: List[InferenceRule] = [
    InferenceRule(
        name="form_submission_prefix",
        pattern=re.compile(r"^\s*Form Submission:\s*(?P<name>.+)$", re.IGNORECASE),
    ),
    InferenceRule(
        name="envio_de_formulario_prefix",
        pattern=re.compile(r"^\s*Envio de Formul[aá]rio:?\s*(?P<name>.+)$", re.IGNORECASE),
    ),
    InferenceRule(
        name="paid_search",
        pattern=ANY_TEXT,
        template="Paid Search - {name}",
        source_types=("PAID_SEARCH",),
    ),
    InferenceRule(
        name="email",
        pattern=ANY_TEXT,
        template="Email - {name}",
        source_types=("EMAIL_MARKETING", "EMAIL"),
    ),
    InferenceRule(
        name="form",
        pattern=ANY_TEXT,
        source_types=("FORM",),
    ),
    InferenceRule(
        name="offline_form",
        pattern=ANY_TEXT,
        template="Offline Form - {name}",
        source_types=("OFFLINE", "OFFLINE_FORM"),
        field="analytics_source_data_2",
        requires=("analytics_source_data_1", "FORM"),
    ),
]


def infer_from_source(contact: Contact, rules: Sequence[InferenceRule] = DEFAULT_RULES) -> Optional[str]:
    """First rule that produces a name wins"""
    for rule in rules:
        inferred = rule.apply(contact)
        if inferred:
            return inferred
    return None


def parse_engagement_body(body: Optional[str]) -> Optional[str]:
    if not body:
        return None
    match = ENGAGEMENT_BODY_PATTERN.search(body)
    if not match:
        return None
    return match.group("name").strip() or None


def select_form_submission(engagements: Iterable[Engagement]) -> Optional[str]:
    """Title of the latest qualifying FORM_SUBMISSION engagement"""
    submissions = [e for e in engagements if (e.type or "").upper() == FORM_SUBMISSION_TYPE]

    titled = [e for e in submissions if e.form_id and e.form_title]
    if titled:
        latest = max(titled, key=lambda e: e.created_at)
        return latest.form_title.strip()

    for engagement in sorted(submissions, key=lambda e: e.created_at, reverse=True):
        parsed = parse_engagement_body(engagement.body)
        if parsed:
            return parsed
    return None


def resolve_form_name(
    contact: Contact,
    engagements: Sequence[Engagement] = (),
    rules: Sequence[InferenceRule] = DEFAULT_RULES,
) -> Tuple[str, FormNameOrigin]:
    """Return the resolved form name and where it came from; never empty"""
    from_engagement = select_form_submission(engagements)
    if from_engagement:
        return from_engagement, FormNameOrigin.ENGAGEMENT

    for prop in (contact.form_name, contact.first_conversion_event_name):
        if prop and prop.strip():
            return prop.strip(), FormNameOrigin.CONTACT_PROPERTY

    inferred = infer_from_source(contact, rules)
    if inferred:
        return inferred, FormNameOrigin.SOURCE_HEURISTIC

    return FORM_NOT_FOUND, FormNameOrigin.NOT_FOUND
