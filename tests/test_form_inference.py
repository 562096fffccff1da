"""Tests for form name resolution priority and source heuristics."""
import re

import pytest

from models.sync_records import Contact, Engagement, FORM_NOT_FOUND, FormNameOrigin
from modules.form_inference import (
    DEFAULT_RULES,
    InferenceRule,
    infer_from_source,
    parse_engagement_body,
    resolve_form_name,
    select_form_submission,
)


def submission(engagement_id, created_at, form_id="f", title="Form", body=None, kind="FORM_SUBMISSION"):
    return Engagement(id=engagement_id, type=kind, created_at=created_at,
                      form_id=form_id, form_title=title, body=body)


class TestPriority:
    def test_engagement_beats_property_and_heuristic(self):
        contact = Contact(
            id="1",
            form_name="Property Form",
            analytics_source="PAID_SEARCH",
            analytics_source_data_1="Form Submission: Heuristic Form",
        )
        name, origin = resolve_form_name(contact, [submission("e1", 5, title="Engagement Form")])
        assert name == "Engagement Form"
        assert origin == FormNameOrigin.ENGAGEMENT

    def test_property_beats_heuristic(self):
        contact = Contact(id="1", form_name="Property Form",
                          analytics_source_data_1="Form Submission: Heuristic Form")
        assert resolve_form_name(contact) == ("Property Form", FormNameOrigin.CONTACT_PROPERTY)

    def test_first_conversion_event_name_as_fallback_property(self):
        contact = Contact(id="1", first_conversion_event_name="Webinar Signup")
        assert resolve_form_name(contact) == ("Webinar Signup", FormNameOrigin.CONTACT_PROPERTY)

    def test_heuristic_when_nothing_explicit(self):
        contact = Contact(id="1", analytics_source_data_1="Form Submission: Pricing Page")
        assert resolve_form_name(contact) == ("Pricing Page", FormNameOrigin.SOURCE_HEURISTIC)

    def test_sentinel_when_nothing_matches(self):
        contact = Contact(id="1", analytics_source="DIRECT_TRAFFIC", analytics_source_data_1="something else")
        assert resolve_form_name(contact) == (FORM_NOT_FOUND, FormNameOrigin.NOT_FOUND)

    def test_never_empty(self):
        name, _ = resolve_form_name(Contact(id="1", form_name="   "))
        assert name == FORM_NOT_FOUND


class TestEngagementSelection:
    def test_latest_submission_wins(self):
        engagements = [submission("a", 1, title="First"), submission("b", 3, title="Latest"),
                       submission("c", 2, title="Middle")]
        assert select_form_submission(engagements) == "Latest"

    def test_requires_both_form_id_and_title(self):
        engagements = [submission("a", 9, form_id=None, title="No Id"), submission("b", 1, title="Complete")]
        assert select_form_submission(engagements) == "Complete"

    def test_other_engagement_types_ignored(self):
        engagements = [submission("a", 9, title="A Call", kind="CALL")]
        assert select_form_submission(engagements) is None

    def test_body_parsed_when_no_titled_submission(self):
        engagements = [submission("a", 1, form_id=None, title=None, body="Envio de Formulário #Form PRODUCT PAGE")]
        assert select_form_submission(engagements) == "#Form PRODUCT PAGE"

    def test_parse_body_without_marker(self):
        assert parse_engagement_body("Called the customer") is None
        assert parse_engagement_body(None) is None


class TestHeuristics:
    @pytest.mark.parametrize("source,data_1,data_2,expected", [
        (None, "Form Submission: Demo Request", None, "Demo Request"),
        (None, "Envio de Formulário Orçamento", None, "Orçamento"),
        ("PAID_SEARCH", "marketing automation", None, "Paid Search - marketing automation"),
        ("EMAIL_MARKETING", "October Newsletter", None, "Email - October Newsletter"),
        ("FORM", "Landing Page", None, "Landing Page"),
        ("OFFLINE", "FORM", "Trade Show Leads", "Offline Form - Trade Show Leads"),
    ])
    def test_source_templates(self, source, data_1, data_2, expected):
        contact = Contact(id="1", analytics_source=source, analytics_source_data_1=data_1,
                          analytics_source_data_2=data_2)
        assert infer_from_source(contact) == expected

    def test_offline_import_that_is_not_a_form(self):
        contact = Contact(id="1", analytics_source="OFFLINE", analytics_source_data_1="IMPORT",
                          analytics_source_data_2="leads.csv")
        assert infer_from_source(contact) is None

    def test_prefix_rule_wins_over_source_template(self):
        contact = Contact(id="1", analytics_source="PAID_SEARCH",
                          analytics_source_data_1="Form Submission: Trial")
        assert infer_from_source(contact) == "Trial"

    def test_custom_rules_extend_without_touching_control_flow(self):
        rule = InferenceRule(name="chat", pattern=re.compile(r"^Chat:\s*(?P<name>.+)$"), template="Chat - {name}")
        contact = Contact(id="1", analytics_source_data_1="Chat: Support")
        assert infer_from_source(contact, DEFAULT_RULES) is None
        assert infer_from_source(contact, [*DEFAULT_RULES, rule]) == "Chat - Support"
