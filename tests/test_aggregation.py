"""Tests for per-campaign and per-form deal aggregation."""
from decimal import Decimal

from models.sync_records import (
    Campaign,
    DealBucket,
    DealDetails,
    FORM_NOT_FOUND,
    FormSubmissionRecord,
)
from modules.aggregation import aggregate, aggregate_by_campaign, aggregate_by_form


def deal(deal_id, bucket, campaigns=()):
    return DealDetails(id=deal_id, name=f"Deal {deal_id}", bucket=bucket, campaign_names=list(campaigns))


def campaign(campaign_id, name, cost, network="Search"):
    return Campaign(id=campaign_id, name=name, network=network, cost=Decimal(cost))


def form_record(contact_id, form_name, deal_ids):
    return FormSubmissionRecord(contact_id=contact_id, form_name=form_name, deal_ids=list(deal_ids))


class TestCampaignAggregation:
    def test_pipeline_activity_filter(self):
        campaigns = [campaign("1", "A", "100"), campaign("2", "B", "50")]
        deals = [
            deal("d1", DealBucket.OPEN, ["A"]),
            deal("d2", DealBucket.CLOSED_WON, ["A"]),
            deal("d3", DealBucket.CLOSED_LOST, ["B"]),
        ]

        rows = aggregate_by_campaign(campaigns, deals)

        assert len(rows) == 1
        assert rows[0].key == "A"
        assert rows[0].cost == Decimal("100")
        assert (rows[0].open_count, rows[0].closed_won_count, rows[0].closed_lost_count) == (1, 1, 0)

    def test_deal_without_campaign_contributes_nothing(self):
        rows = aggregate_by_campaign([campaign("1", "A", "10")], [deal("d1", DealBucket.OPEN)])
        assert rows == []

    def test_placeholder_deal_counts_in_no_bucket(self):
        placeholder = DealDetails.placeholder("d9").model_copy(update={"campaign_names": ["A"]})
        rows = aggregate_by_campaign(
            [campaign("1", "A", "10")],
            [placeholder, deal("d1", DealBucket.OPEN, ["A"])],
        )
        assert (rows[0].open_count, rows[0].closed_won_count, rows[0].closed_lost_count) == (1, 0, 0)

    def test_same_name_rows_collapse(self):
        campaigns = [
            campaign("1", "A", "10", network="Search"),
            campaign("1", "A", "5", network="Display"),
        ]
        rows = aggregate_by_campaign(campaigns, [deal("d1", DealBucket.CLOSED_WON, ["A"])])
        assert len(rows) == 1
        assert rows[0].cost == Decimal("15")
        assert rows[0].network == "Search / Display"
        assert rows[0].closed_won_count == 1

    def test_order_follows_campaign_order(self):
        campaigns = [campaign("2", "Z", "1"), campaign("1", "A", "1")]
        deals = [deal("d1", DealBucket.OPEN, ["A", "Z"])]
        assert [r.key for r in aggregate_by_campaign(campaigns, deals)] == ["Z", "A"]


class TestFormAggregation:
    def test_sentinel_bucket_excluded_even_when_won(self):
        records = [
            form_record("1", FORM_NOT_FOUND, ["d1"]),
            form_record("2", "Demo", ["d2"]),
        ]
        deals = {"d1": deal("d1", DealBucket.CLOSED_WON), "d2": deal("d2", DealBucket.OPEN)}

        rows = aggregate_by_form(records, deals)

        assert [r.key for r in rows] == ["Demo"]
        assert rows[0].open_count == 1

    def test_counts_contacts_and_dedupes_deals(self):
        records = [
            form_record("1", "Demo", ["d1", "d2"]),
            form_record("2", "Demo", ["d2"]),
            form_record("3", "Demo", []),
        ]
        deals = {"d1": deal("d1", DealBucket.CLOSED_LOST), "d2": deal("d2", DealBucket.CLOSED_WON)}

        rows = aggregate_by_form(records, deals)

        assert rows[0].contact_count == 3
        assert (rows[0].open_count, rows[0].closed_won_count, rows[0].closed_lost_count) == (0, 1, 1)

    def test_forms_without_deals_are_omitted(self):
        assert aggregate_by_form([form_record("1", "Newsletter", [])], {}) == []


class TestAggregate:
    def test_idempotent(self):
        campaigns = [campaign("1", "A", "100"), campaign("2", "B", "50"), campaign("3", "C", "7")]
        deals = {
            "d1": deal("d1", DealBucket.OPEN, ["A", "C"]),
            "d2": deal("d2", DealBucket.CLOSED_WON, ["A"]),
            "d3": deal("d3", DealBucket.CLOSED_LOST, ["B"]),
            "d4": DealDetails.placeholder("d4"),
        }
        forms = [form_record("1", "Demo", ["d1", "d4"]), form_record("2", "Pricing", ["d2", "d3"])]

        first = aggregate(campaigns, deals, forms)
        second = aggregate(campaigns, deals, forms)

        assert [r.model_dump_json() for r in first.campaign_rows] == [r.model_dump_json() for r in second.campaign_rows]
        assert [r.model_dump_json() for r in first.form_rows] == [r.model_dump_json() for r in second.form_rows]
        assert [r.key for r in first.campaign_rows] == ["A", "C"]
        assert [r.key for r in first.form_rows] == ["Demo", "Pricing"]
