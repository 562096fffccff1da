"""Tests for settings validation and the pure parts of the platform adapters."""
import asyncio
import enum
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from modules import hubspot_client
from modules.google_ads_client import flatten_row, http_status_for_grpc, resolve_field
from modules.interfaces import ReportQuery
from modules.logging_utils import LogContext, get_correlation_id, with_correlation_id


class TestSettings:
    def test_defaults(self, make_settings):
        settings = make_settings()
        assert settings.enabled_data_types == ["googleAds", "userConversions", "hubspotForms"]
        assert settings.cost_micros_divisor == 1_000_000
        assert settings.hubspot_deal_stage_closed_won == "closedwon"
        assert settings.sync_mode == "last_30_days"

    def test_data_types_parsing(self, make_settings):
        assert make_settings(data_types=" googleAds , hubspotForms ,").enabled_data_types == ["googleAds", "hubspotForms"]

    def test_placeholder_token_rejected(self, make_settings):
        with pytest.raises(ValidationError):
            make_settings(hubspot_private_app_token="your_token_here")

    def test_customer_id_dashes_removed(self, make_settings):
        assert make_settings(google_ads_customer_id="123-456-7890").google_ads_customer_id == "1234567890"

    def test_invalid_log_level(self, make_settings):
        with pytest.raises(ValidationError):
            make_settings(log_level="LOUD")

    def test_sheets_configured_with_service_account(self, make_settings):
        assert make_settings(google_sheets_id="x", google_service_account_json="key.json").sheets_configured
        assert not make_settings(google_service_account_json="key.json").sheets_configured


class Status(enum.IntEnum):
    ENABLED = 2


class TestGoogleAdsAdapter:
    @pytest.mark.parametrize("name,status", [
        ("RESOURCE_EXHAUSTED", 429), ("UNAVAILABLE", 503), ("INVALID_ARGUMENT", 400),
        ("UNAUTHENTICATED", 401), ("PERMISSION_DENIED", 403), ("INTERNAL", 500), (None, None),
    ])
    def test_grpc_status_mapping(self, name, status):
        assert http_status_for_grpc(name) == status

    def test_flatten_row(self):
        row = SimpleNamespace(
            campaign=SimpleNamespace(id=1, name="A", status=Status.ENABLED),
            metrics=SimpleNamespace(cost_micros=1_500_000),
        )
        flat = flatten_row(row, ["campaign.id", "campaign.status", "metrics.cost_micros", "segments.date"])
        assert flat == {"campaign.id": 1, "campaign.status": 2, "metrics.cost_micros": 1_500_000, "segments.date": None}

    def test_resolve_missing_path(self):
        assert resolve_field(SimpleNamespace(), "click_view.gclid") is None

    def test_gaql_rendering(self):
        query = ReportQuery(
            entity="click_view",
            attributes=["segments.date", "campaign.id", "click_view.gclid"],
            constraints=["segments.date = '2026-10-01'"],
        )
        assert query.to_gaql() == (
            "SELECT segments.date, campaign.id, click_view.gclid FROM click_view "
            "WHERE segments.date = '2026-10-01'"
        )


class TestCorrelation:
    def test_log_context_sets_id(self):
        with LogContext("unit") as ctx:
            assert get_correlation_id() == ctx.cid

    @pytest.mark.asyncio
    async def test_decorator_assigns_id(self):
        @with_correlation_id
        async def work():
            return get_correlation_id()

        assert await work()


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload


class TestHubSpotRestCalls:
    @pytest.mark.asyncio
    async def test_each_call_is_an_independent_request(self, monkeypatch):
        calls = []

        def fake_get(url, **kwargs):
            calls.append((url, kwargs))
            return FakeResponse({"id": "7", "properties": {"hs_name": "Brand"}})

        monkeypatch.setattr(hubspot_client.requests, "get", fake_get)
        client = hubspot_client.HubSpotCRMClient("pat-na1-token")

        await asyncio.gather(client.get_campaign("7"), client.get_engagement("e1"))

        urls = sorted(url for url, _ in calls)
        assert urls == [
            "https://api.hubapi.com/engagements/v1/engagements/e1",
            "https://api.hubapi.com/marketing/v3/campaigns/7",
        ]
        for _, kwargs in calls:
            assert kwargs["headers"]["Authorization"] == "Bearer pat-na1-token"
            assert kwargs["timeout"] == hubspot_client.REQUEST_TIMEOUT
