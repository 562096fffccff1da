"""Shared fakes and fixtures: in-memory collaborators, no network, no real sleeping."""
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from config import Settings
from modules.interfaces import ReportQuery
from modules.retry_policy import RetryPolicy


class ApiError(Exception):
    """Error carrying an HTTP-like status, like the SDK exceptions do"""

    def __init__(self, status_code: Optional[int], message: str = "boom"):
        super().__init__(message)
        self.status_code = status_code


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeAdsSource:
    """Answers each report query through ``handler(query) -> rows``"""

    def __init__(self, handler: Callable[[ReportQuery], List[Dict[str, Any]]]):
        self.handler = handler
        self.queries: List[ReportQuery] = []

    async def report_stream(self, query: ReportQuery):
        self.queries.append(query)
        for row in self.handler(query):
            yield row


class FakeCRM:
    """In-memory CRM; any value that is an Exception is raised instead of returned"""

    def __init__(
        self,
        pages: Optional[Sequence[Any]] = None,
        associations: Optional[Dict[tuple, Any]] = None,
        deals: Optional[Dict[str, Dict[str, Any]]] = None,
        engagements: Optional[Dict[str, Any]] = None,
        campaigns: Optional[Dict[str, Any]] = None,
        failing_deal_ids: Sequence[str] = (),
    ):
        self.pages = list(pages or [])
        self.associations = associations or {}
        self.deals = deals or {}
        self.engagements = engagements or {}
        self.campaigns = campaigns or {}
        self.failing_deal_ids = set(failing_deal_ids)
        self.search_bodies: List[Dict[str, Any]] = []
        self.association_calls: List[tuple] = []
        self.batch_bodies: List[Dict[str, Any]] = []
        self.campaign_calls: List[str] = []

    async def search_contacts(self, body):
        self.search_bodies.append(body)
        page = self.pages[len(self.search_bodies) - 1]
        if isinstance(page, Exception):
            raise page
        return page

    async def get_associations(self, from_type, from_id, to_type):
        key = (from_type, str(from_id), to_type)
        self.association_calls.append(key)
        value = self.associations.get(key, [])
        if isinstance(value, Exception):
            raise value
        return {"results": [{"toObjectId": i} for i in value]}

    async def batch_read(self, object_type, body):
        self.batch_bodies.append(body)
        ids = [i["id"] for i in body["inputs"]]
        if self.failing_deal_ids.intersection(ids):
            raise ApiError(500, "batch failed")
        return {
            "results": [
                {"id": deal_id, "properties": self.deals[deal_id]}
                for deal_id in ids if deal_id in self.deals
            ]
        }

    async def get_engagement(self, engagement_id):
        value = self.engagements[engagement_id]
        if isinstance(value, Exception):
            raise value
        return value

    async def get_campaign(self, campaign_id):
        self.campaign_calls.append(campaign_id)
        value = self.campaigns.get(campaign_id, ApiError(404, "not found"))
        if isinstance(value, Exception):
            raise value
        return {"id": campaign_id, "properties": {"hs_name": value}}


class FakeSink:
    def __init__(self, failing: Sequence[str] = ()):
        self.writes: List[tuple] = []
        self.failing = set(failing)

    async def write(self, rows, sheet_name, headers):
        if sheet_name in self.failing:
            raise RuntimeError(f"cannot write {sheet_name}")
        self.writes.append((sheet_name, list(headers), [list(r) for r in rows]))

    def sheet(self, name):
        for sheet_name, headers, rows in self.writes:
            if sheet_name == name:
                return headers, rows
        raise KeyError(name)


def contact_record(contact_id, **properties):
    props = {"createdate": "2026-10-01T12:00:00.000Z", "hs_object_source_label": "FORM"}
    props.update(properties)
    return {"id": str(contact_id), "properties": props}


def search_page(records, after=None):
    page = {"results": records}
    if after is not None:
        page["paging"] = {"next": {"after": after}}
    return page


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def retry_policy(no_sleep):
    return RetryPolicy(max_retries=3, base_delay=1.0, jitter_ratio=0.5, sleep=no_sleep, rng=lambda: 0.0)


@pytest.fixture
def make_settings():
    def _make(**overrides):
        return Settings(_env_file=None, **overrides)
    return _make
