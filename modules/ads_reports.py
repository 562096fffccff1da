"""
Ads Platform Report Module

This module handles:
- Campaign performance reports (cost, clicks, impressions, conversions)
- Click-level conversion events, queried one day at a time
- Network type and campaign status code mapping
- Cost conversion from micro-units
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Tuple
from loguru import logger

from models.sync_records import Campaign, ConversionEvent, NOT_AVAILABLE
from modules.date_ranges import chunk_date_range, days_between, format_date
from modules.interfaces import AdsReportSource, ReportQuery
from modules.retry_policy import RetryPolicy


DEFAULT_COST_MICROS_DIVISOR = 1_000_000
CENTS = Decimal("0.01")

NETWORK_LABELS = {
    0: "Unspecified",
    1: "Unknown",
    2: "Search",
    3: "Search",
    4: "Display",
    5: "YouTube",
    6: "YouTube",
    7: "Cross-network",
    8: "YouTube",
}

NETWORK_NAME_LABELS = {
    "UNSPECIFIED": "Unspecified",
    "UNKNOWN": "Unknown",
    "SEARCH": "Search",
    "SEARCH_PARTNERS": "Search",
    "CONTENT": "Display",
    "YOUTUBE_SEARCH": "YouTube",
    "YOUTUBE_WATCH": "YouTube",
    "YOUTUBE": "YouTube",
    "MIXED": "Cross-network",
}

CAMPAIGN_STATUS_LABELS = {
    0: "UNSPECIFIED",
    1: "UNKNOWN",
    2: "ENABLED",
    3: "PAUSED",
    4: "REMOVED",
}

ACTIVE_STATUSES = ("ENABLED",)
ACTIVE_AND_PAUSED_STATUSES = ("ENABLED", "PAUSED")

CAMPAIGN_ATTRIBUTES = (
    "campaign.id",
    "campaign.name",
    "campaign.status",
    "segments.ad_network_type",
    "metrics.clicks",
    "metrics.impressions",
    "metrics.conversions",
)
CAMPAIGN_METRICS = ("metrics.cost_micros",)

CONVERSION_ATTRIBUTES = (
    "segments.date",
    "campaign.id",
    "click_view.gclid",
)


def map_network_type(code: Any) -> str:
    """Human label for an ad network type; unmapped codes never fail"""
    if code is None:
        return NETWORK_LABELS[0]
    if isinstance(code, str) and not code.isdigit():
        return NETWORK_NAME_LABELS.get(code.upper(), f"UNKNOWN_VALUE_{code}")
    try:
        numeric = int(code)
    except (TypeError, ValueError):
        return f"UNKNOWN_VALUE_{code}"
    return NETWORK_LABELS.get(numeric, f"UNKNOWN_VALUE_{numeric}")


def map_campaign_status(code: Any) -> str:
    if isinstance(code, str) and not code.isdigit():
        return code.upper()
    try:
        return CAMPAIGN_STATUS_LABELS.get(int(code), f"UNKNOWN_VALUE_{code}")
    except (TypeError, ValueError):
        return "UNKNOWN"


def micros_to_currency(cost_micros: Any, divisor: int = DEFAULT_COST_MICROS_DIVISOR) -> Decimal:
    """Convert micro-units to currency units, rounded to cents"""
    micros = Decimal(str(cost_micros or 0))
    return (micros / Decimal(divisor)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _number(value: Any, cast=int):
    try:
        return cast(value or 0)
    except (TypeError, ValueError):
        return cast(0)


async def _collect_rows(ads: AdsReportSource, query: ReportQuery) -> List[Dict[str, Any]]:
    """The report stream is single-pass; drain it into memory"""
    return [row async for row in ads.report_stream(query)]


class CampaignFetcher:
    """Fetches the campaign performance report and normalizes its rows"""

    def __init__(self, ads: AdsReportSource, retry_policy: RetryPolicy,
                 cost_divisor: int = DEFAULT_COST_MICROS_DIVISOR):
        self.ads = ads
        self.retry_policy = retry_policy
        self.cost_divisor = cost_divisor

    def build_query(self, start_date: date, end_date: date, statuses: Sequence[str]) -> ReportQuery:
        status_list = ", ".join(f"'{s}'" for s in statuses)
        return ReportQuery(
            entity="campaign",
            attributes=CAMPAIGN_ATTRIBUTES,
            metrics=CAMPAIGN_METRICS,
            date_ranges=[(format_date(start_date), format_date(end_date))],
            constraints=[f"campaign.status IN ({status_list})"],
        )

    def to_campaign(self, row: Dict[str, Any]) -> Campaign:
        return Campaign(
            id=str(row.get("campaign.id")),
            name=str(row.get("campaign.name") or NOT_AVAILABLE),
            network=map_network_type(row.get("segments.ad_network_type")),
            cost=micros_to_currency(row.get("metrics.cost_micros"), self.cost_divisor),
            clicks=_number(row.get("metrics.clicks")),
            impressions=_number(row.get("metrics.impressions")),
            conversions=_number(row.get("metrics.conversions"), float),
            status=map_campaign_status(row.get("campaign.status")),
        )

    async def fetch(self, start_date: date, end_date: date,
                    statuses: Sequence[str] = ACTIVE_STATUSES) -> List[Campaign]:
        """
        Fetch campaigns for one window

        Any error is logged and an empty list returned, so downstream steps
        see "no campaigns" rather than a failure.
        """
        query = self.build_query(start_date, end_date, statuses)
        logger.info(f"Fetching campaigns from {format_date(start_date)} to {format_date(end_date)} ({', '.join(statuses)})")
        try:
            rows = await self.retry_policy.call(
                _collect_rows, self.ads, query, description="campaign report"
            )
            campaigns = [self.to_campaign(row) for row in rows]
        except Exception as e:
            logger.error(f"Error fetching campaigns from ads platform: {e}")
            return []

        logger.info(f"Fetched {len(campaigns)} campaign rows")
        return campaigns

    async def fetch_windowed(self, start_date: date, end_date: date,
                             statuses: Sequence[str] = ACTIVE_STATUSES) -> List[Campaign]:
        """Fetch a range longer than the platform window, one chunk at a time"""
        chunks = chunk_date_range(start_date, end_date)
        if len(chunks) == 1:
            return await self.fetch(start_date, end_date, statuses)

        windows = []
        for chunk_start, chunk_end in chunks:
            windows.append(await self.fetch(chunk_start, chunk_end, statuses))
        return merge_campaign_windows(windows)


def merge_campaign_windows(windows: Sequence[Sequence[Campaign]]) -> List[Campaign]:
    """Sum metrics of the same campaign/network row across date windows"""
    merged: Dict[Tuple[str, str], Campaign] = {}
    for window in windows:
        for campaign in window:
            key = (campaign.id, campaign.network)
            existing = merged.get(key)
            if existing is None:
                merged[key] = campaign
                continue
            merged[key] = existing.model_copy(update={
                "cost": existing.cost + campaign.cost,
                "clicks": existing.clicks + campaign.clicks,
                "impressions": existing.impressions + campaign.impressions,
                "conversions": existing.conversions + campaign.conversions,
                "name": campaign.name,
                "status": campaign.status,
            })
    return list(merged.values())


class ConversionFetcher:
    """Fetches click-level conversion rows one calendar day at a time"""

    def __init__(self, ads: AdsReportSource, retry_policy: RetryPolicy):
        self.ads = ads
        self.retry_policy = retry_policy

    @staticmethod
    def build_query(day: date) -> ReportQuery:
        return ReportQuery(
            entity="click_view",
            attributes=CONVERSION_ATTRIBUTES,
            constraints=[f"segments.date = '{format_date(day)}'"],
        )

    @staticmethod
    def to_event(row: Dict[str, Any], day: date) -> ConversionEvent:
        return ConversionEvent(
            date=str(row.get("segments.date") or format_date(day)),
            campaign_id=str(row.get("campaign.id") or NOT_AVAILABLE),
            click_id=str(row.get("click_view.gclid") or NOT_AVAILABLE),
        )

    async def fetch(self, start_date: date, end_date: date) -> List[ConversionEvent]:
        """
        Accumulate conversion events across the range, ascending by date

        A failed day is logged and skipped; it contributes no rows.
        """
        events: List[ConversionEvent] = []
        skipped: List[str] = []

        for day in days_between(start_date, end_date):
            day_label = format_date(day)
            try:
                rows = await self.retry_policy.call(
                    _collect_rows, self.ads, self.build_query(day),
                    description=f"click report {day_label}"
                )
            except Exception as e:
                logger.warning(f"Skipping conversions for {day_label}: {e}")
                skipped.append(day_label)
                continue

            events.extend(self.to_event(row, day) for row in rows)
            logger.debug(f"{len(events)} conversion rows accumulated after {day_label}")

        if skipped:
            logger.warning(f"Conversion fetch skipped {len(skipped)} day(s): {', '.join(skipped)}")
        logger.info(f"Fetched {len(events)} conversion rows")
        return events
