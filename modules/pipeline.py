"""
Sync Pipeline Module

Orchestrates one run: fetch campaigns, conversions and form submissions
concurrently (a failed stage never cancels the others), read and classify
the deals behind the form contacts, aggregate, then rewrite each output
sheet one after another.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from config import (
    DATA_TYPE_GOOGLE_ADS,
    DATA_TYPE_HUBSPOT_FORMS,
    DATA_TYPE_USER_CONVERSIONS,
    Settings,
)
from models.sync_records import Campaign, ConversionEvent, DealDetails, FormSubmissionRecord
from modules.ads_reports import (
    ACTIVE_AND_PAUSED_STATUSES,
    ACTIVE_STATUSES,
    CampaignFetcher,
    ConversionFetcher,
)
from modules.aggregation import AggregationResult, aggregate
from modules.crm_sync import (
    AssociationResolver,
    ContactSearcher,
    DealBatchReader,
    FormSubmissionCollector,
)
from modules.date_ranges import (
    clamp_to_ads_window,
    contact_created_after,
    last_n_days,
    year_to_date,
)
from modules.google_ads_client import GoogleAdsReportClient
from modules.hubspot_client import HubSpotCRMClient
from modules.interfaces import AdsReportSource, CRMCapabilities, CRMSource, SheetSink
from modules.logging_utils import LogContext, log_with_context, with_correlation_id
from modules.retry_policy import RetryPolicy
from modules.sheets_writer import (
    CAMPAIGN_DEALS_HEADERS,
    CAMPAIGN_DEALS_SHEET,
    CAMPAIGN_HEADERS,
    FORM_DEALS_HEADERS,
    FORM_DEALS_SHEET,
    FORM_SUBMISSIONS_HEADERS,
    FORM_SUBMISSIONS_SHEET,
    GoogleSheetsSink,
    USER_CONVERSIONS_HEADERS,
    USER_CONVERSIONS_SHEET,
    campaign_deal_rows,
    campaign_rows,
    conversion_rows,
    form_deal_rows,
    form_submission_rows,
)


YEAR_TO_DATE = "year_to_date"
LOOKBACK_DAYS = 30


@dataclass
class SyncContext:
    """Clients and policies built once per process and reused across runs"""
    settings: Settings
    ads: Optional[AdsReportSource] = None
    crm: Optional[CRMSource] = None
    capabilities: CRMCapabilities = field(default_factory=CRMCapabilities)
    sink: Optional[SheetSink] = None
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: Callable = asyncio.sleep


@dataclass
class PipelineReport:
    """Outcome of one run; partial failures are recorded, not raised"""
    mode: str
    stage_counts: Dict[str, int] = field(default_factory=dict)
    sheets_written: List[str] = field(default_factory=list)
    sheets_failed: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "stage_counts": dict(self.stage_counts),
            "sheets_written": list(self.sheets_written),
            "sheets_failed": dict(self.sheets_failed),
            "warnings": list(self.warnings),
        }


def _init_client(name: str, configured: bool, factory: Callable[[], Any]) -> Optional[Any]:
    if not configured:
        logger.warning(f"{name} credentials not configured; the {name} stages will be skipped")
        return None
    try:
        return factory()
    except Exception as e:
        logger.error(f"Failed to initialize {name} client, skipping its stages: {e}")
        return None


def build_context(settings: Settings) -> SyncContext:
    """Construct every client once; a client that fails to start is left as None"""
    ads = _init_client("Google Ads", settings.google_ads_configured,
                       lambda: GoogleAdsReportClient.from_settings(settings))
    crm = _init_client("HubSpot", settings.hubspot_configured,
                       lambda: HubSpotCRMClient.from_settings(settings))
    sink = _init_client("Google Sheets", settings.sheets_configured,
                        lambda: GoogleSheetsSink.from_settings(settings))

    capabilities = crm.capabilities() if crm is not None else CRMCapabilities(
        contact_search=False, associations=False, batch_read=False, engagements=False, campaigns=False
    )
    retry_policy = RetryPolicy(
        max_retries=settings.retry_max_retries,
        base_delay=settings.retry_base_delay_seconds,
        jitter_ratio=settings.retry_jitter_ratio,
    )
    return SyncContext(
        settings=settings,
        ads=ads,
        crm=crm,
        capabilities=capabilities,
        sink=sink,
        retry_policy=retry_policy,
    )


class SyncPipeline:
    """One sync run over a prebuilt context"""

    def __init__(self, context: SyncContext, today: Optional[date] = None, now: Optional[datetime] = None):
        self.context = context
        self.settings = context.settings
        self.today = today or date.today()
        self.now = now or datetime.now(timezone.utc)
        self.data_types = set(self.settings.enabled_data_types)

    @property
    def mode(self) -> str:
        return self.settings.sync_mode

    def campaign_window(self):
        if self.mode == YEAR_TO_DATE:
            return year_to_date(self.today)
        return last_n_days(LOOKBACK_DAYS, self.today)

    # Stages

    @with_correlation_id
    async def fetch_campaigns(self) -> List[Campaign]:
        fetcher = CampaignFetcher(
            self.context.ads, self.context.retry_policy, self.settings.cost_micros_divisor
        )
        start, end = self.campaign_window()
        if self.mode == YEAR_TO_DATE:
            return await fetcher.fetch_windowed(start, end, ACTIVE_AND_PAUSED_STATUSES)
        return await fetcher.fetch(start, end, ACTIVE_STATUSES)

    @with_correlation_id
    async def fetch_conversions(self) -> List[ConversionEvent]:
        start, end = clamp_to_ads_window(*self.campaign_window(), today=self.today)
        fetcher = ConversionFetcher(self.context.ads, self.context.retry_policy)
        return await fetcher.fetch(start, end)

    def _associations(self) -> AssociationResolver:
        return AssociationResolver(self.context.crm, self.context.retry_policy)

    @with_correlation_id
    async def fetch_form_submissions(self) -> List[FormSubmissionRecord]:
        searcher = ContactSearcher(
            self.context.crm,
            self.context.retry_policy,
            page_size=self.settings.crm_page_size,
            page_delay=self.settings.crm_page_delay_seconds,
            max_records=self.settings.crm_max_records,
            sleep=self.context.sleep,
        )
        collector = FormSubmissionCollector(
            self.context.crm, searcher, self._associations(),
            self.context.retry_policy, self.context.capabilities,
        )
        return await collector.collect(
            contact_created_after(self.mode, self.now),
            require_deals=self.settings.hubspot_require_associated_deals,
        )

    async def read_deals(self, records: List[FormSubmissionRecord]) -> Dict[str, DealDetails]:
        deal_ids = [deal_id for record in records for deal_id in record.deal_ids]
        if not deal_ids:
            return {}
        if not self.context.capabilities.batch_read:
            logger.warning("Deal batch read is not available for this token; deal counts will be empty")
            return {}
        reader = DealBatchReader(
            self.context.crm,
            self.context.retry_policy,
            self._associations(),
            won_stage_id=self.settings.hubspot_deal_stage_closed_won,
            lost_stage_id=self.settings.hubspot_deal_stage_closed_lost,
            batch_size=self.settings.deal_batch_size,
            resolve_campaigns=(
                DATA_TYPE_GOOGLE_ADS in self.data_types
                and self.context.ads is not None
                and self.context.capabilities.campaigns
            ),
        )
        return await reader.read_batch(deal_ids)

    def _stages(self, report: PipelineReport) -> Dict[str, Any]:
        stages = {}
        if DATA_TYPE_GOOGLE_ADS in self.data_types:
            if self.context.ads is None:
                report.warn("Skipping googleAds: Google Ads client not initialized")
            else:
                stages[DATA_TYPE_GOOGLE_ADS] = self.fetch_campaigns()
        if DATA_TYPE_USER_CONVERSIONS in self.data_types:
            if self.context.ads is None:
                report.warn("Skipping userConversions: Google Ads client not initialized")
            else:
                stages[DATA_TYPE_USER_CONVERSIONS] = self.fetch_conversions()
        if DATA_TYPE_HUBSPOT_FORMS in self.data_types:
            if self.context.crm is None or not self.context.capabilities.contact_search:
                report.warn("Skipping hubspotForms: HubSpot client not initialized")
            else:
                stages[DATA_TYPE_HUBSPOT_FORMS] = self.fetch_form_submissions()
        return stages

    async def _run_stages(self, report: PipelineReport) -> Dict[str, List]:
        stages = self._stages(report)
        outcomes = await asyncio.gather(*stages.values(), return_exceptions=True)

        results = {}
        for name, outcome in zip(stages, outcomes):
            if isinstance(outcome, BaseException):
                report.warn(f"Stage {name} failed: {outcome}")
                results[name] = []
            else:
                results[name] = outcome
            report.stage_counts[name] = len(results[name])
        return results

    def _sheets(self, results: Dict[str, List], aggregation: Optional[AggregationResult],
                report: PipelineReport):
        """Sheets to rewrite; a data set with no rows leaves its sheets as they were"""
        sheets = []
        campaigns = results.get(DATA_TYPE_GOOGLE_ADS)
        conversions = results.get(DATA_TYPE_USER_CONVERSIONS)
        forms = results.get(DATA_TYPE_HUBSPOT_FORMS)

        if campaigns:
            sheets.append((self.settings.default_sheet_name, CAMPAIGN_HEADERS, campaign_rows(campaigns)))
        elif campaigns is not None:
            report.warn(f"No Google Ads campaigns to write; '{self.settings.default_sheet_name}' left unchanged")

        if conversions:
            sheets.append((USER_CONVERSIONS_SHEET, USER_CONVERSIONS_HEADERS, conversion_rows(conversions)))
        elif conversions is not None:
            report.warn(f"No user conversions to write; '{USER_CONVERSIONS_SHEET}' left unchanged")

        if forms:
            sheets.append((FORM_SUBMISSIONS_SHEET, FORM_SUBMISSIONS_HEADERS, form_submission_rows(forms)))
            sheets.append((FORM_DEALS_SHEET, FORM_DEALS_HEADERS, form_deal_rows(aggregation.form_rows)))
        elif forms is not None:
            report.warn(
                f"No form submissions to write; '{FORM_SUBMISSIONS_SHEET}' and '{FORM_DEALS_SHEET}' left unchanged"
            )

        if forms and campaigns:
            sheets.append((CAMPAIGN_DEALS_SHEET, CAMPAIGN_DEALS_HEADERS,
                           campaign_deal_rows(aggregation.campaign_rows)))
        elif forms is not None and campaigns is not None:
            report.warn(f"No campaigns or form submissions to match; '{CAMPAIGN_DEALS_SHEET}' left unchanged")
        return sheets

    async def write_sheets(self, sheets, report: PipelineReport) -> None:
        if self.context.sink is None:
            report.warn("Google Sheets client not initialized; nothing written")
            return
        for sheet_name, headers, rows in sheets:
            try:
                await self.context.sink.write(rows, sheet_name, headers)
                report.sheets_written.append(sheet_name)
            except Exception as e:
                logger.error(f"Error writing sheet '{sheet_name}': {e}")
                report.sheets_failed[sheet_name] = str(e)

    async def run(self) -> PipelineReport:
        report = PipelineReport(mode=self.mode)
        with LogContext("sync pipeline"):
            logger.info(f"Running sync in {self.mode} mode for {', '.join(sorted(self.data_types))}")
            results = await self._run_stages(report)

            aggregation = None
            if DATA_TYPE_HUBSPOT_FORMS in results:
                deals = await self.read_deals(results[DATA_TYPE_HUBSPOT_FORMS])
                report.stage_counts["deals"] = len(deals)
                aggregation = aggregate(
                    results.get(DATA_TYPE_GOOGLE_ADS, []), deals, results[DATA_TYPE_HUBSPOT_FORMS]
                )

            await self.write_sheets(self._sheets(results, aggregation, report), report)
            log_with_context(
                "info",
                f"Sync finished: {len(report.sheets_written)} sheet(s) written, "
                f"{len(report.sheets_failed)} failed, {len(report.warnings)} warning(s)",
                mode=self.mode,
            )
        return report
