"""
CRM Sync Module

This module handles:
- Paginated contact search for form-sourced contacts
- Per-contact association lookups (deals, engagements)
- Batched deal reads with stage classification
- Campaign name resolution for deals
- Form submission records with resolved form names
"""
import asyncio
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from models.sync_records import (
    CAMPAIGN_NAME_UNAVAILABLE,
    Contact,
    DealBucket,
    DealDetails,
    Engagement,
    FormNameOrigin,
    FormSubmissionRecord,
    NOT_AVAILABLE,
)
from modules.date_ranges import to_crm_timestamp
from modules.exceptions import MalformedResponseError
from modules.form_inference import resolve_form_name
from modules.interfaces import CRMCapabilities, CRMSource
from modules.retry_policy import RetryPolicy


CONTACTS = "contacts"
DEALS = "deals"
ENGAGEMENTS = "engagements"
CAMPAIGNS = "campaigns"

CLOSED_WON_STAGE = "closedwon"
CLOSED_LOST_STAGE = "closedlost"

CONTACT_PROPERTIES = [
    "createdate",
    "email",
    "gclid",
    "hs_analytics_source",
    "hs_analytics_source_data_1",
    "hs_analytics_source_data_2",
    "hs_object_source_label",
    "form_name",
    "first_conversion_event_name",
    "num_associated_deals",
]

DEAL_PROPERTIES = ["dealname", "dealstage", "pipeline", "amount"]


def build_contact_filters(created_after: datetime, require_deals: bool = False) -> List[Dict[str, str]]:
    """Search predicates for form-sourced contacts created since ``created_after``"""
    filters = [
        {"propertyName": "hs_object_source_label", "operator": "EQ", "value": "FORM"},
        {"propertyName": "createdate", "operator": "GTE", "value": to_crm_timestamp(created_after)},
    ]
    if require_deals:
        filters.append({"propertyName": "num_associated_deals", "operator": "GT", "value": "0"})
    return filters


def classify_stage(stage: Optional[str], won_stage_id: str = CLOSED_WON_STAGE,
                   lost_stage_id: str = CLOSED_LOST_STAGE) -> DealBucket:
    """Won is checked first, then lost; anything else is open"""
    value = (stage or "").strip()
    if value and value in (CLOSED_WON_STAGE, won_stage_id):
        return DealBucket.CLOSED_WON
    if value and value in (CLOSED_LOST_STAGE, lost_stage_id):
        return DealBucket.CLOSED_LOST
    return DealBucket.OPEN


def _chunks(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _next_cursor(response: Dict[str, Any]) -> Optional[str]:
    paging = response.get("paging") or {}
    next_page = paging.get("next") or {}
    after = next_page.get("after")
    return str(after) if after not in (None, "") else None


class ContactSearcher:
    """Pages through the contact search endpoint"""

    def __init__(
        self,
        crm: CRMSource,
        retry_policy: RetryPolicy,
        page_size: int = 100,
        page_delay: float = 0.5,
        max_records: int = 10_000,
        sleep=asyncio.sleep,
    ):
        self.crm = crm
        self.retry_policy = retry_policy
        self.page_size = page_size
        self.page_delay = page_delay
        self.max_records = max_records
        self._sleep = sleep

    def build_body(self, filters: List[Dict[str, str]], after: Optional[str] = None) -> Dict[str, Any]:
        body = {
            "filterGroups": [{"filters": filters}],
            "properties": CONTACT_PROPERTIES,
            "limit": self.page_size,
        }
        if after is not None:
            body["after"] = after
        return body

    async def iter_pages(self, filters: List[Dict[str, str]]) -> AsyncIterator[List[Contact]]:
        """
        Yield one list of contacts per page

        Pagination ends when the response carries no cursor, when a page
        fails after retries or comes back malformed, or when the record
        ceiling is reached. Pages already yielded are kept in every case.
        """
        after = None
        total = 0
        page_number = 0

        while True:
            page_number += 1
            try:
                response = await self.retry_policy.call(
                    self.crm.search_contacts, self.build_body(filters, after),
                    description=f"contact search page {page_number}"
                )
                if not isinstance(response, dict) or not isinstance(response.get("results"), list):
                    raise MalformedResponseError("contact search", "missing 'results' list")
            except Exception as e:
                logger.error(f"Stopping contact search at page {page_number}: {e}")
                return

            contacts = []
            for record in response["results"]:
                if not isinstance(record, dict) or "id" not in record:
                    logger.warning(f"Skipping contact without id on page {page_number}")
                    continue
                contacts.append(Contact.from_crm(record))

            remaining = self.max_records - total
            truncated = len(contacts) > remaining
            contacts = contacts[:remaining]
            total += len(contacts)
            logger.debug(f"Contact search page {page_number}: {len(contacts)} contacts ({total} total)")
            yield contacts

            after = _next_cursor(response)
            if truncated or (after is not None and total >= self.max_records):
                logger.warning(
                    f"Contact search reached the safety ceiling of {self.max_records} records; stopping"
                )
                return
            if after is None:
                return
            await self._sleep(self.page_delay)

    async def search(self, filters: List[Dict[str, str]]) -> List[Contact]:
        contacts: List[Contact] = []
        async for page in self.iter_pages(filters):
            contacts.extend(page)
        logger.info(f"Contact search returned {len(contacts)} contacts")
        return contacts


class AssociationResolver:
    """Resolves associated object IDs; a failed lookup means zero associations"""

    def __init__(self, crm: CRMSource, retry_policy: RetryPolicy):
        self.crm = crm
        self.retry_policy = retry_policy

    async def resolve_associations(self, from_id: str, to_type: str, from_type: str = CONTACTS) -> List[str]:
        try:
            response = await self.retry_policy.call(
                self.crm.get_associations, from_type, str(from_id), to_type,
                description=f"{from_type} {from_id} -> {to_type} associations"
            )
        except Exception as e:
            logger.warning(f"Treating {from_type} {from_id} as having no {to_type}: {e}")
            return []

        results = response.get("results") if isinstance(response, dict) else None
        if not isinstance(results, list):
            logger.warning(f"Malformed {to_type} associations for {from_type} {from_id}")
            return []

        ids = []
        for item in results:
            to_id = item.get("toObjectId") if isinstance(item, dict) else None
            if to_id is not None:
                ids.append(str(to_id))
        return ids

    async def resolve_many(self, from_ids: Sequence[str], to_type: str,
                           from_type: str = CONTACTS) -> Dict[str, List[str]]:
        """Concurrent lookups for one page of IDs"""
        results = await asyncio.gather(
            *(self.resolve_associations(from_id, to_type, from_type) for from_id in from_ids)
        )
        return dict(zip((str(i) for i in from_ids), results))


class DealBatchReader:
    """Reads deals in fixed-size batches and attaches their campaign names"""

    def __init__(
        self,
        crm: CRMSource,
        retry_policy: RetryPolicy,
        associations: AssociationResolver,
        won_stage_id: str = CLOSED_WON_STAGE,
        lost_stage_id: str = CLOSED_LOST_STAGE,
        batch_size: int = 100,
        resolve_campaigns: bool = True,
    ):
        self.crm = crm
        self.retry_policy = retry_policy
        self.associations = associations
        self.won_stage_id = won_stage_id
        self.lost_stage_id = lost_stage_id
        self.batch_size = batch_size
        self.resolve_campaigns = resolve_campaigns
        self._campaign_lookups: Dict[str, "asyncio.Future[Optional[str]]"] = {}

    async def _fetch_campaign_name(self, campaign_id: str) -> Optional[str]:
        try:
            response = await self.retry_policy.call(
                self.crm.get_campaign, campaign_id,
                description=f"campaign {campaign_id} lookup"
            )
        except Exception as e:
            logger.warning(f"Campaign {campaign_id} name unavailable: {e}")
            return None

        if not isinstance(response, dict):
            response = {}
        name = (response.get("properties") or {}).get("hs_name") or response.get("name")
        if not name:
            logger.warning(f"Campaign {campaign_id} has no name")
            return None
        return name

    async def campaign_name(self, campaign_id: str) -> str:
        """Name of one campaign; concurrent callers share a single lookup"""
        lookup = self._campaign_lookups.get(campaign_id)
        if lookup is None:
            lookup = asyncio.ensure_future(self._fetch_campaign_name(campaign_id))
            self._campaign_lookups[campaign_id] = lookup

        name = await lookup
        if name is None:
            # failed lookups are retried by later batches
            if self._campaign_lookups.get(campaign_id) is lookup:
                del self._campaign_lookups[campaign_id]
            return CAMPAIGN_NAME_UNAVAILABLE.format(campaign_id=campaign_id)
        return name

    async def campaign_names_for(self, deal_id: str) -> List[str]:
        if not self.resolve_campaigns:
            return []
        campaign_ids = await self.associations.resolve_associations(deal_id, CAMPAIGNS, from_type=DEALS)
        names = []
        for campaign_id in campaign_ids:
            names.append(await self.campaign_name(campaign_id))
        return names

    async def _to_details(self, record: Dict[str, Any]) -> DealDetails:
        deal_id = str(record["id"])
        props = record.get("properties") or {}
        stage = props.get("dealstage")
        return DealDetails(
            id=deal_id,
            name=props.get("dealname") or NOT_AVAILABLE,
            stage=stage,
            bucket=classify_stage(stage, self.won_stage_id, self.lost_stage_id),
            campaign_names=await self.campaign_names_for(deal_id),
        )

    async def read_batch(self, deal_ids: Iterable[str]) -> Dict[str, DealDetails]:
        """
        Map every requested deal ID to its details

        IDs from a failed chunk, or missing from a chunk's response, map to
        an error placeholder so callers never see a missing key.
        """
        unique_ids = list(dict.fromkeys(str(d) for d in deal_ids))
        deals: Dict[str, DealDetails] = {}

        for chunk in _chunks(unique_ids, self.batch_size):
            body = {"inputs": [{"id": deal_id} for deal_id in chunk], "properties": DEAL_PROPERTIES}
            try:
                response = await self.retry_policy.call(
                    self.crm.batch_read, DEALS, body,
                    description=f"deal batch read ({len(chunk)} ids)"
                )
                results = response.get("results") if isinstance(response, dict) else None
                if not isinstance(results, list):
                    raise MalformedResponseError("deal batch read", "missing 'results' list")
            except Exception as e:
                logger.error(f"Deal batch of {len(chunk)} failed, recording placeholders: {e}")
                for deal_id in chunk:
                    deals[deal_id] = DealDetails.placeholder(deal_id)
                continue

            records = [r for r in results if isinstance(r, dict) and r.get("id") is not None]
            details = await asyncio.gather(*(self._to_details(r) for r in records))
            for detail in details:
                deals[detail.id] = detail

            for deal_id in chunk:
                if deal_id not in deals:
                    logger.warning(f"Deal {deal_id} missing from batch response, recording placeholder")
                    deals[deal_id] = DealDetails.placeholder(deal_id)

        logger.info(f"Read {len(deals)} deals in batches of {self.batch_size}")
        return deals


class FormSubmissionCollector:
    """Builds form submission records for form-sourced contacts"""

    def __init__(
        self,
        crm: CRMSource,
        searcher: ContactSearcher,
        associations: AssociationResolver,
        retry_policy: RetryPolicy,
        capabilities: Optional[CRMCapabilities] = None,
    ):
        self.crm = crm
        self.searcher = searcher
        self.associations = associations
        self.retry_policy = retry_policy
        self.capabilities = capabilities or CRMCapabilities()

    async def fetch_engagement(self, engagement_id: str) -> Optional[Engagement]:
        try:
            response = await self.retry_policy.call(
                self.crm.get_engagement, engagement_id,
                description=f"engagement {engagement_id}"
            )
            if not isinstance(response, dict):
                return None
            return Engagement.from_crm(response)
        except Exception as e:
            logger.warning(f"Skipping engagement {engagement_id}: {e}")
            return None

    async def engagements_for(self, contact_id: str) -> List[Engagement]:
        if not self.capabilities.engagements:
            return []
        engagement_ids = await self.associations.resolve_associations(contact_id, ENGAGEMENTS)
        engagements = await asyncio.gather(*(self.fetch_engagement(e) for e in engagement_ids))
        return [e for e in engagements if e is not None]

    async def build_record(self, contact: Contact) -> FormSubmissionRecord:
        if self.capabilities.associations:
            deal_ids, engagements = await asyncio.gather(
                self.associations.resolve_associations(contact.id, DEALS),
                self.engagements_for(contact.id),
            )
        else:
            deal_ids, engagements = [], []

        form_name, origin = resolve_form_name(contact, engagements)
        return FormSubmissionRecord(
            contact_id=contact.id,
            email=contact.email or NOT_AVAILABLE,
            original_source=contact.analytics_source or NOT_AVAILABLE,
            source_detail=contact.analytics_source_data_1 or NOT_AVAILABLE,
            form_name=form_name,
            form_name_origin=origin,
            gclid=contact.gclid or NOT_AVAILABLE,
            timestamp=contact.creation_date or NOT_AVAILABLE,
            record_source=contact.source_label or NOT_AVAILABLE,
            associated_deal_count=contact.associated_deal_count,
            deal_ids=deal_ids,
        )

    async def collect(self, created_after: datetime, require_deals: bool = False) -> List[FormSubmissionRecord]:
        """Concurrent within a page, sequential across pages"""
        filters = build_contact_filters(created_after, require_deals)
        records: List[FormSubmissionRecord] = []

        async for page in self.searcher.iter_pages(filters):
            page_records = await asyncio.gather(*(self.build_record(c) for c in page))
            records.extend(page_records)

        inferred = sum(1 for r in records if r.form_name_origin != FormNameOrigin.NOT_FOUND)
        logger.info(f"Collected {len(records)} form submissions ({inferred} with a resolved form name)")
        return records
