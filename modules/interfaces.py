"""
Collaborator interfaces consumed by the fetch components

The concrete adapters live in google_ads_client, hubspot_client and
sheets_writer; tests substitute in-memory fakes.
"""
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence


class AdsReportSource(Protocol):
    """Streaming report query against the ads platform"""

    def report_stream(self, query: "ReportQuery") -> AsyncIterator[Dict[str, Any]]:
        """Yield rows as dicts keyed by dotted field path (``campaign.id``)"""
        ...


class CRMSource(Protocol):
    """The CRM endpoints the pipeline reads"""

    async def search_contacts(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """``{filterGroups, properties, limit, after}`` -> ``{results, paging.next.after}``"""
        ...

    async def get_associations(self, from_type: str, from_id: str, to_type: str) -> Dict[str, Any]:
        """-> ``{results: [{toObjectId}]}``"""
        ...

    async def batch_read(self, object_type: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """``{inputs: [{id}], properties}`` -> ``{results}``"""
        ...

    async def get_engagement(self, engagement_id: str) -> Dict[str, Any]:
        ...

    async def get_campaign(self, campaign_id: str) -> Dict[str, Any]:
        ...


class SheetSink(Protocol):
    """Replaces one tab of the output spreadsheet"""

    async def write(self, rows: Sequence[Sequence[Any]], sheet_name: str, headers: Sequence[str]) -> None:
        ...


@dataclass(frozen=True)
class ReportQuery:
    """Ads platform report request"""
    entity: str
    attributes: Sequence[str]
    metrics: Sequence[str] = ()
    date_ranges: Sequence[Sequence[str]] = ()
    constraints: Sequence[str] = ()
    limit: Optional[int] = None

    @property
    def fields(self) -> List[str]:
        return list(self.attributes) + list(self.metrics)

    def to_gaql(self) -> str:
        """Render as a Google Ads Query Language statement"""
        conditions = [
            f"segments.date BETWEEN '{start}' AND '{end}'"
            for start, end in self.date_ranges
        ]
        conditions.extend(self.constraints)

        query = f"SELECT {', '.join(self.fields)} FROM {self.entity}"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        if self.limit:
            query += f" LIMIT {self.limit}"
        return query


@dataclass(frozen=True)
class CRMCapabilities:
    """Which CRM features the configured token can use, decided once at startup"""
    contact_search: bool = True
    associations: bool = True
    batch_read: bool = True
    engagements: bool = True
    campaigns: bool = True

    def to_dict(self) -> Dict[str, bool]:
        return {
            "contact_search": self.contact_search,
            "associations": self.associations,
            "batch_read": self.batch_read,
            "engagements": self.engagements,
            "campaigns": self.campaigns,
        }
