"""
Data models for the records flowing through one sync run
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum


NOT_AVAILABLE = "N/A"
FORM_NOT_FOUND = "Formulário Não Encontrado"
DEAL_FETCH_ERROR_NAME = "Erro ao Buscar Nome"
CAMPAIGN_NAME_UNAVAILABLE = "ID: {campaign_id} (Nome Indisponível)"


class DealBucket(str, Enum):
    """CRM deal lifecycle buckets"""
    OPEN = "open"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


class FormNameOrigin(str, Enum):
    """Where a resolved form name came from, in priority order"""
    ENGAGEMENT = "engagement"
    CONTACT_PROPERTY = "contact_property"
    SOURCE_HEURISTIC = "source_heuristic"
    NOT_FOUND = "not_found"


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _to_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class Campaign(BaseModel):
    """One row of the ads platform campaign report"""
    id: str
    name: str
    network: str
    cost: Decimal = Decimal("0")
    clicks: int = 0
    impressions: int = 0
    conversions: float = 0.0
    status: str = "UNKNOWN"

    model_config = {"frozen": True}


class ConversionEvent(BaseModel):
    """A click matched to a campaign on a given day"""
    date: str
    campaign_id: str
    click_id: str

    model_config = {"frozen": True}


class Contact(BaseModel):
    """CRM contact as returned by the contact search"""
    id: str
    email: Optional[str] = None
    creation_date: Optional[str] = None
    source_label: Optional[str] = None
    form_name: Optional[str] = None
    first_conversion_event_name: Optional[str] = None
    associated_deal_count: int = 0
    gclid: Optional[str] = None
    analytics_source: Optional[str] = None
    analytics_source_data_1: Optional[str] = None
    analytics_source_data_2: Optional[str] = None

    @classmethod
    def from_crm(cls, record: Dict[str, Any]) -> "Contact":
        props = record.get("properties") or {}
        return cls(
            id=str(record["id"]),
            email=props.get("email") or None,
            creation_date=props.get("createdate") or None,
            source_label=props.get("hs_object_source_label") or None,
            form_name=props.get("form_name") or None,
            first_conversion_event_name=props.get("first_conversion_event_name") or None,
            associated_deal_count=_to_int(props.get("num_associated_deals")),
            gclid=props.get("gclid") or None,
            analytics_source=props.get("hs_analytics_source") or None,
            analytics_source_data_1=props.get("hs_analytics_source_data_1") or None,
            analytics_source_data_2=props.get("hs_analytics_source_data_2") or None,
        )


class Engagement(BaseModel):
    """CRM timeline event associated with a contact"""
    id: str
    type: Optional[str] = None
    created_at: int = 0
    form_id: Optional[str] = None
    form_title: Optional[str] = None
    body: Optional[str] = None

    @classmethod
    def from_crm(cls, record: Dict[str, Any]) -> "Engagement":
        """Parse the legacy engagement payload ({engagement, metadata, properties?})"""
        engagement = record.get("engagement") or {}
        metadata = record.get("metadata") or {}
        properties = record.get("properties") or {}
        return cls(
            id=str(engagement.get("id") or record.get("id") or ""),
            type=_to_str(engagement.get("type") or record.get("type")),
            created_at=_to_int(engagement.get("createdAt") or engagement.get("timestamp")),
            form_id=_to_str(metadata.get("formId") or properties.get("hs_form_id")),
            form_title=_to_str(metadata.get("title") or metadata.get("formTitle") or properties.get("hs_form_title")),
            body=_to_str(engagement.get("bodyPreview") or engagement.get("body") or metadata.get("body")),
        )


class DealDetails(BaseModel):
    """Deal properties plus the names of its associated marketing campaigns"""
    id: str
    name: str
    stage: Optional[str] = None
    bucket: Optional[DealBucket] = None
    campaign_names: List[str] = Field(default_factory=list)
    fetch_failed: bool = False

    @property
    def is_open(self) -> bool:
        return self.bucket == DealBucket.OPEN

    @property
    def is_closed_won(self) -> bool:
        return self.bucket == DealBucket.CLOSED_WON

    @property
    def is_closed_lost(self) -> bool:
        return self.bucket == DealBucket.CLOSED_LOST

    @classmethod
    def placeholder(cls, deal_id: str) -> "DealDetails":
        """Stand-in for a deal whose batch read failed; counts in no bucket"""
        return cls(id=str(deal_id), name=DEAL_FETCH_ERROR_NAME, fetch_failed=True)


class FormSubmissionRecord(BaseModel):
    """A form-sourced contact with its resolved form name and deals"""
    contact_id: str
    email: str = NOT_AVAILABLE
    original_source: str = NOT_AVAILABLE
    source_detail: str = NOT_AVAILABLE
    form_name: str = FORM_NOT_FOUND
    form_name_origin: FormNameOrigin = FormNameOrigin.NOT_FOUND
    gclid: str = NOT_AVAILABLE
    timestamp: str = NOT_AVAILABLE
    record_source: str = NOT_AVAILABLE
    associated_deal_count: int = 0
    deal_ids: List[str] = Field(default_factory=list)

    @field_validator('form_name', mode='before')
    @classmethod
    def validate_form_name(cls, v: Optional[str]) -> str:
        """Never leave the grouping key empty"""
        if v is None or not v.strip():
            return FORM_NOT_FOUND
        return v.strip()


class AggregationRow(BaseModel):
    """Deal counts for one campaign or one form"""
    key: str
    network: Optional[str] = None
    cost: Optional[Decimal] = None
    contact_count: int = 0
    open_count: int = Field(default=0, ge=0)
    closed_won_count: int = Field(default=0, ge=0)
    closed_lost_count: int = Field(default=0, ge=0)
