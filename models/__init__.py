"""Models package for the Ads/CRM sync pipeline"""
from .sync_records import (
    NOT_AVAILABLE,
    FORM_NOT_FOUND,
    DEAL_FETCH_ERROR_NAME,
    CAMPAIGN_NAME_UNAVAILABLE,
    DealBucket,
    FormNameOrigin,
    Campaign,
    ConversionEvent,
    Contact,
    Engagement,
    DealDetails,
    FormSubmissionRecord,
    AggregationRow
)

__all__ = [
    'NOT_AVAILABLE',
    'FORM_NOT_FOUND',
    'DEAL_FETCH_ERROR_NAME',
    'CAMPAIGN_NAME_UNAVAILABLE',
    'DealBucket',
    'FormNameOrigin',
    'Campaign',
    'ConversionEvent',
    'Contact',
    'Engagement',
    'DealDetails',
    'FormSubmissionRecord',
    'AggregationRow'
]
