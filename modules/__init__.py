"""Modules package for the Ads/CRM to Sheets sync job"""
from .retry_policy import RetryPolicy
from .ads_reports import CampaignFetcher, ConversionFetcher
from .crm_sync import (
    ContactSearcher,
    AssociationResolver,
    DealBatchReader,
    FormSubmissionCollector,
    classify_stage
)
from .form_inference import resolve_form_name
from .aggregation import aggregate
from .pipeline import SyncContext, SyncPipeline, PipelineReport, build_context

__all__ = [
    'RetryPolicy',
    'CampaignFetcher',
    'ConversionFetcher',
    'ContactSearcher',
    'AssociationResolver',
    'DealBatchReader',
    'FormSubmissionCollector',
    'classify_stage',
    'resolve_form_name',
    'aggregate',
    'SyncContext',
    'SyncPipeline',
    'PipelineReport',
    'build_context'
]
