"""
Configuration module for the Ads/CRM to Sheets sync job
"""
from pydantic_settings import BaseSettings
from pydantic import field_validator, Field
from typing import List, Literal
import os


DATA_TYPE_GOOGLE_ADS = "googleAds"
DATA_TYPE_USER_CONVERSIONS = "userConversions"
DATA_TYPE_HUBSPOT_FORMS = "hubspotForms"
ALL_DATA_TYPES = (DATA_TYPE_GOOGLE_ADS, DATA_TYPE_USER_CONVERSIONS, DATA_TYPE_HUBSPOT_FORMS)


class Settings(BaseSettings):
    """Application settings loaded from environment variables with validation"""

    # Google Ads
    google_ads_client_id: str = ""
    google_ads_client_secret: str = ""
    google_ads_developer_token: str = ""
    google_ads_refresh_token: str = ""
    google_ads_customer_id: str = ""
    google_ads_login_customer_id: str = ""

    # HubSpot
    hubspot_private_app_token: str = ""
    hubspot_deal_stage_closed_won: str = "closedwon"
    hubspot_deal_stage_closed_lost: str = "closedlost"
    hubspot_engagements_enabled: bool = True
    hubspot_require_associated_deals: bool = False

    # Google Sheets
    google_sheets_id: str = ""
    google_sheets_client_id: str = ""
    google_sheets_client_secret: str = ""
    google_sheets_refresh_token: str = ""
    google_service_account_json: str = ""

    # Pipeline
    data_types: str = ",".join(ALL_DATA_TYPES)
    default_sheet_name: str = "Google Ads Campaigns"
    sync_mode: Literal["last_30_days", "year_to_date"] = "last_30_days"
    cost_micros_divisor: int = Field(default=1_000_000, gt=0)

    # Retry / paging
    retry_max_retries: int = Field(default=3, ge=0, le=10)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_jitter_ratio: float = Field(default=0.5, ge=0, le=1)
    crm_page_size: int = Field(default=100, ge=1, le=100)
    crm_page_delay_seconds: float = Field(default=0.5, ge=0)
    crm_max_records: int = Field(default=10_000, ge=1)
    deal_batch_size: int = Field(default=100, ge=1, le=100)

    # Logging
    log_level: str = Field(default="INFO", pattern=r'^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$')
    log_file_path: str = ""

    @field_validator('hubspot_private_app_token', 'google_ads_developer_token', 'google_ads_refresh_token')
    @classmethod
    def validate_api_keys(cls, v: str) -> str:
        """Validate credentials are not placeholder values"""
        if v and ('your_' in v.lower() or '_here' in v.lower()):
            raise ValueError('Credential appears to be a placeholder. Please provide a valid value.')
        return v.strip()

    @field_validator('google_ads_customer_id', 'google_ads_login_customer_id')
    @classmethod
    def normalize_customer_id(cls, v: str) -> str:
        """Google Ads expects customer IDs without dashes"""
        return v.replace("-", "").strip()

    @field_validator('log_file_path')
    @classmethod
    def validate_log_path(cls, v: str) -> str:
        """Ensure log directory exists"""
        log_dir = os.path.dirname(v)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)
        return v

    @property
    def enabled_data_types(self) -> List[str]:
        return [t.strip() for t in self.data_types.split(",") if t.strip()]

    @property
    def google_ads_configured(self) -> bool:
        return bool(
            self.google_ads_client_id
            and self.google_ads_client_secret
            and self.google_ads_developer_token
            and self.google_ads_refresh_token
            and self.google_ads_customer_id
        )

    @property
    def hubspot_configured(self) -> bool:
        return bool(self.hubspot_private_app_token)

    @property
    def sheets_configured(self) -> bool:
        has_oauth = bool(
            self.google_sheets_client_id
            and self.google_sheets_client_secret
            and self.google_sheets_refresh_token
        )
        return bool(self.google_sheets_id and (has_oauth or self.google_service_account_json))

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"
    }


# Global settings instance
settings = Settings()
