"""
Google Sheets Writer Module

This module handles:
- Credentials (OAuth refresh token or service account)
- Clearing and rewriting one tab of the output spreadsheet
- Sheet layouts: tab names, headers and row builders
"""
import asyncio
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from loguru import logger

from models.sync_records import (
    AggregationRow,
    Campaign,
    ConversionEvent,
    FormSubmissionRecord,
)
from modules.exceptions import ConfigurationError, SheetWriteError


SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
CLEAR_COLUMNS = "A:ZZ"

CAMPAIGN_DEALS_SHEET = "Campaign Deals"
USER_CONVERSIONS_SHEET = "User Conversions"
FORM_SUBMISSIONS_SHEET = "Form Submissions"
FORM_DEALS_SHEET = "Form Deals"

CAMPAIGN_HEADERS = [
    "Campaign ID", "Campaign Name", "Ad Network Type", "Cost (BRL)",
    "Clicks", "Impressions", "Conversions",
]
CAMPAIGN_DEALS_HEADERS = [
    "Campaign Name", "Ad Network Type", "Cost (BRL)",
    "Open Deals", "Closed Won Deals", "Closed Lost Deals",
]
USER_CONVERSIONS_HEADERS = ["Date", "Campaign ID", "GCLID"]
FORM_SUBMISSIONS_HEADERS = [
    "Contact ID", "Email", "Original Source", "Detalhes da Fonte Original",
    "Nome do Formulário", "GCLID", "Timestamp do Envio", "Record Source",
    "Número de Negócios Associados",
]
FORM_DEALS_HEADERS = ["Form Name", "Contacts", "Open Deals", "Closed Won Deals", "Closed Lost Deals"]


# Row builders. Column order must match the headers above.

def campaign_rows(campaigns: Sequence[Campaign]) -> List[List[Any]]:
    return [
        [c.id, c.name, c.network, c.cost, c.clicks, c.impressions, c.conversions]
        for c in campaigns
    ]


def campaign_deal_rows(rows: Sequence[AggregationRow]) -> List[List[Any]]:
    return [
        [r.key, r.network, r.cost, r.open_count, r.closed_won_count, r.closed_lost_count]
        for r in rows
    ]


def conversion_rows(events: Sequence[ConversionEvent]) -> List[List[Any]]:
    return [[e.date, e.campaign_id, e.click_id] for e in events]


def form_submission_rows(records: Sequence[FormSubmissionRecord]) -> List[List[Any]]:
    return [
        [
            r.contact_id, r.email, r.original_source, r.source_detail, r.form_name,
            r.gclid, r.timestamp, r.record_source, r.associated_deal_count,
        ]
        for r in records
    ]


def form_deal_rows(rows: Sequence[AggregationRow]) -> List[List[Any]]:
    return [
        [r.key, r.contact_count, r.open_count, r.closed_won_count, r.closed_lost_count]
        for r in rows
    ]


def to_cell(value: Any) -> Any:
    """Sheets API values must be JSON-serializable; None becomes blank"""
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (str, int, float)):
        return value
    return str(value)


def build_values(rows: Sequence[Sequence[Any]], headers: Sequence[str]) -> List[List[Any]]:
    values = [list(headers)] if headers else []
    values.extend([to_cell(v) for v in row] for row in rows)
    return values


def quote_sheet_name(sheet_name: str) -> str:
    return "'" + sheet_name.replace("'", "''") + "'"


def load_credentials(client_id: str = "", client_secret: str = "", refresh_token: str = "",
                     service_account_json: str = ""):
    """OAuth refresh-token credentials take precedence over a service account key file"""
    if client_id and client_secret and refresh_token:
        from google.oauth2.credentials import Credentials

        logger.info("Using OAuth refresh token credentials for Google Sheets")
        return Credentials(
            token=None,
            refresh_token=refresh_token,
            client_id=client_id,
            client_secret=client_secret,
            token_uri=TOKEN_URI,
            scopes=SCOPES,
        )

    if service_account_json:
        from google.oauth2 import service_account

        logger.info(f"Loading Google Sheets credentials from {service_account_json}")
        return service_account.Credentials.from_service_account_file(
            service_account_json, scopes=SCOPES,
        )

    raise ConfigurationError(
        "No Google Sheets credentials. Set GOOGLE_SHEETS_CLIENT_ID, GOOGLE_SHEETS_CLIENT_SECRET "
        "and GOOGLE_SHEETS_REFRESH_TOKEN, or GOOGLE_SERVICE_ACCOUNT_JSON"
    )


class GoogleSheetsSink:
    """Writes rows to tabs of one spreadsheet, replacing previous contents"""

    def __init__(self, spreadsheet_id: str, service):
        if not spreadsheet_id:
            raise ConfigurationError("GOOGLE_SHEETS_ID is not set")
        self.spreadsheet_id = spreadsheet_id
        self.service = service

    @classmethod
    def from_settings(cls, settings) -> "GoogleSheetsSink":
        from googleapiclient.discovery import build

        credentials = load_credentials(
            client_id=settings.google_sheets_client_id,
            client_secret=settings.google_sheets_client_secret,
            refresh_token=settings.google_sheets_refresh_token,
            service_account_json=settings.google_service_account_json,
        )
        service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        logger.info("Google Sheets client initialized")
        return cls(settings.google_sheets_id, service)

    def _clear(self, sheet_name: str) -> None:
        clear_range = f"{quote_sheet_name(sheet_name)}!{CLEAR_COLUMNS}"
        try:
            self.service.spreadsheets().values().clear(
                spreadsheetId=self.spreadsheet_id, range=clear_range, body={}
            ).execute()
            logger.debug(f"Cleared {clear_range}")
        except Exception as e:
            logger.warning(f"Failed to clear {clear_range}, writing anyway: {e}")

    def _update(self, sheet_name: str, values: List[List[Any]]) -> None:
        self.service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=f"{quote_sheet_name(sheet_name)}!A1",
            valueInputOption="USER_ENTERED",
            body={"values": values},
        ).execute()

    def write_sync(self, rows: Sequence[Sequence[Any]], sheet_name: str,
                   headers: Optional[Sequence[str]] = None) -> None:
        self._clear(sheet_name)

        values = build_values(rows, headers or [])
        if not values:
            logger.info(f"No headers or rows for '{sheet_name}'; leaving it blank")
            return

        try:
            self._update(sheet_name, values)
        except Exception as e:
            raise SheetWriteError(sheet_name, str(e)) from e
        logger.info(f"Wrote {len(rows)} rows to '{sheet_name}'")

    async def write(self, rows: Sequence[Sequence[Any]], sheet_name: str,
                    headers: Optional[Sequence[str]] = None) -> None:
        """Clear the tab, then write headers and rows from A1"""
        await asyncio.to_thread(self.write_sync, rows, sheet_name, headers)
