"""
Google Ads report client

Thin adapter over the google-ads library: renders a ReportQuery as GAQL,
runs it through GoogleAdsService.search_stream on a worker thread and yields
each row as a flat dict keyed by dotted field path.
"""
import asyncio
import enum
from typing import Any, AsyncIterator, Dict, List, Optional

from loguru import logger

from modules.exceptions import ConfigurationError, PlatformAPIError
from modules.interfaces import ReportQuery


SERVICE_NAME = "Google Ads"

# gRPC status names mapped onto the HTTP-like codes the retry policy understands
GRPC_STATUS_TO_HTTP = {
    "INVALID_ARGUMENT": 400,
    "FAILED_PRECONDITION": 400,
    "OUT_OF_RANGE": 400,
    "UNAUTHENTICATED": 401,
    "PERMISSION_DENIED": 403,
    "NOT_FOUND": 404,
    "ALREADY_EXISTS": 409,
    "ABORTED": 409,
    "RESOURCE_EXHAUSTED": 429,
    "CANCELLED": 499,
    "UNKNOWN": 500,
    "INTERNAL": 500,
    "DATA_LOSS": 500,
    "UNIMPLEMENTED": 501,
    "UNAVAILABLE": 503,
    "DEADLINE_EXCEEDED": 504,
}


def http_status_for_grpc(status_name: Optional[str]) -> Optional[int]:
    if not status_name:
        return None
    return GRPC_STATUS_TO_HTTP.get(status_name.upper())


def resolve_field(row: Any, path: str) -> Any:
    """Follow a dotted path (``metrics.cost_micros``) through a result row"""
    value = row
    for part in path.split("."):
        if value is None:
            return None
        value = getattr(value, part, None)
    if isinstance(value, enum.Enum):
        return int(value.value) if isinstance(value.value, int) else value.name
    return value


def flatten_row(row: Any, fields: List[str]) -> Dict[str, Any]:
    return {path: resolve_field(row, path) for path in fields}


def _error_message(error: Exception) -> str:
    failure = getattr(error, "failure", None)
    errors = getattr(failure, "errors", None) or []
    messages = [getattr(e, "message", "") for e in errors if getattr(e, "message", "")]
    return "; ".join(messages) or str(error)


class GoogleAdsReportClient:
    """Runs report queries for one customer account"""

    def __init__(self, client, customer_id: str):
        if not customer_id:
            raise ConfigurationError("GOOGLE_ADS_CUSTOMER_ID is not set")
        self._client = client
        self.customer_id = customer_id

    @classmethod
    def from_settings(cls, settings) -> "GoogleAdsReportClient":
        from google.ads.googleads.client import GoogleAdsClient

        credentials = {
            "developer_token": settings.google_ads_developer_token,
            "client_id": settings.google_ads_client_id,
            "client_secret": settings.google_ads_client_secret,
            "refresh_token": settings.google_ads_refresh_token,
            "use_proto_plus": True,
        }
        if settings.google_ads_login_customer_id:
            credentials["login_customer_id"] = settings.google_ads_login_customer_id

        client = GoogleAdsClient.load_from_dict(credentials)
        logger.info(
            f"Google Ads client initialized for customer {settings.google_ads_customer_id}"
            + (f" via MCC {settings.google_ads_login_customer_id}" if settings.google_ads_login_customer_id else "")
        )
        return cls(client, settings.google_ads_customer_id)

    def _search(self, query: ReportQuery) -> List[Dict[str, Any]]:
        from google.ads.googleads.errors import GoogleAdsException

        gaql = query.to_gaql()
        logger.debug(f"GAQL: {gaql}")
        service = self._client.get_service("GoogleAdsService")
        rows = []
        try:
            stream = service.search_stream(customer_id=self.customer_id, query=gaql)
            for batch in stream:
                for row in batch.results:
                    rows.append(flatten_row(row, query.fields))
        except GoogleAdsException as e:
            status_name = e.error.code().name if e.error is not None else None
            raise PlatformAPIError(
                SERVICE_NAME,
                f"{_error_message(e)} (request_id={e.request_id})",
                http_status_for_grpc(status_name),
            ) from e
        return rows

    async def report_stream(self, query: ReportQuery) -> AsyncIterator[Dict[str, Any]]:
        """Yield the rows of one report query"""
        rows = await asyncio.to_thread(self._search, query)
        for row in rows:
            yield row
