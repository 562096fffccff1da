"""
HubSpot CRM client

Adapter over the official hubspot-api-client SDK for contact search, v4
associations and object batch reads, plus plain REST calls (requests) for
the legacy engagement endpoint and marketing campaigns. The SDK is blocking,
so every call runs on a worker thread.
"""
import asyncio
from typing import Any, Dict, List

import requests
from hubspot import HubSpot
from hubspot.crm.contacts import Filter, FilterGroup, PublicObjectSearchRequest
from hubspot.crm.objects import BatchReadInputSimplePublicObjectId, SimplePublicObjectId
from loguru import logger

from modules.exceptions import ConfigurationError
from modules.interfaces import CRMCapabilities


BASE_URL = "https://api.hubapi.com"
ASSOCIATION_PAGE_LIMIT = 500
REQUEST_TIMEOUT = 30


def _to_dict(response: Any) -> Dict[str, Any]:
    if response is None:
        return {}
    if isinstance(response, dict):
        return response
    return response.to_dict()


def _search_request(body: Dict[str, Any]) -> PublicObjectSearchRequest:
    filter_groups = [
        FilterGroup(filters=[
            Filter(
                property_name=f["propertyName"],
                operator=f["operator"],
                value=f.get("value"),
            )
            for f in group.get("filters", [])
        ])
        for group in body.get("filterGroups", [])
    ]
    return PublicObjectSearchRequest(
        filter_groups=filter_groups,
        properties=body.get("properties"),
        limit=body.get("limit"),
        after=body.get("after"),
    )


class HubSpotCRMClient:
    """Async facade over the HubSpot endpoints the sync job reads"""

    def __init__(self, access_token: str, engagements_enabled: bool = True):
        if not access_token:
            raise ConfigurationError("HUBSPOT_PRIVATE_APP_TOKEN is not set")
        self.hubspot = HubSpot(access_token=access_token)
        self.engagements_enabled = engagements_enabled
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        logger.info(f"HubSpot client initialized with token {access_token[:5]}...")

    @classmethod
    def from_settings(cls, settings) -> "HubSpotCRMClient":
        return cls(
            settings.hubspot_private_app_token,
            engagements_enabled=settings.hubspot_engagements_enabled,
        )

    def capabilities(self) -> CRMCapabilities:
        """Which SDK surfaces are present, checked once at startup"""
        crm = self.hubspot.crm
        caps = CRMCapabilities(
            contact_search=hasattr(crm.contacts, "search_api"),
            associations=hasattr(crm.associations, "v4") and hasattr(crm.associations.v4, "basic_api"),
            batch_read=hasattr(crm.objects, "batch_api"),
            engagements=self.engagements_enabled,
            campaigns=True,
        )
        for name, available in caps.to_dict().items():
            logger.debug(f"HubSpot capability {name}: {'available' if available else 'NOT available'}")
        return caps

    # SDK calls

    def _search_contacts(self, body: Dict[str, Any]) -> Dict[str, Any]:
        response = self.hubspot.crm.contacts.search_api.do_search(
            public_object_search_request=_search_request(body)
        )
        return _to_dict(response)

    def _get_associations(self, from_type: str, from_id: str, to_type: str) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        after = None
        while True:
            page = _to_dict(self.hubspot.crm.associations.v4.basic_api.get_page(
                from_type, from_id, to_type, after=after, limit=ASSOCIATION_PAGE_LIMIT
            ))
            for item in page.get("results") or []:
                results.append({"toObjectId": item.get("to_object_id", item.get("toObjectId"))})
            after = ((page.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                return {"results": results}

    def _batch_read(self, object_type: str, body: Dict[str, Any]) -> Dict[str, Any]:
        request = BatchReadInputSimplePublicObjectId(
            inputs=[SimplePublicObjectId(id=str(i["id"])) for i in body.get("inputs", [])],
            properties=body.get("properties", []),
            properties_with_history=[],
        )
        response = self.hubspot.crm.objects.batch_api.read(
            object_type, batch_read_input_simple_public_object_id=request
        )
        return _to_dict(response)

    # REST calls

    def _get_json(self, path: str, params=None) -> Dict[str, Any]:
        response = requests.get(
            f"{BASE_URL}{path}", headers=self.headers, params=params, timeout=REQUEST_TIMEOUT
        )
        response.raise_for_status()
        return response.json()

    async def search_contacts(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._search_contacts, body)

    async def get_associations(self, from_type: str, from_id: str, to_type: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._get_associations, from_type, from_id, to_type)

    async def batch_read(self, object_type: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._batch_read, object_type, body)

    async def get_engagement(self, engagement_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._get_json, f"/engagements/v1/engagements/{engagement_id}")

    async def get_campaign(self, campaign_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(
            self._get_json, f"/marketing/v3/campaigns/{campaign_id}", {"properties": "hs_name"}
        )
